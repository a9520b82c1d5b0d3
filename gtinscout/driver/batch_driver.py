"""Batch driver: runs the lookup workflow over a list of identifiers.

The batch driver processes identifiers strictly one after another:

- Each identifier gets its own page driver session, opened before the
  lookup and released after it regardless of the outcome.
- Each outcome is committed to the result sink before the next identifier
  is started; nothing is buffered.
- Every identifier advances progress by exactly one unit, including
  identifiers that failed or were skipped because a previous run already
  harvested them.
- A failing identifier never stops the batch. Only FatalIOError from the
  record source or the sink ends a run early, along with the stop event.
  A row that cannot be written still advances progress before the
  SinkWriteError propagates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

from typing_extensions import assert_never

from gtinscout.common.exceptions import SinkWriteError
from gtinscout.common.page_driver import SessionFactory
from gtinscout.common.sink import CsvResultSink
from gtinscout.data_types import (
    BatchSummary,
    Classification,
    ErrorKind,
    LookupOutcome,
    ProgressEvent,
)
from gtinscout.lookup.workflow import LookupWorkflow

logger = logging.getLogger(__name__)


class BatchDriver:
    """Sequential orchestrator for a batch of lookups.

    Args:
        workflow: The lookup workflow run once per identifier.
        session_factory: Source of fresh page driver sessions.
        sink: The result sink accepted outcomes are written to.
        log: Logger for the run log. Defaults to this module's logger.
        on_progress: Optional callback receiving a ProgressEvent for run
            start, each identifier, and run end.
        on_outcome: Optional callback receiving each LookupOutcome after it
            has been committed to the sink.
        stop_event: Optional asyncio.Event for cancellation. It is checked
            before each identifier; the identifier in flight is finished
            and its session released first.

    Example:
        async with PlaywrightSessionFactory.open() as factory:
            driver = BatchDriver(workflow, factory, sink)
            summary = await driver.run(identifiers)
    """

    def __init__(
        self,
        workflow: LookupWorkflow,
        session_factory: SessionFactory,
        sink: CsvResultSink,
        log: logging.Logger | None = None,
        on_progress: Callable[[ProgressEvent], None] | None = None,
        on_outcome: Callable[[LookupOutcome], None] | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.workflow = workflow
        self.session_factory = session_factory
        self.sink = sink
        self.log = log or logger
        self.on_progress = on_progress
        self.on_outcome = on_outcome
        self.stop_event = stop_event

    def _emit(self, event_type: str, **data: Any) -> None:
        if self.on_progress is not None:
            self.on_progress(
                ProgressEvent(
                    event_type=event_type,
                    timestamp=datetime.now(timezone.utc),
                    data=data,
                )
            )

    async def run(self, identifiers: Sequence[str]) -> BatchSummary:
        """Process every identifier in order.

        Args:
            identifiers: Trimmed identifiers, duplicates allowed.

        Returns:
            Counters for the run.

        Raises:
            SinkWriteError: If an accepted row cannot be written. Progress
                for that identifier is reported first.
        """
        total = len(identifiers)
        summary = BatchSummary(total=total)
        self.log.info(f"Starting batch of {total} identifiers")
        self._emit("run_started", total=total)

        for index, identifier in enumerate(identifiers):
            if self.stop_event is not None and self.stop_event.is_set():
                self.log.warning(
                    f"Stop requested, ending batch before identifier "
                    f"{index + 1}/{total}"
                )
                summary.stopped = True
                self._emit("run_stopped", index=index, total=total)
                break

            self.log.info(
                f"Processing identifier {index + 1}/{total}: {identifier}",
                extra={"identifier": identifier, "index": index},
            )

            if self.sink.resume and self.sink.already_written(identifier):
                self.log.info(
                    f"Skipping {identifier}: already in output table",
                    extra={"identifier": identifier},
                )
                summary.resumed_skips += 1
                self._emit(
                    "identifier_skipped",
                    index=index,
                    total=total,
                    identifier=identifier,
                )
                continue

            outcome = await self.process_identifier(identifier)
            try:
                written = self.sink.accept(outcome)
            except SinkWriteError as e:
                self.log.error(
                    f"Fatal: {e}", extra={"identifier": identifier}
                )
                summary.record(outcome, False)
                self._emit(
                    "identifier_completed",
                    index=index,
                    total=total,
                    identifier=identifier,
                    classification=outcome.classification.value,
                    written=False,
                )
                self._emit("run_failed", index=index, error=str(e))
                raise
            self._log_decision(outcome, written)
            summary.record(outcome, written)

            if self.on_outcome is not None:
                self.on_outcome(outcome)
            self._emit(
                "identifier_completed",
                index=index,
                total=total,
                identifier=identifier,
                classification=outcome.classification.value,
                written=written,
            )

        self.log.info(f"Batch finished: {summary.describe()}")
        self._emit("run_completed", total=total, summary=summary.describe())
        return summary

    async def process_identifier(self, identifier: str) -> LookupOutcome:
        """Run one lookup in a dedicated session.

        Session failures (browser context cannot be opened or closed) are
        turned into Unexpected error outcomes here, so they are isolated
        to this identifier like any other lookup failure.
        """
        try:
            async with self.session_factory.session() as driver:
                return await self.workflow.run(identifier, driver)
        except Exception as e:
            self.log.error(
                f"Session failure for {identifier}: {e}",
                exc_info=True,
                extra={"identifier": identifier},
            )
            return LookupOutcome.error(
                identifier, ErrorKind.UNEXPECTED, f"{type(e).__name__}: {e}"
            )

    def _log_decision(self, outcome: LookupOutcome, written: bool) -> None:
        identifier = outcome.identifier
        extra = {
            "identifier": identifier,
            "classification": outcome.classification.value,
        }
        if written:
            self.log.info(f"Row written for {identifier}", extra=extra)
            return

        match outcome.classification:
            case Classification.FOUND:
                reason = "no required field extracted"
            case Classification.NO_RESULT:
                reason = "no product found"
            case Classification.STRUCTURE_MISSING:
                reason = "page structure missing"
            case Classification.ERROR:
                kind = outcome.error_kind.value if outcome.error_kind else "?"
                reason = f"error [{kind}]: {outcome.error_detail}"
            case _:
                assert_never(outcome.classification)
        self.log.info(f"No row for {identifier}: {reason}", extra=extra)

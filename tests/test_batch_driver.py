"""Tests for the batch driver.

Key behaviors tested:
- Rows are written only for Found outcomes with a required field
- Output order follows input order, duplicates are processed independently
- Progress advances exactly once per identifier, whatever the outcome
- One failing identifier never stops the batch
- Each identifier gets its own session, released before the next starts
- The stop event ends the batch between identifiers
- Resume skips identifiers already in the output table
"""

import asyncio
import csv
import logging
from pathlib import Path

import pytest

from gtinscout.common.exceptions import SinkWriteError
from gtinscout.common.sink import CsvResultSink
from gtinscout.config import LookupConfig
from gtinscout.data_types import (
    Classification,
    ErrorKind,
    LookupOutcome,
    ProgressEvent,
)
from gtinscout.driver.batch_driver import BatchDriver
from gtinscout.lookup.workflow import LookupWorkflow
from tests.fakes import (
    FakePage,
    FakeSessionFactory,
    FakeSite,
    found_page,
    no_result_page,
    structure_missing_page,
)


def read_rows(path: Path) -> list[list[str]]:
    with path.open(newline="", encoding="utf-8") as handle:
        return list(csv.reader(handle))


def make_site() -> FakeSite:
    return FakeSite(
        pages={
            "3283950912914": found_page(
                pdf_href="https://www.ecoinform.de/pdf/a.pdf"
            ),
            "4000000000017": found_page(
                pdf_href="https://www.ecoinform.de/pdf/b.pdf",
                safety_href="https://www.ecoinform.de/sdb/b.pdf",
            ),
            "0000000000000": no_result_page(),
            "5000000000016": structure_missing_page(),
            "7000000000014": found_page(pdf_href=None),
            "8000000000013": FakePage(fault=RuntimeError("boom")),
        }
    )


class BatchHarness:
    """Wires a BatchDriver to a fake site and a sink in tmp_path."""

    def __init__(
        self,
        tmp_path: Path,
        config: LookupConfig,
        site: FakeSite | None = None,
        resume: bool = False,
        fail_sessions: set[int] | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.output = tmp_path / "results.csv"
        self.events: list[ProgressEvent] = []
        self.outcomes: list[LookupOutcome] = []
        self.factory = FakeSessionFactory(
            site or make_site(), fail_sessions=fail_sessions
        )
        self.sink = CsvResultSink(self.output, config.output, resume=resume)
        self.driver = BatchDriver(
            workflow=LookupWorkflow(config),
            session_factory=self.factory,
            sink=self.sink,
            on_progress=self.events.append,
            on_outcome=self.outcomes.append,
            stop_event=stop_event,
        )

    @property
    def advances(self) -> list[ProgressEvent]:
        return [e for e in self.events if e.advances]


class TestWritePolicy:
    """Tests for which outcomes produce output rows."""

    @pytest.mark.asyncio
    async def test_found_row_written(self, tmp_path, config):
        """A Found outcome with a data-sheet link shall produce one row."""
        harness = BatchHarness(tmp_path, config)

        summary = await harness.driver.run(["3283950912914"])

        assert read_rows(harness.output) == [
            ["gtin", "pdf_url", "safety_sheet_url"],
            ["3283950912914", "https://www.ecoinform.de/pdf/a.pdf", ""],
        ]
        assert summary.rows_written == 1

    @pytest.mark.asyncio
    async def test_no_rows_for_unsuccessful_outcomes(self, tmp_path, config):
        """NoResult, StructureMissing, Error and empty Found shall write nothing."""
        harness = BatchHarness(tmp_path, config)

        summary = await harness.driver.run(
            [
                "0000000000000",
                "5000000000016",
                "7000000000014",
                "8000000000013",
                "9999999999999",
            ]
        )

        assert not harness.output.exists()
        assert summary.rows_written == 0
        assert summary.by_classification[Classification.NO_RESULT] == 1
        assert summary.by_classification[Classification.STRUCTURE_MISSING] == 1
        assert summary.by_classification[Classification.FOUND] == 1
        assert summary.by_classification[Classification.ERROR] == 2

    @pytest.mark.asyncio
    async def test_required_fields_policy_is_configurable(self, tmp_path):
        """A safety-sheet link shall suffice when it is a required field."""
        config = LookupConfig(
            timeout=0.05,
            settle_delay=0,
            output={"required_fields": ["pdf_url", "safety_sheet_url"]},
        )
        site = FakeSite(
            pages={
                "1": found_page(
                    pdf_href=None, safety_href="https://example.org/sdb.pdf"
                )
            }
        )
        harness = BatchHarness(tmp_path, config, site=site)

        await harness.driver.run(["1"])

        assert read_rows(harness.output)[1] == [
            "1",
            "",
            "https://example.org/sdb.pdf",
        ]


class TestOrderingAndProgress:
    """Tests for input order, progress and isolation."""

    @pytest.mark.asyncio
    async def test_rows_follow_input_order(self, tmp_path, config):
        """Output rows shall appear in input order, duplicates included."""
        harness = BatchHarness(tmp_path, config)

        await harness.driver.run(
            ["4000000000017", "0000000000000", "3283950912914", "4000000000017"]
        )

        identifiers = [row[0] for row in read_rows(harness.output)[1:]]
        assert identifiers == ["4000000000017", "3283950912914", "4000000000017"]

    @pytest.mark.asyncio
    async def test_progress_once_per_identifier(self, tmp_path, config):
        """Progress shall advance exactly once per identifier, in order."""
        harness = BatchHarness(tmp_path, config)
        identifiers = [
            "3283950912914",
            "8000000000013",
            "0000000000000",
            "9999999999999",
        ]

        await harness.driver.run(identifiers)

        assert [e.data["identifier"] for e in harness.advances] == identifiers
        assert [e.data["index"] for e in harness.advances] == [0, 1, 2, 3]
        assert harness.events[0].event_type == "run_started"
        assert harness.events[-1].event_type == "run_completed"

    @pytest.mark.asyncio
    async def test_error_does_not_stop_batch(self, tmp_path, config, caplog):
        """A failing identifier shall be logged and the next one processed."""
        harness = BatchHarness(tmp_path, config)

        with caplog.at_level(logging.INFO):
            summary = await harness.driver.run(
                ["9999999999999", "3283950912914"]
            )

        assert [o.classification for o in harness.outcomes] == [
            Classification.ERROR,
            Classification.FOUND,
        ]
        assert harness.outcomes[0].error_kind is ErrorKind.TIMEOUT
        assert summary.processed == 2
        assert "9999999999999" in caplog.text
        assert "[Timeout]" in caplog.text

    @pytest.mark.asyncio
    async def test_session_failure_isolated(self, tmp_path, config):
        """A session that cannot be opened shall yield an Unexpected outcome only for its identifier."""
        harness = BatchHarness(tmp_path, config, fail_sessions={0})

        await harness.driver.run(["3283950912914", "4000000000017"])

        assert harness.outcomes[0].error_kind is ErrorKind.UNEXPECTED
        assert "could not be created" in harness.outcomes[0].error_detail
        assert harness.outcomes[1].classification is Classification.FOUND
        assert len(harness.advances) == 2

    @pytest.mark.asyncio
    async def test_fresh_session_per_identifier(self, tmp_path, config):
        """Each identifier shall get its own session, closed before the next opens."""
        harness = BatchHarness(tmp_path, config)

        await harness.driver.run(
            ["3283950912914", "8000000000013", "0000000000000"]
        )

        assert harness.factory.opened == 3
        assert harness.factory.max_active == 1
        assert all(d.closed for d in harness.factory.drivers)
        assert [d.submitted for d in harness.factory.drivers] == [
            ["3283950912914"],
            ["8000000000013"],
            ["0000000000000"],
        ]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, tmp_path, config):
        """Running the same batch twice shall produce the same output table."""
        identifiers = ["3283950912914", "0000000000000", "4000000000017"]

        await BatchHarness(tmp_path, config).driver.run(identifiers)
        first = read_rows(tmp_path / "results.csv")
        await BatchHarness(tmp_path, config).driver.run(identifiers)
        second = read_rows(tmp_path / "results.csv")

        assert first == second
        assert len(first) == 3


class TestStopEvent:
    """Tests for cancellation between identifiers."""

    @pytest.mark.asyncio
    async def test_stop_before_start(self, tmp_path, config):
        """No identifier shall be processed when the stop event is already set."""
        stop_event = asyncio.Event()
        stop_event.set()
        harness = BatchHarness(tmp_path, config, stop_event=stop_event)

        summary = await harness.driver.run(["3283950912914"])

        assert summary.stopped is True
        assert summary.processed == 0
        assert harness.factory.opened == 0

    @pytest.mark.asyncio
    async def test_stop_after_current_identifier(self, tmp_path, config):
        """The identifier in flight shall complete and release its session before stopping."""
        stop_event = asyncio.Event()
        harness = BatchHarness(tmp_path, config, stop_event=stop_event)
        harness.driver.on_outcome = lambda outcome: stop_event.set()

        summary = await harness.driver.run(
            ["3283950912914", "4000000000017", "0000000000000"]
        )

        assert summary.processed == 1
        assert summary.stopped is True
        assert harness.factory.drivers[0].closed
        assert harness.events[-2].event_type == "run_stopped"
        assert len(read_rows(harness.output)) == 2


class TestResume:
    """Tests for resuming into an existing output table."""

    @pytest.mark.asyncio
    async def test_resume_skips_harvested_identifiers(self, tmp_path, config):
        """Identifiers already in the output shall be skipped but still advance progress."""
        await BatchHarness(tmp_path, config).driver.run(["3283950912914"])

        harness = BatchHarness(tmp_path, config, resume=True)
        summary = await harness.driver.run(["3283950912914", "4000000000017"])

        assert summary.resumed_skips == 1
        assert summary.processed == 1
        assert harness.factory.opened == 1
        assert [e.event_type for e in harness.advances] == [
            "identifier_skipped",
            "identifier_completed",
        ]
        assert [row[0] for row in read_rows(harness.output)[1:]] == [
            "3283950912914",
            "4000000000017",
        ]


class TestSinkFailure:
    """Tests for an output table that becomes unwritable mid-run."""

    @pytest.mark.asyncio
    async def test_write_failure_ends_run(self, tmp_path, config, caplog):
        """A row that cannot be written shall advance progress, be logged, and end the run."""
        harness = BatchHarness(tmp_path, config)
        harness.output.mkdir()

        with caplog.at_level(logging.ERROR):
            with pytest.raises(SinkWriteError):
                await harness.driver.run(["3283950912914", "4000000000017"])

        assert [e.data["identifier"] for e in harness.advances] == [
            "3283950912914"
        ]
        assert harness.events[-1].event_type == "run_failed"
        assert harness.factory.opened == 1
        assert harness.factory.drivers[0].closed
        assert "Fatal: Cannot append row for 3283950912914" in caplog.text

"""Callback functions for the batch driver's on_progress and on_outcome parameters.

Example::

    from gtinscout.driver.callbacks import (
        advance_bar,
        combine_callbacks,
        log_progress,
        write_outcomes_jsonl,
    )

    driver = BatchDriver(
        workflow,
        factory,
        sink,
        on_outcome=write_outcomes_jsonl(handle),
        on_progress=combine_callbacks(log_progress(), advance_bar(bar)),
    )
"""

import json
import logging
from collections.abc import Callable
from typing import Any, Protocol, TextIO

from gtinscout.data_types import LookupOutcome, ProgressEvent

logger = logging.getLogger(__name__)


class _Advanceable(Protocol):
    def update(self, n_steps: int) -> None: ...


def advance_bar(bar: _Advanceable) -> Callable[[ProgressEvent], None]:
    """Create a callback that advances a progress bar once per identifier.

    Works with ``click.progressbar`` (and anything else with ``update(n)``).

    Example::

        with click.progressbar(length=len(identifiers)) as bar:
            driver = BatchDriver(..., on_progress=advance_bar(bar))
            await driver.run(identifiers)
    """

    def callback(event: ProgressEvent) -> None:
        if event.advances:
            bar.update(1)

    return callback


def log_progress(
    log: logging.Logger | None = None,
) -> Callable[[ProgressEvent], None]:
    """Create a callback that writes each progress event to a logger at DEBUG."""
    target = log or logger

    def callback(event: ProgressEvent) -> None:
        target.debug(f"progress {event.to_json()}")

    return callback


def write_outcomes_jsonl(
    file_handle: TextIO,
) -> Callable[[LookupOutcome], None]:
    """Create a callback that writes every outcome as a JSON line.

    Unlike the output table this records every identifier, including the
    ones that produced no row, with their classification and error detail.

    Args:
        file_handle: An open file handle; the caller closes it.
    """

    def callback(outcome: LookupOutcome) -> None:
        json.dump(outcome.to_dict(), file_handle)
        file_handle.write("\n")
        file_handle.flush()

    return callback


def combine_callbacks(
    *callbacks: Callable[[Any], None],
) -> Callable[[Any], None]:
    """Combine multiple callbacks into a single callback."""

    def callback(item: Any) -> None:
        for cb in callbacks:
            cb(item)

    return callback

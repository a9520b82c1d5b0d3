"""Result sink: the delimited output table.

The output table is a work list for downstream consumers, so it only ever
holds useful rows: an outcome is written if it was classified Found and at
least one required field is non-empty. The file is created, with its
header, on the first write; if nothing qualifies it never exists.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path

from gtinscout.common.exceptions import SinkInitError, SinkWriteError
from gtinscout.config import OutputConfig
from gtinscout.data_types import Classification, LookupOutcome, OutputRow

logger = logging.getLogger(__name__)


class CsvResultSink:
    """Appends qualifying lookup outcomes to a delimited file.

    Each accepted row is written and flushed before accept() returns, so
    the file always reflects every identifier processed so far.

    Args:
        path: The output file.
        config: Delimiter, columns and required-field policy.
        resume: Keep an existing output file and append to it. Without
            resume an existing file is removed so a re-run starts clean.

    Raises:
        SinkInitError: If the output location cannot be prepared.
    """

    def __init__(
        self, path: Path, config: OutputConfig, resume: bool = False
    ) -> None:
        self.path = path
        self.config = config
        self.resume = resume
        self._existing: set[str] = set()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.is_dir():
                raise SinkInitError(str(path), "Output path is a directory")
            if resume:
                self._existing = self._read_existing_identifiers()
            elif self.path.exists():
                logger.info(f"Removing previous output table {self.path}")
                self.path.unlink()
        except OSError as e:
            raise SinkInitError(
                str(path), f"Cannot initialize output table: {e}"
            ) from e

    @property
    def header(self) -> list[str]:
        return [self.config.identifier_header, *self.config.fields]

    def _read_existing_identifiers(self) -> set[str]:
        if not self.path.exists():
            return set()
        with self.path.open(newline="", encoding="utf-8") as handle:
            reader = csv.reader(handle, delimiter=self.config.delimiter)
            rows = list(reader)
        if rows and rows[0] != self.header:
            raise SinkInitError(
                str(self.path),
                f"Existing output header {rows[0]} does not match {self.header}",
            )
        identifiers = {row[0] for row in rows[1:] if row}
        logger.info(
            f"Resuming: {len(identifiers)} identifiers already in {self.path}"
        )
        return identifiers

    def already_written(self, identifier: str) -> bool:
        """True if a previous run already wrote a row for identifier."""
        return identifier in self._existing

    def should_write(self, outcome: LookupOutcome) -> bool:
        """Apply the write policy to an outcome."""
        if outcome.classification is not Classification.FOUND:
            return False
        return any(
            outcome.field_value(name) for name in self.config.required_fields
        )

    def accept(self, outcome: LookupOutcome) -> bool:
        """Write the outcome if it qualifies.

        Returns:
            True if a row was written.

        Raises:
            SinkWriteError: If the row cannot be appended.
        """
        if not self.should_write(outcome):
            return False
        self.write(OutputRow.from_outcome(outcome, self.config.fields))
        return True

    def write(self, row: OutputRow) -> None:
        """Append a row, creating the file with its header if needed.

        Raises:
            SinkWriteError: If the row cannot be appended.
        """
        try:
            new_file = (
                not self.path.exists() or self.path.stat().st_size == 0
            )
            with self.path.open("a", newline="", encoding="utf-8") as handle:
                writer = csv.writer(handle, delimiter=self.config.delimiter)
                if new_file:
                    writer.writerow(self.header)
                writer.writerow(row.as_list())
                handle.flush()
        except OSError as e:
            raise SinkWriteError(
                str(self.path), f"Cannot append row for {row.identifier}: {e}"
            ) from e

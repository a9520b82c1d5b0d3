"""Record source: identifiers from a delimited input table.

Rows are filtered on two recognized columns: the identifier column must be
non-empty after trimming, and, if a source value is configured, the source
column must equal it. Duplicates are kept; each is looked up on its own.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterator
from pathlib import Path

from gtinscout.common.exceptions import SourceReadError
from gtinscout.config import InputConfig
from gtinscout.data_types import normalize_identifier

logger = logging.getLogger(__name__)


def _resolve_column(fieldnames: list[str], wanted: str) -> str | None:
    """Find the header matching wanted, ignoring case and surrounding space."""
    target = wanted.strip().casefold()
    for name in fieldnames:
        if name is not None and name.strip().casefold() == target:
            return name
    return None


def iter_records(path: Path, config: InputConfig) -> Iterator[dict[str, str]]:
    """Lazily yield the recognized rows of the input table.

    Args:
        path: The input file.
        config: Delimiter, encoding, column names and filter value.

    Yields:
        Row mappings (column name -> cell value) that pass the filter.

    Raises:
        SourceReadError: If the file cannot be read or lacks the
            identifier column (or the source column, when filtering).
    """
    try:
        with path.open(newline="", encoding=config.encoding) as handle:
            reader = csv.DictReader(handle, delimiter=config.delimiter)
            fieldnames = reader.fieldnames or []

            id_column = _resolve_column(fieldnames, config.identifier_column)
            if id_column is None:
                raise SourceReadError(
                    str(path),
                    f"Identifier column '{config.identifier_column}' not found "
                    f"in header {fieldnames}",
                )

            source_column = None
            if config.source_value is not None:
                if config.source_column is None:
                    raise SourceReadError(
                        str(path), "source_value given without source_column"
                    )
                source_column = _resolve_column(
                    fieldnames, config.source_column
                )
                if source_column is None:
                    raise SourceReadError(
                        str(path),
                        f"Source column '{config.source_column}' not found "
                        f"in header {fieldnames}",
                    )

            for row in reader:
                identifier = normalize_identifier(row.get(id_column))
                if identifier is None:
                    continue
                if source_column is not None and (
                    (row.get(source_column) or "").strip()
                    != config.source_value
                ):
                    continue
                yield {**row, id_column: identifier}
    except OSError as e:
        raise SourceReadError(str(path), f"Cannot read input table: {e}") from e
    except UnicodeDecodeError as e:
        raise SourceReadError(
            str(path), f"Input table is not valid {config.encoding}: {e}"
        ) from e
    except csv.Error as e:
        raise SourceReadError(
            str(path), f"Malformed input table: {e}"
        ) from e


def load_identifiers(path: Path, config: InputConfig) -> list[str]:
    """Read all identifiers of the input table, in input order.

    The table is read once, up front, so the batch knows its total size.

    Raises:
        SourceReadError: See iter_records.
    """
    identifiers = []
    for row in iter_records(path, config):
        column = _resolve_column(list(row), config.identifier_column)
        identifiers.append(row[column])
    logger.info(f"Read {len(identifiers)} identifiers from {path}")
    return identifiers

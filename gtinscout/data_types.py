"""Data types shared by the lookup workflow and the batch orchestrator.

These types are designed to be:

1. Exhaustive - Enums for classifications and error kinds so the orchestrator
   can match on every case
2. Immutable - Dataclasses with frozen=True for everything a lookup produces
3. Plain - No references to live browser objects ever leave a lookup
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any


def normalize_identifier(raw: str | None) -> str | None:
    """Trim a raw identifier cell.

    Args:
        raw: The cell value as read from the input table.

    Returns:
        The trimmed identifier, or None if nothing is left after trimming.
    """
    if raw is None:
        return None
    identifier = raw.strip()
    return identifier or None


class Classification(Enum):
    """Final classification of a single lookup.

    Values:
        NO_RESULT: The site confirmed it has no product for the identifier.
        FOUND: A result page with the expected data container was shown.
        STRUCTURE_MISSING: The page deviated from the expected layout.
        ERROR: The lookup failed (see ErrorKind).
    """

    NO_RESULT = "NoResult"
    FOUND = "Found"
    STRUCTURE_MISSING = "StructureMissing"
    ERROR = "Error"


class ErrorKind(Enum):
    """Why a lookup ended in the Error classification."""

    NAVIGATION = "Navigation"
    SEARCH_FORM_MISSING = "SearchFormMissing"
    TIMEOUT = "Timeout"
    UNEXPECTED = "Unexpected"


class LookupState(Enum):
    """States of the per-identifier lookup state machine."""

    INIT = "Init"
    NAVIGATED = "Navigated"
    SEARCHING = "Searching"
    CLASSIFIED = "Classified"
    EXTRACTING = "Extracting"
    DONE = "Done"
    ERROR = "Error"


@dataclass(frozen=True)
class LookupOutcome:
    """Result of one lookup workflow run for one identifier.

    Attributes:
        identifier: The GTIN that was looked up.
        classification: How the lookup ended.
        fields: Extracted field values by name. Fields that could not be
            extracted are present with an empty string.
        error_kind: Set only when classification is ERROR.
        error_detail: Human-readable failure message, set only when
            classification is ERROR.
    """

    identifier: str
    classification: Classification
    fields: Mapping[str, str] = field(default_factory=dict)
    error_kind: ErrorKind | None = None
    error_detail: str | None = None

    def __post_init__(self) -> None:
        # Read-only copy, independent of the caller's dict.
        object.__setattr__(
            self, "fields", MappingProxyType(dict(self.fields))
        )

    @classmethod
    def error(
        cls, identifier: str, kind: ErrorKind, detail: str
    ) -> LookupOutcome:
        """Build an Error outcome."""
        return cls(
            identifier=identifier,
            classification=Classification.ERROR,
            error_kind=kind,
            error_detail=detail,
        )

    def field_value(self, name: str) -> str:
        """Return the value of a field, or an empty string if absent."""
        return self.fields.get(name, "")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "identifier": self.identifier,
            "classification": self.classification.value,
            "fields": dict(self.fields),
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_detail": self.error_detail,
        }


@dataclass(frozen=True)
class OutputRow:
    """A row of the output table: the identifier plus ordered field values."""

    identifier: str
    values: tuple[str, ...]

    @classmethod
    def from_outcome(
        cls, outcome: LookupOutcome, field_names: Iterable[str]
    ) -> OutputRow:
        return cls(
            identifier=outcome.identifier,
            values=tuple(outcome.field_value(name) for name in field_names),
        )

    def as_list(self) -> list[str]:
        return [self.identifier, *self.values]


@dataclass(frozen=True)
class ProgressEvent:
    """Event emitted by the batch orchestrator for progress reporting.

    Attributes:
        event_type: One of "run_started", "identifier_completed",
            "identifier_skipped", "run_stopped", "run_failed",
            "run_completed".
        timestamp: When the event occurred.
        data: Event-specific data (index, total, identifier, ...).
    """

    event_type: str
    timestamp: datetime
    data: dict[str, Any]

    @property
    def advances(self) -> bool:
        """True if this event accounts for one processed identifier."""
        return self.event_type in ("identifier_completed", "identifier_skipped")

    def to_json(self) -> str:
        return json.dumps(
            {
                "event_type": self.event_type,
                "timestamp": self.timestamp.isoformat(),
                "data": self.data,
            }
        )


@dataclass
class BatchSummary:
    """Counters accumulated over one batch run."""

    total: int = 0
    processed: int = 0
    rows_written: int = 0
    resumed_skips: int = 0
    stopped: bool = False
    by_classification: dict[Classification, int] = field(
        default_factory=lambda: {c: 0 for c in Classification}
    )

    def record(self, outcome: LookupOutcome, written: bool) -> None:
        self.processed += 1
        self.by_classification[outcome.classification] += 1
        if written:
            self.rows_written += 1

    def describe(self) -> str:
        counts = ", ".join(
            f"{c.value}={n}" for c, n in self.by_classification.items()
        )
        text = (
            f"{self.processed}/{self.total} identifiers processed, "
            f"{self.rows_written} rows written ({counts})"
        )
        if self.resumed_skips:
            text += f", {self.resumed_skips} already harvested"
        if self.stopped:
            text += ", stopped early"
        return text

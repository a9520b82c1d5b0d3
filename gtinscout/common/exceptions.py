"""Exception types for lookup errors.

This module defines the error taxonomy of a batch run:

- LookupFailure and its subclasses end a single lookup in the Error
  classification. The batch orchestrator absorbs them.
- FieldExtractionFailure is raised and caught inside the field extractor;
  a missing field never fails a lookup.
- FatalIOError aborts the whole run (unreadable input, unusable output).
- PageDriverError is what page driver implementations raise; the lookup
  workflow maps it onto the taxonomy above.
"""

from typing import Any, ClassVar

from gtinscout.data_types import ErrorKind


class LookupFailure(Exception):
    """Base class for failures that end a single lookup.

    Attributes:
        kind: The ErrorKind recorded on the lookup outcome.
        message: Human-readable description of the failure.
        identifier: The identifier being looked up.
        context: Additional context (selector, timeout, url, ...).
    """

    kind: ClassVar[ErrorKind] = ErrorKind.UNEXPECTED

    def __init__(
        self,
        message: str,
        identifier: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable description of the failure.
            identifier: The identifier being looked up.
            context: Optional dict of additional context.
        """
        self.message = message
        self.identifier = identifier
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message, f"Identifier: {self.identifier}"]

        if self.context:
            parts.append("Context:")
            for key, value in self.context.items():
                parts.append(f"  {key}: {value}")

        return "\n".join(parts)


class NavigationFailure(LookupFailure):
    """Raised when the target page cannot be loaded."""

    kind = ErrorKind.NAVIGATION


class SearchFormMissing(LookupFailure):
    """Raised when the search input never appears on the target page."""

    kind = ErrorKind.SEARCH_FORM_MISSING


class ClassificationTimeout(LookupFailure):
    """Raised when neither a results nor a no-results marker appears in time.

    Attributes:
        timeout_seconds: How long the classifier waited.
    """

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        identifier: str,
        selector: str,
        timeout_seconds: float,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"No result marker appeared within {timeout_seconds}s",
            identifier,
            {"selector": selector, "timeout_seconds": timeout_seconds},
        )


class UnexpectedLookupFailure(LookupFailure):
    """Raised when a page driver fault has no more specific meaning."""

    kind = ErrorKind.UNEXPECTED


class FieldExtractionFailure(Exception):
    """Raised when one configured field cannot be extracted.

    Never escapes the field extractor: the field is recorded as empty
    and the reason is logged.
    """

    def __init__(self, field_name: str, reason: str) -> None:
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Field '{field_name}' not extracted: {reason}")


class FatalIOError(Exception):
    """Base class for I/O failures that abort the whole run."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{message} ({path})")


class SourceReadError(FatalIOError):
    """Raised when the input table cannot be read."""


class SinkInitError(FatalIOError):
    """Raised when the output table cannot be initialized."""


class SinkWriteError(FatalIOError):
    """Raised when a row cannot be appended to the output table."""


class PageDriverError(Exception):
    """Raised by page driver implementations for browser-level faults."""


class PageTimeoutError(PageDriverError):
    """Raised by page driver implementations when a bounded wait expires."""

"""PageDriver protocol for browser access during a lookup.

The lookup workflow never touches a browser directly. It talks to a
PageDriver, a small async interface over one page of one browser session,
and it obtains drivers from a SessionFactory which hands out a fresh,
exclusive session per identifier.

Selectors are CSS selectors. Timeouts are in seconds.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol


class PageDriver(Protocol):
    """Async interface to one rendered page.

    Waits are bounded; reads are immediate and report absence as None
    rather than raising. Browser-level faults surface as PageDriverError.
    """

    async def open(
        self, url: str, ready_condition: str, timeout: float
    ) -> None:
        """Navigate to url and wait for ready_condition.

        Args:
            url: The page to open.
            ready_condition: Load state to wait for ("load",
                "domcontentloaded", "networkidle").
            timeout: Maximum seconds to wait.

        Raises:
            PageTimeoutError: If the page does not reach the load state in time.
            PageDriverError: If navigation fails outright.
        """
        ...

    async def await_selector(self, selector: str, timeout: float) -> bool:
        """Wait until an element matching selector is attached.

        Returns:
            True if the element appeared, False if the wait timed out.
        """
        ...

    async def fill_and_submit(self, selector: str, text: str) -> None:
        """Type text into the input matching selector and press Enter."""
        ...

    async def read_attribute(self, selector: str, name: str) -> str | None:
        """Read an attribute of the first element matching selector."""
        ...

    async def read_text(self, selector: str) -> str | None:
        """Read the trimmed text content of the first element matching selector."""
        ...

    async def find_link_by_text(
        self, container_selector: str, text_fragment: str
    ) -> str | None:
        """Find the first anchor whose text contains text_fragment.

        Only anchors inside the first element matching container_selector
        are considered; a selector list picks whichever of its matches
        comes first in the document.

        Returns:
            The absolute href of that anchor, or None if no anchor qualifies.
        """
        ...

    async def close(self) -> None:
        """Release the page."""
        ...


class SessionFactory(Protocol):
    """Hands out one exclusive, freshly initialized PageDriver per lookup."""

    def session(self) -> AbstractAsyncContextManager[PageDriver]:
        """Open a new session; the driver is closed when the context exits."""
        ...

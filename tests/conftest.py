"""Shared fixtures for gtinscout tests."""

import asyncio
import threading
from collections.abc import Generator

import pytest
from aiohttp import web

from gtinscout.config import LookupConfig
from tests.mock_site import create_app


@pytest.fixture
def config() -> LookupConfig:
    """Default configuration with waits shortened for tests."""
    return LookupConfig(timeout=0.05, settle_delay=0)


class MockSiteServer:
    """Serves the mock product site from its own event loop thread.

    The OS picks the port; ``url`` is known once start() returns.
    """

    def __init__(self) -> None:
        self.url = ""
        self._loop = asyncio.new_event_loop()
        self._runner = web.AppRunner(create_app())
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def start(self) -> None:
        self._thread.start()
        if not self._ready.wait(timeout=5.0):
            raise RuntimeError("mock site did not start")

    def _serve(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_until_complete(self._runner.setup())
        site = web.TCPSite(self._runner, "127.0.0.1", 0)
        self._loop.run_until_complete(site.start())
        host, port = self._runner.addresses[0][:2]
        self.url = f"http://{host}:{port}/"
        self._ready.set()
        self._loop.run_forever()

    def stop(self) -> None:
        asyncio.run_coroutine_threadsafe(
            self._runner.cleanup(), self._loop
        ).result(timeout=2.0)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=2.0)
        if not self._thread.is_alive():
            self._loop.close()


@pytest.fixture
def site_url() -> Generator[str, None, None]:
    """Start the mock product site and yield its start page URL."""
    server = MockSiteServer()
    server.start()
    yield server.url
    server.stop()

"""Playwright-based page driver.

This module provides the browser-backed PageDriver and the session factory
that gives every lookup its own browser context.
"""

from gtinscout.driver.playwright_driver.playwright_driver import (
    PlaywrightPageDriver,
    PlaywrightSessionFactory,
)

__all__ = ["PlaywrightPageDriver", "PlaywrightSessionFactory"]

"""The per-identifier lookup workflow.

One run drives one identifier through the lookup state machine::

    Init -> Navigated -> Searching -> Classified -> Extracting -> Done
                                          |
                                          +-> Done (NoResult / StructureMissing)

with Error reachable from every state. The run always produces a
LookupOutcome; failures that end the lookup become Error outcomes carrying
the ErrorKind and message, they are never raised to the caller.

The workflow does not own the page driver. The caller opens a fresh
session per identifier and closes it afterwards, whatever the outcome.
"""

from __future__ import annotations

import asyncio
import logging

from gtinscout.common.exceptions import (
    LookupFailure,
    NavigationFailure,
    PageDriverError,
    SearchFormMissing,
    UnexpectedLookupFailure,
)
from gtinscout.common.page_driver import PageDriver
from gtinscout.config import LookupConfig
from gtinscout.data_types import (
    Classification,
    LookupOutcome,
    LookupState,
)
from gtinscout.lookup.classifier import ResultClassifier
from gtinscout.lookup.extractor import FieldExtractor

logger = logging.getLogger(__name__)


class LookupWorkflow:
    """Runs one lookup per identifier against a page driver.

    Args:
        config: Site URL, selectors, fields, timeouts and settle delay.
        log: Logger for the run log. Defaults to this module's logger.
        classifier: Result classifier (built from config if omitted).
        extractor: Field extractor (built from config if omitted).

    Example:
        workflow = LookupWorkflow(LookupConfig())
        async with factory.session() as driver:
            outcome = await workflow.run("3283950912914", driver)
    """

    def __init__(
        self,
        config: LookupConfig,
        log: logging.Logger | None = None,
        classifier: ResultClassifier | None = None,
        extractor: FieldExtractor | None = None,
    ) -> None:
        self.config = config
        self.log = log or logger
        self.classifier = classifier or ResultClassifier(config, self.log)
        self.extractor = extractor or FieldExtractor(config, self.log)
        self.state = LookupState.INIT

    def _transition(self, identifier: str, state: LookupState) -> None:
        self.log.debug(
            f"{identifier}: {self.state.value} -> {state.value}",
            extra={"identifier": identifier, "state": state.value},
        )
        self.state = state

    async def run(self, identifier: str, driver: PageDriver) -> LookupOutcome:
        """Look up one identifier.

        Args:
            identifier: The trimmed GTIN.
            driver: A freshly opened page driver, used exclusively by this run.

        Returns:
            The lookup outcome. Never raises for lookup failures.
        """
        self.state = LookupState.INIT
        try:
            outcome = await self._run(identifier, driver)
        except LookupFailure as e:
            return self._fail(e)
        except Exception as e:
            self.log.error(
                f"Unexpected error looking up {identifier}: {e}",
                exc_info=True,
                extra={"identifier": identifier},
            )
            return self._fail(
                UnexpectedLookupFailure(
                    f"{type(e).__name__}: {e}",
                    identifier,
                    {"state": self.state.value},
                )
            )
        self._transition(identifier, LookupState.DONE)
        return outcome

    def _fail(self, failure: LookupFailure) -> LookupOutcome:
        self._transition(failure.identifier, LookupState.ERROR)
        self.log.error(
            f"Lookup failed for {failure.identifier} "
            f"[{failure.kind.value}]: {failure.message}",
            extra={
                "identifier": failure.identifier,
                "error_kind": failure.kind.value,
                "context": failure.context,
            },
        )
        return LookupOutcome.error(
            failure.identifier, failure.kind, failure.message
        )

    async def _run(self, identifier: str, driver: PageDriver) -> LookupOutcome:
        await self._navigate(identifier, driver)
        self._transition(identifier, LookupState.NAVIGATED)

        await self._submit_search(identifier, driver)
        self._transition(identifier, LookupState.SEARCHING)

        result = await self.classifier.classify(driver, identifier)
        self._transition(identifier, LookupState.CLASSIFIED)
        self.log.info(
            f"Classified {identifier} as {result.classification.value} "
            f"({result.reason})",
            extra={
                "identifier": identifier,
                "classification": result.classification.value,
            },
        )

        if result.classification is not Classification.FOUND:
            return LookupOutcome(
                identifier=identifier, classification=result.classification
            )

        # Parts of the result page render after the marker appears.
        if self.config.settle_delay:
            await asyncio.sleep(self.config.settle_delay)

        self._transition(identifier, LookupState.EXTRACTING)
        fields = await self.extractor.extract(driver, identifier)
        return LookupOutcome(
            identifier=identifier,
            classification=Classification.FOUND,
            fields=fields,
        )

    async def _navigate(self, identifier: str, driver: PageDriver) -> None:
        url = self.config.site_url
        self.log.info(
            f"Opening {url} for {identifier}", extra={"identifier": identifier}
        )
        try:
            await driver.open(
                url, self.config.ready_condition, self.config.timeout
            )
        except PageDriverError as e:
            raise NavigationFailure(
                f"Could not load {url}: {e}",
                identifier,
                {"url": url, "ready_condition": self.config.ready_condition},
            ) from e

    async def _submit_search(
        self, identifier: str, driver: PageDriver
    ) -> None:
        selector = self.config.selectors.search_box
        found = await driver.await_selector(selector, self.config.timeout)
        if not found:
            raise SearchFormMissing(
                "Search input never appeared",
                identifier,
                {"selector": selector, "timeout_seconds": self.config.timeout},
            )
        self.log.info(
            f"Entering identifier {identifier}",
            extra={"identifier": identifier},
        )
        await driver.fill_and_submit(selector, identifier)

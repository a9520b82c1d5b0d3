"""Result classification after a search has been submitted.

The classifier waits for either marker to appear and then decides:

- a no-results marker whose text contains the configured phrase is NoResult;
- a no-results marker with any other text is StructureMissing, since the
  marker element alone does not prove the search came back empty;
- a results marker with the data container present is Found;
- a results marker without the data container is StructureMissing;
- neither marker within the timeout raises ClassificationTimeout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gtinscout.common.exceptions import ClassificationTimeout
from gtinscout.common.page_driver import PageDriver
from gtinscout.config import LookupConfig
from gtinscout.data_types import Classification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationResult:
    """A classification and the reason it was chosen."""

    classification: Classification
    reason: str


class ResultClassifier:
    """Decides how a submitted search ended.

    Args:
        config: Selectors, no-results phrase and timeout.
        log: Logger for the run log. Defaults to this module's logger.
    """

    def __init__(
        self, config: LookupConfig, log: logging.Logger | None = None
    ) -> None:
        self.config = config
        self.log = log or logger

    @property
    def marker_selector(self) -> str:
        """Selector matching either the results or the no-results marker."""
        selectors = self.config.selectors
        return f"{selectors.results_marker}, {selectors.no_results_marker}"

    async def classify(
        self, driver: PageDriver, identifier: str
    ) -> ClassificationResult:
        """Classify the page currently shown by driver.

        Raises:
            ClassificationTimeout: If no marker appears within the timeout.
        """
        selectors = self.config.selectors
        appeared = await driver.await_selector(
            self.marker_selector, self.config.timeout
        )
        if not appeared:
            raise ClassificationTimeout(
                identifier, self.marker_selector, self.config.timeout
            )

        marker_text = await driver.read_text(selectors.no_results_marker)
        if marker_text is not None:
            return self._classify_no_results_marker(identifier, marker_text)

        container = await driver.read_text(selectors.result_container)
        if container is None:
            self.log.warning(
                f"Result container missing for {identifier}: results marker "
                f"present but '{selectors.result_container}' absent",
                extra={"identifier": identifier},
            )
            return ClassificationResult(
                Classification.STRUCTURE_MISSING,
                f"result container '{selectors.result_container}' absent",
            )

        self.log.info(
            f"Product found for {identifier}", extra={"identifier": identifier}
        )
        return ClassificationResult(Classification.FOUND, "results marker")

    def _classify_no_results_marker(
        self, identifier: str, marker_text: str
    ) -> ClassificationResult:
        phrase = self.config.no_results_phrase
        if phrase.casefold() in marker_text.casefold():
            self.log.info(
                f"No product found for {identifier}",
                extra={"identifier": identifier},
            )
            return ClassificationResult(
                Classification.NO_RESULT, "no-results phrase matched"
            )

        self.log.warning(
            f"No-results marker text mismatch for {identifier}: "
            f"expected '{phrase}', got '{marker_text[:80]}'",
            extra={"identifier": identifier},
        )
        return ClassificationResult(
            Classification.STRUCTURE_MISSING, "no-results marker text mismatch"
        )

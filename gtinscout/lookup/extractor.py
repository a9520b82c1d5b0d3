"""Field extraction from a result page.

Every configured field is extracted on its own. A field that cannot be
read is recorded as an empty string and the reason goes to the run log;
it never fails the lookup.
"""

from __future__ import annotations

import logging

from typing_extensions import assert_never

from gtinscout.common.exceptions import FieldExtractionFailure, PageDriverError
from gtinscout.common.page_driver import PageDriver
from gtinscout.config import FieldKind, FieldSpec, LookupConfig

logger = logging.getLogger(__name__)


class FieldExtractor:
    """Reads the configured fields from a page classified Found.

    Args:
        config: Field definitions.
        log: Logger for the run log. Defaults to this module's logger.
    """

    def __init__(
        self, config: LookupConfig, log: logging.Logger | None = None
    ) -> None:
        self.config = config
        self.log = log or logger

    async def extract(
        self, driver: PageDriver, identifier: str
    ) -> dict[str, str]:
        """Extract all fields.

        Returns:
            Mapping of every configured field name to its value; fields
            that could not be extracted map to an empty string.
        """
        values: dict[str, str] = {}
        for spec in self.config.fields:
            try:
                values[spec.name] = await self.extract_field(driver, spec)
            except FieldExtractionFailure as e:
                self.log.info(
                    f"{spec.name} not found for {identifier}: {e.reason}",
                    extra={"identifier": identifier, "field": spec.name},
                )
                values[spec.name] = ""
            else:
                self.log.info(
                    f"{spec.name} found for {identifier}: {values[spec.name]}",
                    extra={"identifier": identifier, "field": spec.name},
                )
        return values

    async def extract_field(self, driver: PageDriver, spec: FieldSpec) -> str:
        """Extract a single field.

        Raises:
            FieldExtractionFailure: If the field is absent or empty, or the
                driver failed while reading it.
        """
        try:
            value = await self._read(driver, spec)
        except PageDriverError as e:
            raise FieldExtractionFailure(spec.name, f"driver error: {e}") from e

        if value is None:
            raise FieldExtractionFailure(
                spec.name, self._describe_absence(spec)
            )
        value = value.strip()
        if not value:
            raise FieldExtractionFailure(spec.name, "empty value")
        return value

    async def _read(self, driver: PageDriver, spec: FieldSpec) -> str | None:
        match spec.kind:
            case FieldKind.ATTRIBUTE:
                assert spec.attribute is not None
                return await driver.read_attribute(
                    spec.selector, spec.attribute
                )
            case FieldKind.TEXT:
                return await driver.read_text(spec.selector)
            case FieldKind.LINK:
                assert spec.link_text is not None
                return await driver.find_link_by_text(
                    spec.selector, spec.link_text
                )
            case _:
                assert_never(spec.kind)

    @staticmethod
    def _describe_absence(spec: FieldSpec) -> str:
        if spec.kind is FieldKind.LINK:
            return (
                f"no link containing '{spec.link_text}' in '{spec.selector}'"
            )
        if spec.kind is FieldKind.ATTRIBUTE:
            return f"no '{spec.attribute}' on '{spec.selector}'"
        return f"no element '{spec.selector}'"

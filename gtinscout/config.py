"""Configuration models for a lookup run.

All site-specific knowledge (URL, selectors, field definitions, timeouts)
lives here as data. The lookup workflow is the same for every site; only
the configuration differs.

Defaults describe the ecoinform.de product search.

Example::

    from gtinscout.config import LookupConfig

    config = LookupConfig.from_file(Path("ecoinform.json"))
    config = config.model_copy(update={"headless": False})
"""

from __future__ import annotations

import codecs
from enum import Enum
from pathlib import Path

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

__all__ = [
    "FieldKind",
    "FieldSpec",
    "InputConfig",
    "LookupConfig",
    "OutputConfig",
    "SelectorConfig",
    "ValidationError",
]


class FieldKind(str, Enum):
    """How a field is read from the result page."""

    ATTRIBUTE = "attribute"
    TEXT = "text"
    LINK = "link"


class FieldSpec(BaseModel):
    """Definition of one extracted field.

    Attributes:
        name: Field name used in outcomes and output headers.
        kind: attribute reads ``attribute`` of the element at ``selector``;
            text reads its text; link finds the first anchor inside
            ``selector`` whose text contains ``link_text``.
        selector: CSS selector of the element (or link container).
        attribute: Attribute name, for attribute fields.
        link_text: Marker phrase in the anchor text, for link fields.
    """

    name: str
    kind: FieldKind
    selector: str
    attribute: str | None = None
    link_text: str | None = None

    @model_validator(mode="after")
    def _check_kind_arguments(self) -> FieldSpec:
        if self.kind is FieldKind.ATTRIBUTE and not self.attribute:
            raise ValueError(f"attribute field '{self.name}' needs 'attribute'")
        if self.kind is FieldKind.LINK and not self.link_text:
            raise ValueError(f"link field '{self.name}' needs 'link_text'")
        return self


class SelectorConfig(BaseModel):
    """Selectors that drive navigation and result classification."""

    search_box: str = "#suche"
    results_marker: str = ".produkt"
    no_results_marker: str = ".keinergebnis"
    result_container: str = "div.dval"


class InputConfig(BaseModel):
    """How identifiers are read from the input table.

    Attributes:
        delimiter: Column delimiter.
        encoding: Text encoding of the file. The default also strips a
            UTF-8 byte order mark; exports from spreadsheet tools are often
            "cp1252".
        identifier_column: Column holding the GTIN (matched case-insensitively).
        source_column: Optional column used for filtering rows.
        source_value: If set, only rows whose source column equals this
            value are read.
    """

    delimiter: str = ";"
    encoding: str = "utf-8-sig"
    identifier_column: str = "gtin"
    source_column: str | None = "source"
    source_value: str | None = None

    @field_validator("encoding")
    @classmethod
    def _check_encoding(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError as e:
            raise ValueError(f"unknown encoding '{value}'") from e
        return value


class OutputConfig(BaseModel):
    """Layout and write policy of the output table.

    Attributes:
        delimiter: Column delimiter.
        identifier_header: Header of the first column.
        fields: Ordered field names written after the identifier.
        required_fields: A row is written only if at least one of these
            fields is non-empty.
    """

    delimiter: str = ","
    identifier_header: str = "gtin"
    fields: list[str] = Field(
        default_factory=lambda: ["pdf_url", "safety_sheet_url"]
    )
    required_fields: list[str] = Field(default_factory=lambda: ["pdf_url"])

    @model_validator(mode="after")
    def _check_required_subset(self) -> OutputConfig:
        if not self.required_fields:
            raise ValueError("required_fields must name at least one field")
        missing = set(self.required_fields) - set(self.fields)
        if missing:
            raise ValueError(
                f"required_fields not in output fields: {sorted(missing)}"
            )
        return self


def _default_fields() -> list[FieldSpec]:
    return [
        FieldSpec(
            name="title",
            kind=FieldKind.ATTRIBUTE,
            selector='meta[name="title"]',
            attribute="content",
        ),
        FieldSpec(
            name="responsible_party",
            kind=FieldKind.TEXT,
            selector="div.dval div.div_tval.mid_1188 b.tv_name + *",
        ),
        FieldSpec(
            name="pdf_url",
            kind=FieldKind.LINK,
            selector="div.dval",
            link_text="pdf-Datenblatt",
        ),
        FieldSpec(
            name="safety_sheet_url",
            kind=FieldKind.LINK,
            selector="div.dval",
            link_text="Sicherheitsdatenblatt",
        ),
    ]


class LookupConfig(BaseModel):
    """Root configuration of a lookup run.

    Attributes:
        site_url: Page holding the search form.
        ready_condition: Load state awaited after opening site_url.
        headless: Run the browser without a window.
        browser_type: Playwright browser ("chromium", "firefox", "webkit").
        timeout: Seconds allowed for each bounded wait.
        settle_delay: Seconds to pause after a result page is classified
            Found, so asynchronously rendered parts of the page can appear
            before fields are read.
        no_results_phrase: Text the no-results marker must contain for a
            lookup to count as NoResult.
    """

    site_url: str = "https://www.ecoinform.de/"
    ready_condition: str = "networkidle"
    headless: bool = True
    browser_type: str = "chromium"
    timeout: float = Field(default=60.0, gt=0)
    settle_delay: float = Field(default=2.0, ge=0)
    no_results_phrase: str = "Keine Produkte gefunden"
    selectors: SelectorConfig = Field(default_factory=SelectorConfig)
    fields: list[FieldSpec] = Field(default_factory=_default_fields)
    input: InputConfig = Field(default_factory=InputConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @model_validator(mode="after")
    def _check_field_names(self) -> LookupConfig:
        names = [spec.name for spec in self.fields]
        if len(names) != len(set(names)):
            raise ValueError("field names must be unique")
        unknown = set(self.output.fields) - set(names)
        if unknown:
            raise ValueError(
                f"output fields without a field definition: {sorted(unknown)}"
            )
        return self

    @classmethod
    def from_file(cls, path: Path) -> LookupConfig:
        """Load a configuration from a JSON file.

        Raises:
            OSError: If the file cannot be read.
            pydantic.ValidationError: If the content is invalid.
        """
        return cls.model_validate_json(path.read_text(encoding="utf-8"))

"""
GTIN lookup and product-document harvester.

This package looks up product identifiers (GTINs) on a product-data site,
extracts a handful of attributes and document links for each, and writes the
useful results to a delimited output table.

The pieces are layered the same way throughout:

- ``gtinscout.lookup`` holds the per-identifier workflow (classification and
  field extraction) written against an abstract page driver.
- ``gtinscout.driver`` holds the batch orchestrator and the concrete
  Playwright page driver.
- ``gtinscout.common`` holds the record source, result sink and errors.
"""

__version__ = "0.1.0"

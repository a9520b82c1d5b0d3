"""Per-identifier lookup: classification, field extraction and the workflow."""

from gtinscout.lookup.classifier import (
    ClassificationResult,
    ResultClassifier,
)
from gtinscout.lookup.extractor import FieldExtractor
from gtinscout.lookup.workflow import LookupWorkflow

__all__ = [
    "ClassificationResult",
    "FieldExtractor",
    "LookupWorkflow",
    "ResultClassifier",
]

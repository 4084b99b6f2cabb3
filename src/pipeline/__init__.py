"""Resumable batch pipeline for classifying Mercado Público purchase orders.

Only the leaf modules (config, models) are re-exported here; scrapers,
classifiers and utils import them, so the runner and stores are imported
from their own modules (``pipeline.runner``, ``pipeline.progress``, ...).
"""

from .config import PipelineConfig, ConfigurationError
from .models import (
    RunMode,
    Label,
    Confidence,
    FailureKind,
    LineItem,
    FetchResult,
    ExtractionResult,
    Classification,
    CodeOutcome,
    RunSummary,
)

__all__ = [
    'PipelineConfig',
    'ConfigurationError',
    'RunMode',
    'Label',
    'Confidence',
    'FailureKind',
    'LineItem',
    'FetchResult',
    'ExtractionResult',
    'Classification',
    'CodeOutcome',
    'RunSummary',
]

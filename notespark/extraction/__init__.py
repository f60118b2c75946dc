"""
Extraction data model and error handling.

This module holds the request/result types shared by every stage of the
pipeline, the error taxonomy, and the retry orchestrator wrapped around each
provider call. Input validation lives in notespark.extraction.validation.
"""

from .models import (
    Tone,
    ProcessingDecision,
    ExtractionOptions,
    ExtractionRequest,
    OCRResult,
    MultimodalResult,
    StructuredNote,
    ExtractionResult,
    CostBreakdown,
    HealthReport,
)
from .error_handling import (
    NoteSparkError,
    ValidationError,
    TransientError,
    OperationTimeoutError,
    CapacityError,
    RetryExhaustedError,
    PermanentError,
    EmptyResponseError,
    TruncationError,
    PartialBatchFailure,
    RetryPolicy,
    RetryOrchestrator,
    ErrorClassifier,
)

__all__ = [
    # Models
    "Tone",
    "ProcessingDecision",
    "ExtractionOptions",
    "ExtractionRequest",
    "OCRResult",
    "MultimodalResult",
    "StructuredNote",
    "ExtractionResult",
    "CostBreakdown",
    "HealthReport",

    # Errors
    "NoteSparkError",
    "ValidationError",
    "TransientError",
    "OperationTimeoutError",
    "CapacityError",
    "RetryExhaustedError",
    "PermanentError",
    "EmptyResponseError",
    "TruncationError",
    "PartialBatchFailure",

    # Retry
    "RetryPolicy",
    "RetryOrchestrator",
    "ErrorClassifier",
]

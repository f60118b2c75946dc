"""
NoteSpark - cost-aware extraction of structured notes from page images.

Turns photos and scans of documents into titled, structured notes. A cheap
OCR provider handles most pages; a multimodal generative provider is used only
when OCR is not good enough or the caller asks for a composed note.

Quick Start:
    >>> from notespark import extract_note
    >>> result = await extract_note(["page1.jpg", "page2.jpg"], tone="casual")

Full Pipeline:
    >>> from notespark import create_pipeline
    >>> pipeline = create_pipeline()
    >>> result = await pipeline.extract_text("page.png")
    >>> print(result.decision, result.title)

Architecture:
- OCR-first: the multimodal provider is an escalation path, not the default
- Complexity routing: confidence, length and keyword rules decide escalation
- Partial-failure tolerance: batches succeed when enough pages produce text
- Fallback ladder: full request, reduced request, then per-page requests

Components:
- notespark.adapters: File access (local filesystem, in-memory)
- notespark.vision: OCR and multimodal provider clients, prompts
- notespark.extraction: Data model, validation, errors and retries
- notespark.core: Router, batch processor and the hybrid pipeline
- notespark.outputs: Rule-based note structuring
- notespark.storage: Response cache
- notespark.monitoring: Metrics, cost estimation, structured logging
"""

__version__ = "0.1.0"
__author__ = "NoteSpark Team"
__package_name__ = "notespark"

from typing import List, Optional, Union

# Core Pipeline
from .core.pipeline import HybridExtractionPipeline, PipelineConfig, create_pipeline
from .core.router import ComplexityRouter

# Data model
from .extraction.models import (
    ExtractionOptions,
    ExtractionRequest,
    ExtractionResult,
    ProcessingDecision,
    StructuredNote,
    Tone,
)

# Errors
from .extraction.error_handling import (
    NoteSparkError,
    ValidationError,
    TransientError,
    PermanentError,
    EmptyResponseError,
    PartialBatchFailure,
)

# Clients
from .vision.ocr_client import OCRClient
from .vision.multimodal_client import MultimodalClient

# Output structuring
from .outputs.structurer import TextStructurer


async def extract_note(
    image_refs: Union[str, List[str]],
    tone: str = "professional",
    options: Optional[ExtractionOptions] = None
) -> Optional[ExtractionResult]:
    """
    High-level convenience function for note extraction.

    Args:
        image_refs: One image path, or several page images in order
        tone: professional, casual or simplified
        options: Extraction options

    Returns:
        ExtractionResult, or None when no text was detected and fallback
        is disabled

    Example:
        >>> result = await extract_note("lecture.jpg")
        >>> print(result.title)
        >>> print(result.structured_text)
    """
    pipeline = create_pipeline()
    request = ExtractionRequest.create(image_refs, tone, options)
    return await pipeline.process_request(request)


# Public API exports
__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__package_name__",
    # Core classes
    "HybridExtractionPipeline",
    "PipelineConfig",
    "ComplexityRouter",
    "OCRClient",
    "MultimodalClient",
    "TextStructurer",
    # Data model
    "ExtractionOptions",
    "ExtractionRequest",
    "ExtractionResult",
    "ProcessingDecision",
    "StructuredNote",
    "Tone",
    # Errors
    "NoteSparkError",
    "ValidationError",
    "TransientError",
    "PermanentError",
    "EmptyResponseError",
    "PartialBatchFailure",
    # Convenience functions
    "create_pipeline",
    "extract_note",
]

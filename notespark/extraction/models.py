"""
Data model for hybrid note extraction.

Requests, per-provider results and the final ExtractionResult handed back to
the application layer. Results are plain dataclasses; the pipeline keeps no
reference to them after returning.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Tone(Enum):
    """Writing style requested for composed notes."""
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    SIMPLIFIED = "simplified"

    @classmethod
    def normalize(cls, value: Any) -> "Tone":
        """Map any input onto a supported tone, defaulting to professional."""
        if isinstance(value, Tone):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.PROFESSIONAL


class ProcessingDecision(Enum):
    """Path chosen for a request. Set once per request."""
    OCR_ONLY = "ocr_only"
    HYBRID_BATCH = "hybrid_batch"
    MULTIMODAL_FALLBACK = "multimodal_fallback"
    INDIVIDUAL_FALLBACK = "individual_fallback"


@dataclass(frozen=True)
class ExtractionOptions:
    """Per-request knobs. None for quality_threshold means the pipeline default."""
    preserve_layout: bool = True
    extract_tables: bool = True
    enhance_handwriting: bool = False
    quality_threshold: Optional[float] = None
    allow_fallback: bool = True
    complexity_detection: bool = True
    preserve_page_breaks: bool = True
    timeout_seconds: Optional[float] = None


@dataclass(frozen=True)
class ExtractionRequest:
    """One or more page images plus tone and options."""
    image_refs: Tuple[str, ...]
    tone: Tone = Tone.PROFESSIONAL
    options: ExtractionOptions = field(default_factory=ExtractionOptions)

    @classmethod
    def create(
        cls,
        image_refs,
        tone: Any = Tone.PROFESSIONAL,
        options: Optional[ExtractionOptions] = None
    ) -> "ExtractionRequest":
        if isinstance(image_refs, str):
            image_refs = [image_refs]
        return cls(
            image_refs=tuple(image_refs),
            tone=Tone.normalize(tone),
            options=options or ExtractionOptions()
        )


@dataclass(frozen=True)
class BoundingBox:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class TextBlock:
    text: str
    bounding_box: BoundingBox
    confidence: float


@dataclass
class OCRResult:
    """Text detected by the OCR provider for a single image."""
    text: str
    confidence: float
    blocks: List[TextBlock] = field(default_factory=list)


@dataclass
class MultimodalResult:
    """Text returned by the multimodal provider after the fallback ladder."""
    text: str
    processing_method: str
    finish_reason: Optional[str] = None
    truncated: bool = False
    page_count: int = 1
    confidence: float = 0.95
    has_tables: bool = False
    has_handwriting: bool = False
    document_type: str = "text"
    processing_time_ms: float = 0.0

    @property
    def used_individual_fallback(self) -> bool:
        return self.processing_method == "individual_fallback"


@dataclass
class StructuredNote:
    """Title plus structured markup body."""
    title: str
    body: str


@dataclass
class ResultMetadata:
    page_count: int = 1
    document_type: str = "document"
    has_tables: bool = False
    has_handwriting: bool = False
    processing_time_ms: float = 0.0
    processing_method: str = ""
    fallback_reason: Optional[str] = None
    failed_pages: List[int] = field(default_factory=list)
    ocr_confidence: Optional[float] = None
    cost_tier: str = "low"
    text_length: int = 0


@dataclass
class ExtractionResult:
    """Final result returned to the caller."""
    text: str
    structured_text: str
    title: str
    confidence: float
    decision: ProcessingDecision
    metadata: ResultMetadata = field(default_factory=ResultMetadata)

    @property
    def multimodal_used(self) -> bool:
        return self.decision in (
            ProcessingDecision.MULTIMODAL_FALLBACK,
            ProcessingDecision.INDIVIDUAL_FALLBACK
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "structured_text": self.structured_text,
            "title": self.title,
            "confidence": self.confidence,
            "decision": self.decision.value,
            "metadata": {
                "page_count": self.metadata.page_count,
                "document_type": self.metadata.document_type,
                "has_tables": self.metadata.has_tables,
                "has_handwriting": self.metadata.has_handwriting,
                "processing_time_ms": self.metadata.processing_time_ms,
                "processing_method": self.metadata.processing_method,
                "fallback_reason": self.metadata.fallback_reason,
                "failed_pages": list(self.metadata.failed_pages),
                "ocr_confidence": self.metadata.ocr_confidence,
                "cost_tier": self.metadata.cost_tier,
                "text_length": self.metadata.text_length,
            },
        }


@dataclass(frozen=True)
class CostBreakdown:
    """Estimated spend for a processing method. Reporting only."""
    ocr_cost: float
    text_model_cost: float
    multimodal_cost: float
    total_cost: float
    method: str


@dataclass
class HealthReport:
    ocr_healthy: bool
    multimodal_healthy: bool
    recommended_method: str
    status: str = "healthy"
    system: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "ocr_healthy": self.ocr_healthy,
            "multimodal_healthy": self.multimodal_healthy,
            "recommended_method": self.recommended_method,
            "system": dict(self.system),
        }

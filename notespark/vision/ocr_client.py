"""
Cheap OCR provider client.

Calls a Cloud Vision style images:annotate endpoint for one image at a time.
A semaphore shared by every caller of the client caps the number of OCR calls
in flight; extra calls queue, or fail fast with CapacityError when
queue_when_busy is off.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..adapters.file_accessor import FileAccessor, LocalFileAccessor
from ..extraction.error_handling import (
    CapacityError,
    PermanentError,
    RetryOrchestrator,
    RetryPolicy,
    TransientError,
)
from ..extraction.models import BoundingBox, OCRResult, TextBlock
from .schemas import AnnotateImageResponse, BatchAnnotateImagesResponse, Vertex
from .transport import client_session, parse_model, post_json

logger = logging.getLogger(__name__)

# google.rpc codes that will not change on retry
PERMANENT_PROVIDER_CODES = {3, 5, 7, 16}


def _default_ocr_policy() -> RetryPolicy:
    return RetryPolicy(max_retries=2, base_delay=1.0, max_delay=8.0, timeout_seconds=30.0)


@dataclass
class OCRClientConfig:
    """Configuration for the OCR client."""

    # Provider
    api_key: Optional[str] = None
    base_url: str = "https://vision.googleapis.com/v1"
    language_hints: Tuple[str, ...] = ("en", "es", "fr", "de")

    # Concurrency
    max_in_flight: int = 3
    queue_when_busy: bool = True

    # Scoring
    default_confidence: float = 0.9

    # Retry / timeout
    timeout_seconds: float = 30.0
    retry_policy: RetryPolicy = field(default_factory=_default_ocr_policy)

    @classmethod
    def from_env(cls) -> "OCRClientConfig":
        return cls(
            api_key=os.getenv("GOOGLE_CLOUD_VISION_API_KEY") or None,
            base_url=os.getenv("GOOGLE_VISION_BASE_URL", "https://vision.googleapis.com/v1"),
            max_in_flight=int(os.getenv("NOTESPARK_OCR_MAX_IN_FLIGHT", "3")),
        )


def bounding_box_from_vertices(vertices: List[Vertex]) -> BoundingBox:
    """Axis-aligned rectangle around a polygon, clamped to non-negative values."""
    if not vertices:
        return BoundingBox()

    xs = [max(0.0, v.x or 0.0) for v in vertices]
    ys = [max(0.0, v.y or 0.0) for v in vertices]
    min_x, max_x = min(xs), max(xs)
    min_y, max_y = min(ys), max(ys)

    return BoundingBox(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)


class OCRClient:
    """
    Client for the OCR provider.

    Returns None when the provider detects no text; that is not an error.
    """

    def __init__(
        self,
        config: Optional[OCRClientConfig] = None,
        file_accessor: Optional[FileAccessor] = None,
        orchestrator: Optional[RetryOrchestrator] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.config = config or OCRClientConfig()
        self.file_accessor = file_accessor or LocalFileAccessor()
        self.orchestrator = orchestrator or RetryOrchestrator(self.config.retry_policy)
        self.http_client = http_client

        self._gate = asyncio.Semaphore(self.config.max_in_flight)
        self._in_flight = 0

        if not self.config.api_key:
            logger.warning("OCRClient: API key not configured")
        logger.info(f"OCRClient initialized (max in flight: {self.config.max_in_flight})")

    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def extract_text(self, image_ref: str) -> Optional[OCRResult]:
        """
        Extract text from a single image.

        Args:
            image_ref: Path or file:// URI of a validated image

        Returns:
            OCRResult, or None if no text was detected

        Raises:
            PermanentError: Missing API key, unreadable file, rejected request
            RetryExhaustedError: Transient failures on every attempt
        """
        operation = "ocr.extract_text"
        if not self.is_configured():
            raise PermanentError(f"{operation}: OCR API key not configured", operation)

        loop = asyncio.get_running_loop()
        try:
            content = await loop.run_in_executor(None, self.file_accessor.read_as_base64, image_ref)
        except OSError as e:
            raise PermanentError(f"{operation}: failed to read image file: {e}", operation)

        async def attempt() -> Optional[OCRResult]:
            async with self._slot(operation):
                annotation = await self._annotate(content, operation)
            return self._to_result(annotation)

        result = await self.orchestrator.with_retry(
            attempt, operation, self.config.retry_policy.with_timeout(self.config.timeout_seconds)
        )

        if result is None:
            logger.info(f"No text detected in {image_ref}")
        else:
            logger.info(
                f"OCR extracted {len(result.text)} chars from {image_ref} "
                f"(confidence {result.confidence:.3f}, {len(result.blocks)} blocks)"
            )
        return result

    @asynccontextmanager
    async def _slot(self, operation: str):
        if not self.config.queue_when_busy and self._gate.locked():
            raise CapacityError(
                f"{operation}: {self.config.max_in_flight} OCR calls already in flight",
                operation
            )
        async with self._gate:
            self._in_flight += 1
            try:
                yield
            finally:
                self._in_flight -= 1

    def _build_request(self, content: str) -> Dict[str, Any]:
        return {
            "requests": [
                {
                    "image": {"content": content},
                    "features": [{"type": "TEXT_DETECTION", "maxResults": 1}],
                    "imageContext": {"languageHints": list(self.config.language_hints)},
                }
            ]
        }

    async def _annotate(self, content: str, operation: str) -> Optional[AnnotateImageResponse]:
        url = f"{self.config.base_url.rstrip('/')}/images:annotate"
        async with client_session(self.http_client, self.config.timeout_seconds) as client:
            body = await post_json(
                client,
                url,
                self._build_request(content),
                operation,
                params={"key": self.config.api_key}
            )

        parsed = parse_model(BatchAnnotateImagesResponse, body, operation)
        if not parsed.responses:
            return None

        first = parsed.responses[0]
        if first.error is not None and (first.error.code or first.error.message):
            message = f"{operation}: provider error {first.error.code}: {first.error.message}"
            if first.error.code in PERMANENT_PROVIDER_CODES:
                raise PermanentError(message, operation)
            raise TransientError(message, operation)
        return first

    def _to_result(self, annotation: Optional[AnnotateImageResponse]) -> Optional[OCRResult]:
        if annotation is None or not annotation.text_annotations:
            return None

        annotations = annotation.text_annotations
        text = annotations[0].description.strip()
        if not text:
            return None

        confidences = [self._confidence_of(a.confidence) for a in annotations]
        average = sum(confidences) / len(confidences)

        blocks = [
            TextBlock(
                text=a.description,
                bounding_box=bounding_box_from_vertices(
                    a.bounding_poly.vertices if a.bounding_poly else []
                ),
                confidence=self._confidence_of(a.confidence)
            )
            for a in annotations[1:]
        ]

        return OCRResult(text=text, confidence=min(1.0, max(0.0, average)), blocks=blocks)

    def _confidence_of(self, value: Optional[float]) -> float:
        if value is None:
            return self.config.default_confidence
        return min(1.0, max(0.0, value))

"""
Hybrid extraction pipeline.

Orchestrates the cost-aware path for turning page images into structured
notes:

    validate -> OCR (retried, batched) -> route -> [cache] -> rule-based structuring
                                              +-> multimodal composition (fallback ladder)

Every request records its outcome in the metrics recorder. Collaborators are
injected so that tests and applications can supply their own clients.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx

from ..adapters.file_accessor import FileAccessor, LocalFileAccessor
from ..extraction.error_handling import (
    NoteSparkError,
    PartialBatchFailure,
    PermanentError,
    RetryOrchestrator,
    ValidationError,
)
from ..extraction.models import (
    CostBreakdown,
    ExtractionOptions,
    ExtractionRequest,
    ExtractionResult,
    HealthReport,
    OCRResult,
    ProcessingDecision,
    ResultMetadata,
    StructuredNote,
    Tone,
)
from ..extraction.validation import MAX_IMAGE_SIZE_BYTES, InputValidator, ValidatedImage
from ..monitoring.cost import CostEstimator
from ..monitoring.metrics import MetricsRecorder
from ..monitoring.structured_logging import system_snapshot, trace_operation
from ..outputs import rules
from ..outputs.structurer import TextStructurer, parse_composed_note
from ..storage.cache import ResponseCache, make_cache_key
from ..vision.image_processor import ImageProcessor
from ..vision.multimodal_client import MultimodalClient, MultimodalClientConfig
from ..vision.ocr_client import OCRClient, OCRClientConfig
from .batch import ParallelBatchProcessor, merge_pages
from .router import ComplexityRouter

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Configuration for the hybrid extraction pipeline."""

    # Routing
    quality_threshold: float = 0.7
    batch_success_ratio: float = 0.7

    # Batch processing
    parallel_limit: int = 3
    max_images_per_request: int = 10

    # Caching
    enable_caching: bool = True
    cache_ttl_seconds: float = 300.0
    cache_capacity: int = 50

    # Validation
    max_image_size_bytes: int = MAX_IMAGE_SIZE_BYTES
    verify_images: bool = True

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            quality_threshold=float(os.getenv("NOTESPARK_QUALITY_THRESHOLD", "0.7")),
            batch_success_ratio=float(os.getenv("NOTESPARK_BATCH_SUCCESS_RATIO", "0.7")),
            parallel_limit=int(os.getenv("NOTESPARK_PARALLEL_LIMIT", "3")),
            enable_caching=os.getenv("NOTESPARK_ENABLE_CACHE", "true").lower() in ("1", "true", "yes"),
        )


class HybridExtractionPipeline:
    """
    Cost-aware image-to-note pipeline.

    Prefers the cheap OCR path and escalates to the multimodal provider only
    when the OCR result is insufficient, too many batch pages fail, or the
    caller asks for a composed note directly.
    """

    def __init__(
        self,
        ocr_client: OCRClient,
        multimodal_client: MultimodalClient,
        validator: Optional[InputValidator] = None,
        router: Optional[ComplexityRouter] = None,
        batch_processor: Optional[ParallelBatchProcessor] = None,
        structurer: Optional[TextStructurer] = None,
        cache: Optional[ResponseCache] = None,
        metrics: Optional[MetricsRecorder] = None,
        cost_estimator: Optional[CostEstimator] = None,
        config: Optional[PipelineConfig] = None
    ):
        self.config = config or PipelineConfig()
        self.ocr_client = ocr_client
        self.multimodal_client = multimodal_client
        self.validator = validator or InputValidator(
            ocr_client.file_accessor,
            max_size_bytes=self.config.max_image_size_bytes,
            verify_decodable=self.config.verify_images
        )
        self.router = router or ComplexityRouter(self.config.quality_threshold)
        self.batch_processor = batch_processor or ParallelBatchProcessor(self.config.parallel_limit)
        self.structurer = structurer or TextStructurer()
        self.cache = cache or ResponseCache(self.config.cache_ttl_seconds, self.config.cache_capacity)
        self.metrics = metrics or MetricsRecorder()
        self.cost_estimator = cost_estimator or CostEstimator()

        logger.info("HybridExtractionPipeline initialized")

    # Public operations

    async def process_request(self, request: ExtractionRequest) -> Optional[ExtractionResult]:
        """Dispatch a request to the single-image or batch path."""
        if len(request.image_refs) == 1:
            return await self.extract_text(request.image_refs[0], request.options, request.tone)
        return await self.extract_text_batch(list(request.image_refs), request.options, request.tone)

    async def extract_text(
        self,
        image_ref: str,
        options: Optional[ExtractionOptions] = None,
        tone: Union[Tone, str] = Tone.PROFESSIONAL
    ) -> Optional[ExtractionResult]:
        """
        Extract a structured note from a single image.

        Args:
            image_ref: Path or file:// URI
            options: Extraction options
            tone: Tone for composed notes

        Returns:
            ExtractionResult, or None when OCR detected no text and fallback
            is disabled

        Raises:
            ValidationError: Bad input
            PermanentError: OCR insufficient and fallback disabled or unavailable
        """
        operation = "extract_text"
        options = options or ExtractionOptions()
        tone = Tone.normalize(tone)
        start_time = time.time()

        image = self._admit(
            operation, options, 1,
            lambda: [self.validator.validate_image(image_ref, operation)]
        )[0]

        try:
            with trace_operation(operation, images=1):
                ocr_result, ocr_error = await self._run_single_ocr(image, options)
                routing = self.router.evaluate(ocr_result, options)

                if routing.sufficient:
                    return self._finish(self._ocr_result(ocr_result, tone), start_time)

                if options.allow_fallback and self.multimodal_client.is_configured():
                    reason = self._fallback_reason(ocr_result, ocr_error)
                    logger.info(f"{operation}: escalating to multimodal ({reason})")
                    result = await self._compose_with_multimodal([image.path], tone, options, reason)
                    return self._finish(result, start_time)

                if ocr_result is None and ocr_error is None and self.ocr_client.is_configured():
                    logger.info(f"{operation}: no text detected and fallback disabled")
                    return None

                raise self._insufficient_error(operation, ocr_result, ocr_error, routing.reason, options)
        except NoteSparkError as e:
            self.metrics.record_failure(operation, e)
            raise

    async def extract_text_batch(
        self,
        image_refs: Sequence[str],
        options: Optional[ExtractionOptions] = None,
        tone: Union[Tone, str] = Tone.PROFESSIONAL
    ) -> ExtractionResult:
        """
        Extract a single structured note from several page images.

        Pages are OCR'd in parallel batches. The batch is accepted when enough
        pages produce text; failed pages keep their slot as a placeholder.
        Otherwise the whole document escalates to the multimodal provider.

        Raises:
            ValidationError: Bad input
            PartialBatchFailure: Too many failed pages and fallback disabled
        """
        operation = "extract_text_batch"
        options = options or ExtractionOptions()
        tone = Tone.normalize(tone)
        start_time = time.time()

        images = self._admit(
            operation, options, len(image_refs or ()),
            lambda: self.validator.validate_images(image_refs, operation)
        )

        try:
            with trace_operation(operation, images=len(images)):
                failure: Optional[NoteSparkError] = None

                if self.ocr_client.is_configured():
                    outcome = await self.batch_processor.process(
                        [image.path for image in images],
                        self.ocr_client.extract_text,
                        is_usable=lambda result: bool(result.text.strip())
                    )

                    if outcome.is_accepted(self.config.batch_success_ratio):
                        result = self._batch_result(outcome.results, outcome.failed_pages, tone, options)
                        return self._finish(result, start_time)

                    failure = PartialBatchFailure(
                        outcome.failed_pages, outcome.total, self.config.batch_success_ratio
                    )
                    logger.warning(f"{operation}: {failure}")
                else:
                    failure = PermanentError(f"{operation}: OCR API key not configured", operation)

                if options.allow_fallback and self.multimodal_client.is_configured():
                    logger.info(f"{operation}: escalating {len(images)} pages to multimodal")
                    result = await self._compose_with_multimodal(
                        [image.path for image in images], tone, options, "multi_page_complexity"
                    )
                    return self._finish(result, start_time)

                raise failure
        except NoteSparkError as e:
            self.metrics.record_failure(operation, e)
            raise

    async def compose_structured_note(
        self,
        image_refs: Sequence[str],
        tone: Union[Tone, str] = Tone.PROFESSIONAL,
        options: Optional[ExtractionOptions] = None
    ) -> ExtractionResult:
        """Compose a titled note directly with the multimodal provider."""
        operation = "compose_structured_note"
        options = options or ExtractionOptions()
        tone = Tone.normalize(tone)
        start_time = time.time()

        images = self._admit(
            operation, options, len(image_refs or ()),
            lambda: self.validator.validate_images(
                image_refs, operation, max_images=self.config.max_images_per_request
            )
        )

        try:
            with trace_operation(operation, images=len(images)):
                result = await self._compose_with_multimodal(
                    [image.path for image in images], tone, options, None
                )
                return self._finish(result, start_time)
        except NoteSparkError as e:
            self.metrics.record_failure(operation, e)
            raise

    async def format_text(
        self,
        text: str,
        tone: Union[Tone, str] = Tone.PROFESSIONAL,
        use_model: bool = False
    ) -> StructuredNote:
        """
        Structure already extracted text.

        Args:
            text: Raw text
            tone: Tone for model formatting
            use_model: Use the text-only model request instead of the rules

        Returns:
            StructuredNote, served from cache when available
        """
        if not text or not text.strip():
            raise ValidationError("format_text: text must be non-empty", "format_text")
        tone = Tone.normalize(tone)

        if not use_model:
            return self._structure_cached(text, tone)

        key = make_cache_key(text, tone, namespace="model")
        if self.config.enable_caching:
            cached = self.cache.get(key)
            if cached is not None:
                logger.info("format_text: using cached model formatting")
                return cached

        note = parse_composed_note(await self.multimodal_client.format_text(text, tone))
        if self.config.enable_caching:
            self.cache.set(key, note)
        return note

    async def analyze_image(self, image_ref: str) -> Dict[str, Any]:
        """Content analysis of one image via the multimodal provider."""
        image = self.validator.validate_image(image_ref, "analyze_image")
        return await self.multimodal_client.analyze_image(image.path)

    def estimate_cost(
        self,
        image_count: int,
        avg_text_length: int = 2000,
        method: Union[str, ProcessingDecision] = "ocr_only"
    ) -> CostBreakdown:
        return self.cost_estimator.estimate(image_count, avg_text_length, method)

    def get_health(self) -> HealthReport:
        """Configuration-based health with a recommended processing method."""
        return self._health_report(self.ocr_client.is_configured(), self.multimodal_client.is_configured())

    async def check_provider_health(self) -> HealthReport:
        """Health report with a live multimodal probe."""
        multimodal_healthy = await self.multimodal_client.check_health()
        return self._health_report(self.ocr_client.is_configured(), multimodal_healthy)

    def get_processing_stats(self) -> Dict[str, Any]:
        stats = self.metrics.get_processing_stats()
        stats["cache"] = self.cache.stats()
        return stats

    def clear_cache(self) -> None:
        self.cache.clear()

    def reset_metrics(self) -> None:
        self.metrics.reset()

    # Stages

    async def _run_single_ocr(self, image: ValidatedImage, options: ExtractionOptions):
        """OCR one image; provider failures are returned, not raised, when fallback may absorb them."""
        if not self.ocr_client.is_configured():
            return None, None
        try:
            return await self.ocr_client.extract_text(image.path), None
        except ValidationError:
            raise
        except NoteSparkError as e:
            if not options.allow_fallback:
                raise
            logger.warning(f"OCR failed for {image.path}, fallback allowed: {e}")
            return None, e

    def _ocr_result(self, ocr_result: OCRResult, tone: Tone) -> ExtractionResult:
        note = self._structure_cached(ocr_result.text, tone)
        return ExtractionResult(
            text=ocr_result.text,
            structured_text=note.body,
            title=note.title,
            confidence=ocr_result.confidence,
            decision=ProcessingDecision.OCR_ONLY,
            metadata=ResultMetadata(
                page_count=1,
                document_type=rules.detect_document_type(ocr_result.text),
                has_tables=rules.detect_tables(ocr_result.text),
                processing_method=ProcessingDecision.OCR_ONLY.value,
                ocr_confidence=ocr_result.confidence,
                cost_tier="low",
                text_length=len(ocr_result.text)
            )
        )

    def _batch_result(
        self,
        results: List[Optional[OCRResult]],
        failed_pages: List[int],
        tone: Tone,
        options: ExtractionOptions
    ) -> ExtractionResult:
        successful = [result for result in results if result is not None]
        confidence = sum(result.confidence for result in successful) / len(successful)
        combined = merge_pages(
            [result.text if result else None for result in results],
            with_markers=options.preserve_page_breaks
        )
        note = self._structure_cached(combined, tone)

        if failed_pages:
            logger.warning(f"Batch accepted with placeholders for pages {failed_pages}")

        return ExtractionResult(
            text=combined,
            structured_text=note.body,
            title=note.title,
            confidence=confidence,
            decision=ProcessingDecision.HYBRID_BATCH,
            metadata=ResultMetadata(
                page_count=len(results),
                document_type=rules.detect_document_type(combined),
                has_tables=rules.detect_tables(combined),
                processing_method=ProcessingDecision.HYBRID_BATCH.value,
                failed_pages=list(failed_pages),
                ocr_confidence=confidence,
                cost_tier="low",
                text_length=len(combined)
            )
        )

    async def _compose_with_multimodal(
        self,
        paths: List[str],
        tone: Tone,
        options: ExtractionOptions,
        fallback_reason: Optional[str]
    ) -> ExtractionResult:
        composed = await self.multimodal_client.compose_structured_note(paths, tone, options)

        if composed.used_individual_fallback:
            note = self._structure_cached(composed.text, tone)
            decision = ProcessingDecision.INDIVIDUAL_FALLBACK
        else:
            note = parse_composed_note(composed.text)
            decision = ProcessingDecision.MULTIMODAL_FALLBACK

        return ExtractionResult(
            text=composed.text,
            structured_text=note.body,
            title=note.title,
            confidence=composed.confidence,
            decision=decision,
            metadata=ResultMetadata(
                page_count=len(paths),
                document_type=composed.document_type,
                has_tables=composed.has_tables,
                has_handwriting=composed.has_handwriting,
                processing_method=composed.processing_method,
                fallback_reason=fallback_reason,
                cost_tier="high",
                text_length=len(composed.text)
            )
        )

    def _admit(
        self,
        operation: str,
        options: ExtractionOptions,
        image_count: int,
        validate: Callable[[], List[ValidatedImage]]
    ) -> List[ValidatedImage]:
        """Validate a request and count it; rejected requests count as failures."""
        try:
            self.validator.validate_options(options, operation)
            images = validate()
        except ValidationError as e:
            self.metrics.record_request(image_count)
            self.metrics.record_failure(operation, e)
            raise
        self.metrics.record_request(len(images), sum(image.size_bytes for image in images))
        return images

    def _structure_cached(self, text: str, tone: Tone) -> StructuredNote:
        if not self.config.enable_caching:
            return self.structurer.structure(text, tone)

        key = make_cache_key(text, tone, namespace="rules")
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Using cached formatting result")
            return cached

        note = self.structurer.structure(text, tone)
        self.cache.set(key, note)
        return note

    def _finish(self, result: ExtractionResult, start_time: float) -> ExtractionResult:
        result.metadata.processing_time_ms = (time.time() - start_time) * 1000
        self.metrics.record_outcome(result.decision, result.confidence, result.metadata.processing_time_ms)
        logger.info(
            f"Request served via {result.decision.value} "
            f"({result.metadata.page_count} pages, {result.metadata.processing_time_ms:.0f}ms)"
        )
        return result

    # Helpers

    def _fallback_reason(self, ocr_result: Optional[OCRResult], ocr_error: Optional[Exception]) -> str:
        if not self.ocr_client.is_configured():
            return "ocr_unavailable"
        if ocr_error is not None:
            return "ocr_failed"
        if ocr_result is None:
            return "no_text_detected"
        return "ocr_insufficient_quality"

    def _insufficient_error(
        self,
        operation: str,
        ocr_result: Optional[OCRResult],
        ocr_error: Optional[Exception],
        reason: Optional[str],
        options: ExtractionOptions
    ) -> PermanentError:
        if not self.ocr_client.is_configured():
            detail = "OCR is not configured"
        elif ocr_error is not None:
            detail = f"OCR failed: {ocr_error}"
        else:
            threshold = options.quality_threshold
            if threshold is None:
                threshold = self.config.quality_threshold
            detail = (
                f"OCR result insufficient ({reason}: confidence {ocr_result.confidence:.2f}, "
                f"threshold {threshold:.2f})"
            )
        fallback = "disabled" if not options.allow_fallback else "unavailable"
        return PermanentError(f"{operation}: {detail} and multimodal fallback {fallback}", operation)

    @staticmethod
    def _health_report(ocr_healthy: bool, multimodal_healthy: bool) -> HealthReport:
        if ocr_healthy:
            recommended = ProcessingDecision.OCR_ONLY.value
        elif multimodal_healthy:
            recommended = ProcessingDecision.MULTIMODAL_FALLBACK.value
        else:
            recommended = "service_unavailable"

        if ocr_healthy and multimodal_healthy:
            status = "healthy"
        elif ocr_healthy or multimodal_healthy:
            status = "degraded"
        else:
            status = "unavailable"

        system = system_snapshot()
        if system["memory_percent"] > 95:
            status = "critical"

        return HealthReport(
            ocr_healthy=ocr_healthy,
            multimodal_healthy=multimodal_healthy,
            recommended_method=recommended,
            status=status,
            system=system
        )


def create_pipeline(
    config: Optional[PipelineConfig] = None,
    file_accessor: Optional[FileAccessor] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> HybridExtractionPipeline:
    """
    Build a pipeline wired from environment configuration.

    Both clients share one retry orchestrator and metrics recorder, so
    provider outcomes land in the same stats as request outcomes.
    """
    config = config or PipelineConfig.from_env()
    file_accessor = file_accessor or LocalFileAccessor()
    metrics = MetricsRecorder()
    orchestrator = RetryOrchestrator(metrics=metrics)

    ocr_client = OCRClient(OCRClientConfig.from_env(), file_accessor, orchestrator, http_client)
    multimodal_client = MultimodalClient(MultimodalClientConfig.from_env(), file_accessor, orchestrator, http_client)

    return HybridExtractionPipeline(
        ocr_client=ocr_client,
        multimodal_client=multimodal_client,
        validator=InputValidator(
            file_accessor,
            ImageProcessor(),
            max_size_bytes=config.max_image_size_bytes,
            verify_decodable=config.verify_images
        ),
        metrics=metrics,
        config=config
    )

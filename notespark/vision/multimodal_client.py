"""
Expensive multimodal provider client.

Sends one request carrying a task prompt plus every page image, and walks a
fallback ladder when the provider returns nothing useful:

    full request --empty--> reduced-scope request --empty--> per-image requests

A truncated response (finish reason MAX_TOKENS) with partial text is accepted
and flagged with a ``_truncated`` processing method. Transport failures are
retried by the RetryOrchestrator inside each rung; they do not move the ladder.
"""

import asyncio
import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..adapters.file_accessor import FileAccessor, LocalFileAccessor
from ..extraction.error_handling import (
    EmptyResponseError,
    NoteSparkError,
    PermanentError,
    RetryOrchestrator,
    RetryPolicy,
    TruncationError,
    ValidationError,
)
from ..extraction.models import ExtractionOptions, MultimodalResult, Tone
from . import prompts
from .image_processor import mime_type_for
from .schemas import GenerateContentResponse
from .transport import client_session, parse_model, post_json

logger = logging.getLogger(__name__)

MAX_TOKENS_REASON = "MAX_TOKENS"
NO_TEXT_PLACEHOLDER = "[No text detected]"


@dataclass(frozen=True)
class GenerationSettings:
    """Sampling parameters for one task type."""
    temperature: float
    top_k: int
    top_p: float
    max_output_tokens: int

    def to_payload(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "topK": self.top_k,
            "topP": self.top_p,
            "maxOutputTokens": self.max_output_tokens,
        }


EXTRACTION_SETTINGS = GenerationSettings(temperature=0.1, top_k=1, top_p=0.8, max_output_tokens=4096)
COMPOSITION_SETTINGS = GenerationSettings(temperature=0.3, top_k=10, top_p=0.9, max_output_tokens=6144)
FORMATTING_SETTINGS = GenerationSettings(temperature=0.2, top_k=10, top_p=0.9, max_output_tokens=4096)
REDUCED_SETTINGS = GenerationSettings(temperature=0.1, top_k=1, top_p=0.8, max_output_tokens=2048)
ANALYSIS_SETTINGS = GenerationSettings(temperature=0.1, top_k=1, top_p=0.8, max_output_tokens=1024)
HEALTH_SETTINGS = GenerationSettings(temperature=0.0, top_k=1, top_p=0.8, max_output_tokens=8)

DEFAULT_ANALYSIS = {
    "document_type": "text",
    "has_handwriting": False,
    "has_tables": False,
    "languages": ["en"],
    "text_quality": "medium",
    "recommended_method": "ocr",
}


@dataclass
class MultimodalClientConfig:
    """Configuration for the multimodal client."""

    # Provider
    api_key: Optional[str] = None
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-1.5-flash"

    # Request limits
    max_images_per_request: int = 10

    # Timeouts (seconds)
    extraction_timeout_seconds: float = 30.0
    composition_timeout_seconds: float = 45.0

    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_env(cls) -> "MultimodalClientConfig":
        return cls(
            api_key=os.getenv("GEMINI_API_KEY") or None,
            base_url=os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"),
            model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
        )


class LadderStep(Enum):
    """Rungs of the empty-response fallback ladder."""
    FULL_REQUEST = "full_request"
    REDUCED_RETRY = "reduced_retry"
    INDIVIDUAL = "individual"


@dataclass
class _GeneratedText:
    text: str
    finish_reason: str

    @property
    def truncated(self) -> bool:
        return self.finish_reason == MAX_TOKENS_REASON


def detect_tables(text: str) -> bool:
    return "|" in text or re.search(r"table|row|column", text, re.IGNORECASE) is not None


def detect_handwriting(text: str) -> bool:
    return re.search(r"handwrit|cursive|script", text, re.IGNORECASE) is not None


def classify_content(text: str, has_tables: bool, has_handwriting: bool) -> str:
    """Coarse document type for multimodal output."""
    lowered = text.lower()
    if re.search(r"receipt|invoice|subtotal|total due", lowered):
        return "receipt"
    if re.search(r"\bform\b|checkbox|signature|\bfield\b", lowered):
        return "form"
    if re.search(r"slide|agenda|presentation", lowered):
        return "presentation"
    if has_handwriting and has_tables:
        return "mixed"
    if has_handwriting:
        return "handwritten"
    return "text"


def clean_json_response(response: str) -> str:
    """Strip code fences and surrounding prose from a JSON reply."""
    cleaned = re.sub(r"```json\s*", "", response, flags=re.IGNORECASE)
    cleaned = re.sub(r"```\s*", "", cleaned)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start:end + 1]
    return cleaned.strip()


class MultimodalClient:
    """Client for the multimodal generative provider."""

    def __init__(
        self,
        config: Optional[MultimodalClientConfig] = None,
        file_accessor: Optional[FileAccessor] = None,
        orchestrator: Optional[RetryOrchestrator] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.config = config or MultimodalClientConfig()
        self.file_accessor = file_accessor or LocalFileAccessor()
        self.orchestrator = orchestrator or RetryOrchestrator(self.config.retry_policy)
        self.http_client = http_client

        if not self.config.api_key:
            logger.warning("MultimodalClient: API key not configured")
        logger.info(f"MultimodalClient initialized (model: {self.config.model})")

    def is_configured(self) -> bool:
        return bool(self.config.api_key and self.config.model)

    async def extract_text(
        self,
        image_refs: Sequence[str],
        options: Optional[ExtractionOptions] = None
    ) -> MultimodalResult:
        """
        Extract plain text from one or more images in a single request.

        Args:
            image_refs: Validated image references, in page order
            options: Extraction options

        Returns:
            MultimodalResult; processing_method is single_image or
            multi_page_batch, suffixed _truncated/_reduced, or
            individual_fallback
        """
        options = options or ExtractionOptions()
        image_refs = self._check_request(image_refs, "multimodal.extract_text")

        if len(image_refs) == 1:
            prompt = prompts.build_extraction_prompt(options)
            method = "single_image"
        else:
            prompt = prompts.build_multi_page_prompt(len(image_refs), options)
            method = "multi_page_batch"

        timeout = options.timeout_seconds or self.config.extraction_timeout_seconds
        result = await self._run_ladder(
            image_refs, prompt, EXTRACTION_SETTINGS, method, timeout, options, "multimodal.extract_text"
        )

        if len(image_refs) > 1 and options.preserve_page_breaks and not result.used_individual_fallback:
            result.text = self._number_page_breaks(result.text)
        return result

    async def compose_structured_note(
        self,
        image_refs: Sequence[str],
        tone: Tone = Tone.PROFESSIONAL,
        options: Optional[ExtractionOptions] = None
    ) -> MultimodalResult:
        """
        Ask the provider for a finished, structured note in one call.

        The returned text is provider markup unless the ladder ended in
        per-image processing, in which case it is raw page text.
        """
        options = options or ExtractionOptions()
        tone = Tone.normalize(tone)
        image_refs = self._check_request(image_refs, "multimodal.compose_structured_note")

        prompt = prompts.build_note_generation_prompt(len(image_refs), tone, options)
        timeout = options.timeout_seconds or self.config.composition_timeout_seconds

        return await self._run_ladder(
            image_refs,
            prompt,
            COMPOSITION_SETTINGS,
            f"structured_note_{tone.value}",
            timeout,
            options,
            "multimodal.compose_structured_note"
        )

    async def format_text(self, text: str, tone: Tone = Tone.PROFESSIONAL) -> str:
        """
        Format already extracted text with a text-only request.

        Raises:
            EmptyResponseError: No content returned
            TruncationError: Output ceiling hit with no content
        """
        operation = "multimodal.format_text"
        self._require_configured(operation)
        prompt = prompts.build_formatting_prompt(text, Tone.normalize(tone))

        generated = await self._generate(
            prompt, [], FORMATTING_SETTINGS, operation, self.config.extraction_timeout_seconds
        )
        if not generated.text:
            self._raise_empty(operation, generated.finish_reason)
        if generated.truncated:
            logger.warning(f"{operation}: response truncated at output limit, keeping partial text")
        return generated.text

    async def analyze_image(self, image_ref: str) -> Dict[str, Any]:
        """JSON content analysis of a single image, with a default on bad JSON."""
        operation = "multimodal.analyze_image"
        self._check_request([image_ref], operation)
        parts = await self._image_parts([image_ref], operation)

        generated = await self._generate(
            prompts.build_analysis_prompt(), parts, ANALYSIS_SETTINGS, operation,
            self.config.extraction_timeout_seconds
        )

        try:
            analysis = json.loads(clean_json_response(generated.text))
        except ValueError as e:
            logger.warning(f"{operation}: could not parse analysis JSON: {e}")
            return dict(DEFAULT_ANALYSIS)

        if not isinstance(analysis, dict):
            return dict(DEFAULT_ANALYSIS)
        return {**DEFAULT_ANALYSIS, **analysis}

    async def check_health(self) -> bool:
        """Send a tiny text request; False on any failure."""
        if not self.is_configured():
            return False
        try:
            await self._generate("Health check test", [], HEALTH_SETTINGS, "multimodal.health", 10.0)
            return True
        except NoteSparkError as e:
            logger.warning(f"Multimodal health check failed: {e}")
            return False

    # Ladder

    async def _run_ladder(
        self,
        image_refs: List[str],
        prompt: str,
        settings: GenerationSettings,
        method: str,
        timeout: float,
        options: ExtractionOptions,
        operation: str
    ) -> MultimodalResult:
        start_time = time.time()
        parts = await self._image_parts(image_refs, operation)
        step = LadderStep.FULL_REQUEST

        while True:
            if step is LadderStep.FULL_REQUEST:
                generated = await self._generate(prompt, parts, settings, operation, timeout)
                if generated.text:
                    return self._finish(generated, method, image_refs, start_time)
                logger.warning(
                    f"{operation}: empty response (reason: {generated.finish_reason}), "
                    f"retrying with reduced scope"
                )
                step = LadderStep.REDUCED_RETRY

            elif step is LadderStep.REDUCED_RETRY:
                generated = await self._generate(
                    prompts.REDUCED_EXTRACTION_PROMPT, parts, REDUCED_SETTINGS, operation, timeout
                )
                if generated.text:
                    return self._finish(generated, f"{method}_reduced", image_refs, start_time)
                if len(image_refs) == 1:
                    self._raise_empty(operation, generated.finish_reason)
                logger.warning(f"{operation}: reduced request empty, processing {len(image_refs)} images individually")
                step = LadderStep.INDIVIDUAL

            else:
                return await self._process_individually(image_refs, options, operation, start_time)

    def _finish(
        self,
        generated: _GeneratedText,
        method: str,
        image_refs: List[str],
        start_time: float
    ) -> MultimodalResult:
        if generated.truncated:
            logger.warning(f"Response truncated at output limit, accepting partial text ({len(generated.text)} chars)")
            method = f"{method}_truncated"
        return self._build_result(generated.text, method, len(image_refs), start_time, generated)

    async def _process_individually(
        self,
        image_refs: List[str],
        options: ExtractionOptions,
        operation: str,
        start_time: float
    ) -> MultimodalResult:
        pages: List[str] = []
        produced_text = 0

        for index, image_ref in enumerate(image_refs, start=1):
            header = f"--- PAGE {index} ---\n"
            try:
                text = await self._extract_single_page(image_ref, options, operation)
            except NoteSparkError as e:
                logger.error(f"{operation}: page {index} failed: {e}")
                pages.append(f"{header}[Error processing page: {e}]")
                continue

            if text:
                produced_text += 1
                pages.append(f"{header if options.preserve_page_breaks else ''}{text}")
            else:
                logger.warning(f"{operation}: no text extracted from page {index}")
                pages.append(f"{header}{NO_TEXT_PLACEHOLDER}")

        if produced_text == 0:
            raise EmptyResponseError(
                f"{operation}: all {len(image_refs)} individual page attempts returned no text",
                operation
            )

        return self._build_result(
            "\n\n".join(pages), "individual_fallback", len(image_refs), start_time, None
        )

    async def _extract_single_page(self, image_ref: str, options: ExtractionOptions, operation: str) -> str:
        parts = await self._image_parts([image_ref], operation)
        timeout = options.timeout_seconds or self.config.extraction_timeout_seconds

        generated = await self._generate(
            prompts.build_extraction_prompt(options), parts, EXTRACTION_SETTINGS, operation, timeout
        )
        if generated.text:
            return generated.text

        generated = await self._generate(
            prompts.REDUCED_EXTRACTION_PROMPT, parts, REDUCED_SETTINGS, operation, timeout
        )
        return generated.text

    def _build_result(
        self,
        text: str,
        method: str,
        page_count: int,
        start_time: float,
        generated: Optional[_GeneratedText]
    ) -> MultimodalResult:
        has_tables = detect_tables(text)
        has_handwriting = detect_handwriting(text)
        return MultimodalResult(
            text=text,
            processing_method=method,
            finish_reason=generated.finish_reason if generated else None,
            truncated=bool(generated and generated.truncated),
            page_count=page_count,
            has_tables=has_tables,
            has_handwriting=has_handwriting,
            document_type=classify_content(text, has_tables, has_handwriting),
            processing_time_ms=(time.time() - start_time) * 1000
        )

    # Transport

    async def _generate(
        self,
        prompt: str,
        parts: List[Dict[str, Any]],
        settings: GenerationSettings,
        operation: str,
        timeout: float
    ) -> _GeneratedText:
        self._require_configured(operation)
        url = f"{self.config.base_url.rstrip('/')}/models/{self.config.model}:generateContent"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}] + parts}],
            "generationConfig": settings.to_payload(),
        }

        async def attempt() -> _GeneratedText:
            async with client_session(self.http_client, timeout) as client:
                body = await post_json(client, url, payload, operation, params={"key": self.config.api_key})
            response = parse_model(GenerateContentResponse, body, operation)

            feedback = response.prompt_feedback
            if feedback is not None and feedback.block_reason:
                raise PermanentError(
                    f"{operation}: request blocked by content policy ({feedback.block_reason})",
                    operation
                )
            return _GeneratedText(text=response.text().strip(), finish_reason=response.finish_reason)

        return await self.orchestrator.with_retry(
            attempt, operation, self.config.retry_policy.with_timeout(timeout)
        )

    async def _image_parts(self, image_refs: List[str], operation: str) -> List[Dict[str, Any]]:
        loop = asyncio.get_running_loop()
        parts = []
        for image_ref in image_refs:
            try:
                data = await loop.run_in_executor(None, self.file_accessor.read_as_base64, image_ref)
            except OSError as e:
                raise PermanentError(f"{operation}: failed to read image file: {e}", operation)
            parts.append({"inline_data": {"mime_type": mime_type_for(image_ref), "data": data}})
        return parts

    def _check_request(self, image_refs: Sequence[str], operation: str) -> List[str]:
        self._require_configured(operation)
        if isinstance(image_refs, str) or not image_refs:
            raise ValidationError(f"{operation}: no images provided for processing", operation)
        if len(image_refs) > self.config.max_images_per_request:
            raise ValidationError(
                f"{operation}: maximum {self.config.max_images_per_request} images allowed per request",
                operation
            )
        return list(image_refs)

    def _require_configured(self, operation: str) -> None:
        if not self.is_configured():
            raise PermanentError(f"{operation}: multimodal API key not configured", operation)

    @staticmethod
    def _raise_empty(operation: str, finish_reason: Optional[str]) -> None:
        if finish_reason == MAX_TOKENS_REASON:
            raise TruncationError(
                f"{operation}: output limit reached before any content (reason: {finish_reason})",
                operation,
                finish_reason=finish_reason
            )
        raise EmptyResponseError(
            f"{operation}: provider returned no content (reason: {finish_reason})",
            operation,
            finish_reason=finish_reason
        )

    @staticmethod
    def _number_page_breaks(text: str) -> str:
        """Replace provider page-break lines with numbered page markers."""
        chunks = re.split(
            rf"^\s*{re.escape(prompts.PAGE_BREAK_MARKER)}\s*$", text, flags=re.MULTILINE
        )
        pages = [chunk.strip() for chunk in chunks]
        if len(pages) == 1:
            return text
        return "\n\n".join(
            f"--- PAGE {index} ---\n{page}" for index, page in enumerate(pages, start=1) if page
        )

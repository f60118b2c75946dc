"""
Tests for the multimodal provider client and its fallback ladder.
"""

import httpx
import pytest

from notespark.extraction.error_handling import (
    EmptyResponseError,
    PermanentError,
    TruncationError,
    ValidationError,
)
from notespark.extraction.models import ExtractionOptions, Tone
from notespark.vision import prompts
from notespark.vision.multimodal_client import (
    COMPOSITION_SETTINGS,
    DEFAULT_ANALYSIS,
    MultimodalClient,
    MultimodalClientConfig,
    classify_content,
    clean_json_response,
)


@pytest.fixture
def make_client(accessor, fast_policy, mock_http):
    def build(responses, **config_overrides):
        http_client, recorder = mock_http(responses)
        config = MultimodalClientConfig(api_key="test-key", retry_policy=fast_policy, **config_overrides)
        return MultimodalClient(config, accessor, http_client=http_client), recorder
    return build


class TestHelpers:
    """Test response helpers."""

    def test_clean_json_response(self):
        """Test code fences and prose are stripped."""
        raw = 'Here you go:\n```json\n{"document_type": "form"}\n```'
        assert clean_json_response(raw) == '{"document_type": "form"}'

    def test_classify_content(self):
        """Test coarse content classification."""
        assert classify_content("Invoice total due 12.00", False, False) == "receipt"
        assert classify_content("plain words", True, True) == "mixed"
        assert classify_content("plain words", False, False) == "text"


class TestExtractText:
    """Test plain text extraction."""

    @pytest.mark.asyncio
    async def test_single_image(self, make_client, gemini_payload):
        """Test one image gives single_image with one request."""
        client, recorder = make_client([gemini_payload("Biology notes\nCell structure")])

        result = await client.extract_text(["page1.png"])

        assert result.text == "Biology notes\nCell structure"
        assert result.processing_method == "single_image"
        assert result.confidence == 0.95
        assert len(recorder.requests) == 1

        payload = recorder.payloads()[0]
        parts = payload["contents"][0]["parts"]
        assert parts[1]["inline_data"]["mime_type"] == "image/png"
        assert payload["generationConfig"]["maxOutputTokens"] == 4096
        assert recorder.requests[0].url.path.endswith("/models/gemini-1.5-flash:generateContent")

    @pytest.mark.asyncio
    async def test_multi_page_numbers_page_breaks(self, make_client, gemini_payload):
        """Test page-break lines become numbered page markers."""
        text = f"First page\n{prompts.PAGE_BREAK_MARKER}\nSecond page"
        client, _ = make_client([gemini_payload(text)])

        result = await client.extract_text(["page1.png", "page2.png"])

        assert result.processing_method == "multi_page_batch"
        assert result.text == "--- PAGE 1 ---\nFirst page\n\n--- PAGE 2 ---\nSecond page"

    @pytest.mark.asyncio
    async def test_too_many_images(self, make_client):
        """Test the image cap is enforced before any request."""
        client, recorder = make_client([], max_images_per_request=2)

        with pytest.raises(ValidationError, match="maximum 2 images"):
            await client.extract_text(["page1.png", "page2.png", "page3.png"])
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_not_configured(self, accessor):
        """Test missing credentials fail before any request."""
        client = MultimodalClient(MultimodalClientConfig(api_key=None), accessor)
        with pytest.raises(PermanentError, match="not configured"):
            await client.extract_text(["page1.png"])


class TestFallbackLadder:
    """Test the empty-response ladder."""

    @pytest.mark.asyncio
    async def test_reduced_retry_after_empty(self, make_client, gemini_payload):
        """Test an empty full request is followed by one reduced request."""
        client, recorder = make_client([
            gemini_payload("", "STOP"),
            gemini_payload("Recovered text"),
        ])

        result = await client.compose_structured_note(["page1.png", "page2.png"], Tone.CASUAL)

        assert result.text == "Recovered text"
        assert result.processing_method == "structured_note_casual_reduced"

        reduced = recorder.payloads()[1]
        assert reduced["contents"][0]["parts"][0]["text"] == prompts.REDUCED_EXTRACTION_PROMPT
        assert reduced["generationConfig"]["maxOutputTokens"] == 2048
        assert len(reduced["contents"][0]["parts"]) == 3

    @pytest.mark.asyncio
    async def test_truncated_partial_text_accepted(self, make_client, gemini_payload):
        """Test MAX_TOKENS with text is kept and flagged."""
        client, recorder = make_client([gemini_payload("<h1>Partial</h1><p>Cut off", "MAX_TOKENS")])

        result = await client.compose_structured_note(["page1.png"])

        assert result.truncated
        assert result.processing_method == "structured_note_professional_truncated"
        assert len(recorder.requests) == 1
        assert recorder.payloads()[0]["generationConfig"] == COMPOSITION_SETTINGS.to_payload()

    @pytest.mark.asyncio
    async def test_single_image_empty_twice(self, make_client, gemini_payload):
        """Test a single image fails with EmptyResponseError after the reduced retry."""
        client, recorder = make_client([gemini_payload("", "STOP"), gemini_payload("", "STOP")])

        with pytest.raises(EmptyResponseError) as exc_info:
            await client.extract_text(["page1.png"])

        assert not isinstance(exc_info.value, TruncationError)
        assert exc_info.value.finish_reason == "STOP"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_single_image_truncated_without_text(self, make_client, gemini_payload):
        """Test MAX_TOKENS without text becomes a TruncationError."""
        client, _ = make_client([gemini_payload("", "MAX_TOKENS"), gemini_payload("", "MAX_TOKENS")])

        with pytest.raises(TruncationError):
            await client.extract_text(["page1.png"])

    @pytest.mark.asyncio
    async def test_individual_fallback(self, make_client, gemini_payload):
        """Test per-image processing with placeholders for pages without text."""
        client, recorder = make_client([
            gemini_payload(""),                # full request
            gemini_payload(""),                # reduced request
            gemini_payload("Page one text"),   # page 1
            gemini_payload(""),                # page 2 full
            gemini_payload(""),                # page 2 reduced
            gemini_payload("Page three text"),  # page 3
        ])

        result = await client.compose_structured_note(["page1.png", "page2.png", "page3.png"])

        assert result.processing_method == "individual_fallback"
        assert result.used_individual_fallback
        assert result.text == (
            "--- PAGE 1 ---\nPage one text\n\n"
            "--- PAGE 2 ---\n[No text detected]\n\n"
            "--- PAGE 3 ---\nPage three text"
        )
        assert len(recorder.requests) == 6

    @pytest.mark.asyncio
    async def test_individual_fallback_page_error(self, make_client, gemini_payload):
        """Test a failing page is recorded inline and the others survive."""
        client, _ = make_client([
            gemini_payload(""),
            gemini_payload(""),
            httpx.Response(400, json={"error": {"code": 400, "message": "Bad image"}}),
            gemini_payload("Second page text"),
        ])

        result = await client.extract_text(["page1.png", "page2.png"])

        assert "--- PAGE 1 ---\n[Error processing page:" in result.text
        assert "Second page text" in result.text

    @pytest.mark.asyncio
    async def test_individual_fallback_all_empty(self, make_client, gemini_payload):
        """Test the ladder fails when no page produced text."""
        client, _ = make_client([gemini_payload("")] * 6)

        with pytest.raises(EmptyResponseError, match="individual page attempts"):
            await client.extract_text(["page1.png", "page2.png"])

    @pytest.mark.asyncio
    async def test_transport_errors_do_not_move_ladder(self, make_client, gemini_payload):
        """Test a 503 is retried within the same rung."""
        client, recorder = make_client([
            httpx.Response(503, json={"error": {"code": 503, "message": "overloaded"}}),
            gemini_payload("Full answer"),
        ])

        result = await client.extract_text(["page1.png"])

        assert result.processing_method == "single_image"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_blocked_prompt_is_permanent(self, make_client):
        """Test content-policy blocks are not retried."""
        client, recorder = make_client([{"candidates": [], "promptFeedback": {"blockReason": "SAFETY"}}])

        with pytest.raises(PermanentError, match="SAFETY"):
            await client.extract_text(["page1.png"])
        assert len(recorder.requests) == 1


class TestTextRequests:
    """Test text-only requests."""

    @pytest.mark.asyncio
    async def test_format_text(self, make_client, gemini_payload):
        """Test formatting sends no image parts."""
        client, recorder = make_client([gemini_payload("<h1>Notes</h1><p>Body</p>")])

        result = await client.format_text("raw notes", Tone.SIMPLIFIED)

        assert result == "<h1>Notes</h1><p>Body</p>"
        parts = recorder.payloads()[0]["contents"][0]["parts"]
        assert len(parts) == 1
        assert "raw notes" in parts[0]["text"]

    @pytest.mark.asyncio
    async def test_format_text_empty(self, make_client, gemini_payload):
        """Test an empty formatting response is an error."""
        client, _ = make_client([gemini_payload("", "STOP")])
        with pytest.raises(EmptyResponseError):
            await client.format_text("raw notes")

    @pytest.mark.asyncio
    async def test_analyze_image(self, make_client, gemini_payload):
        """Test analysis JSON is merged over the defaults."""
        client, _ = make_client([gemini_payload('```json\n{"document_type": "form", "has_tables": true}\n```')])

        analysis = await client.analyze_image("page1.png")

        assert analysis["document_type"] == "form"
        assert analysis["has_tables"] is True
        assert analysis["languages"] == ["en"]

    @pytest.mark.asyncio
    async def test_analyze_image_bad_json(self, make_client, gemini_payload):
        """Test unparseable analysis falls back to the defaults."""
        client, _ = make_client([gemini_payload("not json at all")])
        assert await client.analyze_image("page1.png") == DEFAULT_ANALYSIS

    @pytest.mark.asyncio
    async def test_check_health(self, make_client, gemini_payload):
        """Test the health probe."""
        client, _ = make_client([gemini_payload("ok")])
        assert await client.check_health() is True

    @pytest.mark.asyncio
    async def test_check_health_failure(self, make_client):
        """Test the health probe reports False instead of raising."""
        client, _ = make_client([httpx.Response(401, json={"error": {"code": 401, "message": "denied"}})])
        assert await client.check_health() is False


class TestPrompts:
    """Test prompt builders."""

    def test_truncate_for_prompt(self):
        """Test long formatting input is cut with a notice."""
        text = "x" * 6000
        truncated = prompts.truncate_for_prompt(text)
        assert truncated.startswith("x" * 5000)
        assert truncated.endswith("[Text truncated...]")
        assert prompts.truncate_for_prompt("short") == "short"

    def test_note_prompt_mentions_page_count(self):
        """Test the composition prompt adapts to the page count."""
        prompt = prompts.build_note_generation_prompt(3, Tone.CASUAL, ExtractionOptions())
        assert "3" in prompt

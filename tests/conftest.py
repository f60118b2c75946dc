"""
Shared fixtures for the notespark test suite.

Provides in-memory page images, provider payload builders and httpx clients
backed by MockTransport so no test touches the network or the filesystem.
"""

import io
import json
from typing import Callable, Dict, List, Optional, Sequence

import httpx
import pytest
from PIL import Image

from notespark.adapters.file_accessor import InMemoryFileAccessor
from notespark.extraction.error_handling import RetryPolicy


def _png(width: int = 32, height: int = 32, color: str = "white") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    """A small valid PNG."""
    return _png()


@pytest.fixture
def accessor(png_bytes) -> InMemoryFileAccessor:
    """In-memory store holding page1.png .. page5.png."""
    files = {f"page{i}.png": _png(color=color) for i, color in enumerate(
        ["white", "red", "green", "blue", "gray"], start=1
    )}
    return InMemoryFileAccessor(files)


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy without delays."""
    return RetryPolicy(max_retries=2, base_delay=0.0, max_delay=0.0, jitter_ratio=0.0)


@pytest.fixture
def ocr_payload() -> Callable[..., Dict]:
    """Builder for images:annotate response bodies."""

    def build(text: Optional[str], confidences: Sequence[Optional[float]] = (0.95,)) -> Dict:
        if text is None:
            return {"responses": [{}]}
        annotations = []
        for index, confidence in enumerate(confidences):
            annotation = {
                "description": text if index == 0 else f"word{index}",
                "boundingPoly": {"vertices": [
                    {"x": 10 * index, "y": 5},
                    {"x": 10 * index + 8, "y": 5},
                    {"x": 10 * index + 8, "y": 20},
                    {"x": 10 * index, "y": 20},
                ]},
            }
            if confidence is not None:
                annotation["confidence"] = confidence
            annotations.append(annotation)
        return {"responses": [{"textAnnotations": annotations}]}

    return build


@pytest.fixture
def gemini_payload() -> Callable[..., Dict]:
    """Builder for generateContent response bodies."""

    def build(text: str, finish_reason: str = "STOP") -> Dict:
        parts = [{"text": text}] if text else []
        return {"candidates": [{"content": {"parts": parts, "role": "model"}, "finishReason": finish_reason}]}

    return build


class RecordingTransport:
    """MockTransport handler that replays queued responses and records requests."""

    def __init__(self, responses: List):
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request to {request.url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def payloads(self) -> List[Dict]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def mock_http() -> Callable[[List], "tuple"]:
    """Factory returning (AsyncClient, RecordingTransport) for queued responses."""

    def build(responses: List):
        recorder = RecordingTransport(responses)
        client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        return client, recorder

    return build

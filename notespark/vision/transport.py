"""
HTTP plumbing shared by the provider clients.

Translates httpx failures and provider status codes into the pipeline's error
taxonomy: 408/429/5xx and transport errors are transient, other 4xx are
permanent, and unparseable bodies are transient.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from ..extraction.error_handling import OperationTimeoutError, PermanentError, TransientError
from .schemas import ErrorEnvelope

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

M = TypeVar("M", bound=BaseModel)


def _error_detail(response: httpx.Response) -> str:
    try:
        return ErrorEnvelope.model_validate(response.json()).error.message
    except (ValueError, SchemaValidationError):
        return response.text[:200]


def check_response(response: httpx.Response, operation: str) -> None:
    """Raise the matching pipeline error for a non-2xx response."""
    status = response.status_code
    if status < 400:
        return
    message = f"{operation}: HTTP {status}: {_error_detail(response)}"
    if status in RETRYABLE_STATUS_CODES or status >= 500:
        raise TransientError(message, operation)
    raise PermanentError(message, operation)


@asynccontextmanager
async def client_session(
    http_client: Optional[httpx.AsyncClient],
    timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one closed on exit."""
    if http_client is not None:
        yield http_client
        return
    async with httpx.AsyncClient(timeout=timeout) as client:
        yield client


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: Dict[str, Any],
    operation: str,
    params: Optional[Dict[str, str]] = None
) -> Any:
    """POST a JSON payload and return the decoded body."""
    try:
        response = await client.post(url, params=params, json=payload)
    except httpx.TimeoutException as e:
        raise OperationTimeoutError(f"{operation}: request timed out: {e}", operation)
    except httpx.TransportError as e:
        raise TransientError(f"{operation}: network error: {e}", operation)

    check_response(response, operation)

    try:
        return response.json()
    except ValueError as e:
        raise TransientError(f"{operation}: malformed JSON response: {e}", operation)


def parse_model(model_cls: Type[M], data: Any, operation: str) -> M:
    """Validate a decoded body against a provider schema."""
    try:
        return model_cls.model_validate(data)
    except SchemaValidationError as e:
        raise TransientError(
            f"{operation}: unexpected response shape ({e.error_count()} errors)",
            operation
        )

"""
Error taxonomy, classification and retry orchestration.

Every network call made by the OCR and multimodal clients runs through
RetryOrchestrator.with_retry, which races the call against a timer, classifies
failures with ErrorClassifier and backs off exponentially between attempts.
Validation, permanent and empty-response failures are never retried; the
latter are handed back to the caller's fallback ladder.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_NON_RETRYABLE_PATTERNS: Tuple[str, ...] = (
    "invalid api key",
    "api key not valid",
    "authentication failed",
    "quota exceeded",
    "billing",
    "permission denied",
    "file not found",
    "unsupported format",
)


class NoteSparkError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class ValidationError(NoteSparkError):
    """Bad input detected before any network call."""


class TransientError(NoteSparkError):
    """Network failure, timeout, rate limit or 5xx. Eligible for retry."""


class OperationTimeoutError(TransientError):
    """The timeout race fired before the call completed."""


class CapacityError(TransientError):
    """The in-flight gate is full and the client is configured to fail fast."""


class RetryExhaustedError(TransientError):
    """All attempts failed with retryable errors."""

    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException]):
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}",
            operation=operation
        )
        self.attempts = attempts
        self.last_error = last_error


class PermanentError(NoteSparkError):
    """Auth, quota, format or policy failure. Never retried."""


class EmptyResponseError(NoteSparkError):
    """Provider returned no usable content."""

    def __init__(self, message: str, operation: Optional[str] = None, finish_reason: Optional[str] = None):
        super().__init__(message, operation=operation)
        self.finish_reason = finish_reason


class TruncationError(EmptyResponseError):
    """Provider hit its output ceiling without returning usable content."""


class PartialBatchFailure(NoteSparkError):
    """Too many pages of a multi-page batch failed."""

    def __init__(self, failed_pages: List[int], total_pages: int, required_ratio: float):
        succeeded = total_pages - len(failed_pages)
        super().__init__(
            f"{succeeded}/{total_pages} pages produced text, "
            f"below required ratio {required_ratio:.0%} (failed pages: {failed_pages})"
        )
        self.failed_pages = list(failed_pages)
        self.total_pages = total_pages
        self.required_ratio = required_ratio


class ErrorCategory(Enum):
    """Categories of errors seen by the orchestrator."""
    VALIDATION = "validation"
    PERMANENT = "permanent"
    EMPTY_RESPONSE = "empty_response"
    TIMEOUT = "timeout"
    TRANSIENT_NETWORK = "transient_network"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorClassification:
    """Classification of an error with handling hint."""
    category: ErrorCategory
    is_retryable: bool
    suggested_action: str


@dataclass(frozen=True)
class RetryPolicy:
    """Retry behaviour for one client. Constant for the client's lifetime."""
    max_retries: int = 3
    base_delay: float = 2.0  # seconds
    max_delay: float = 10.0  # seconds
    backoff_factor: float = 2.0
    jitter_ratio: float = 0.1
    timeout_seconds: Optional[float] = None
    non_retryable_patterns: Tuple[str, ...] = DEFAULT_NON_RETRYABLE_PATTERNS

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def compute_delay(self, retry_number: int) -> float:
        """Delay before the given retry (1 for the first retry)."""
        delay = self.base_delay * (self.backoff_factor ** (retry_number - 1))
        if self.jitter_ratio > 0:
            delay += delay * random.uniform(0, self.jitter_ratio)
        return max(0.0, min(delay, self.max_delay))

    def with_timeout(self, timeout_seconds: Optional[float]) -> "RetryPolicy":
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            backoff_factor=self.backoff_factor,
            jitter_ratio=self.jitter_ratio,
            timeout_seconds=timeout_seconds,
            non_retryable_patterns=self.non_retryable_patterns
        )


class ErrorClassifier:
    """Classifies errors into categories with retry decisions."""

    def __init__(self):
        self.classification_rules = self._build_classification_rules()

    def classify_error(self, error: BaseException, policy: Optional[RetryPolicy] = None) -> ErrorClassification:
        """
        Classify an error and decide whether it may be retried.

        Typed errors are classified first, then the policy's non-retryable
        substrings, then the generic pattern table.

        Args:
            error: Exception raised by the operation
            policy: Policy supplying non-retryable substrings

        Returns:
            Error classification
        """
        if isinstance(error, ValidationError):
            return ErrorClassification(ErrorCategory.VALIDATION, False, "Fix the input and resubmit")
        if isinstance(error, PermanentError):
            return ErrorClassification(ErrorCategory.PERMANENT, False, "Check credentials, quota or input format")
        if isinstance(error, EmptyResponseError):
            return ErrorClassification(ErrorCategory.EMPTY_RESPONSE, False, "Escalate through the fallback ladder")

        error_message = str(error).lower()
        error_type = type(error).__name__

        patterns = policy.non_retryable_patterns if policy else DEFAULT_NON_RETRYABLE_PATTERNS
        if any(pattern.lower() in error_message for pattern in patterns):
            return ErrorClassification(ErrorCategory.PERMANENT, False, "Check credentials, quota or input format")

        if isinstance(error, (OperationTimeoutError, asyncio.TimeoutError)):
            return self.classification_rules["timeout|timed out"]

        for pattern, classification in self.classification_rules.items():
            if self._matches_pattern(pattern, error_message, error_type):
                return classification

        if isinstance(error, TransientError):
            return ErrorClassification(ErrorCategory.TRANSIENT_NETWORK, True, "Retry after brief delay")

        return ErrorClassification(
            category=ErrorCategory.UNKNOWN,
            is_retryable=True,
            suggested_action="Log error and retry with caution"
        )

    def _build_classification_rules(self) -> Dict[str, ErrorClassification]:
        """Build the error classification rules."""
        return {
            "timeout|timed out": ErrorClassification(
                category=ErrorCategory.TIMEOUT,
                is_retryable=True,
                suggested_action="Retry, the call was abandoned after its deadline"
            ),
            "rate limit|too many requests|429|resource_exhausted": ErrorClassification(
                category=ErrorCategory.RATE_LIMIT,
                is_retryable=True,
                suggested_action="Back off and retry with longer delay"
            ),
            "network|connection|dns|connecterror|readerror": ErrorClassification(
                category=ErrorCategory.TRANSIENT_NETWORK,
                is_retryable=True,
                suggested_action="Retry after brief delay"
            ),
            "500|502|503|504|unavailable|internal error": ErrorClassification(
                category=ErrorCategory.SERVER_ERROR,
                is_retryable=True,
                suggested_action="Retry, provider reported a server error"
            ),
            "unauthorized|forbidden|401|403": ErrorClassification(
                category=ErrorCategory.PERMANENT,
                is_retryable=False,
                suggested_action="Check authentication credentials"
            ),
        }

    def _matches_pattern(self, pattern: str, error_message: str, error_type: str) -> bool:
        """Check if error matches a classification pattern."""
        pattern_terms = pattern.split("|")
        return any(
            term in error_message or term in error_type.lower()
            for term in pattern_terms
        )


class RetryOrchestrator:
    """
    Runs async operations with bounded retries, backoff and a timeout race.

    Success and failure are reported to the metrics recorder once per
    terminal outcome, never per attempt.
    """

    def __init__(
        self,
        default_policy: Optional[RetryPolicy] = None,
        classifier: Optional[ErrorClassifier] = None,
        metrics: Optional[Any] = None
    ):
        self.default_policy = default_policy or RetryPolicy()
        self.classifier = classifier or ErrorClassifier()
        self.metrics = metrics

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        policy: Optional[RetryPolicy] = None
    ) -> T:
        """
        Execute an operation with retry logic based on error classification.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            name: Operation name used in logs and error messages
            policy: Retry policy, defaults to the orchestrator's

        Returns:
            Operation result

        Raises:
            The original error when it is not retryable, PermanentError when a
            plain error matches a non-retryable pattern, RetryExhaustedError
            after the last attempt
        """
        policy = policy or self.default_policy
        max_attempts = policy.max_attempts
        last_error: Optional[Exception] = None
        attempt = 0

        while attempt < max_attempts:
            attempt += 1
            try:
                result = await self._run_with_timeout(operation, name, policy)
            except Exception as e:
                last_error = e
                classification = self.classifier.classify_error(e, policy)

                logger.warning(
                    f"{name}: attempt {attempt}/{max_attempts} failed: {e} "
                    f"(category: {classification.category.value}, "
                    f"retryable: {classification.is_retryable})"
                )

                if not classification.is_retryable:
                    self._record(name, success=False)
                    if isinstance(e, NoteSparkError):
                        raise
                    raise PermanentError(f"{name}: {e}", operation=name) from e

                if attempt >= max_attempts:
                    logger.error(f"{name}: all {max_attempts} attempts exhausted")
                    break

                delay = policy.compute_delay(attempt)
                logger.info(f"{name}: retrying in {delay:.2f} seconds...")
                await asyncio.sleep(delay)
            else:
                self._record(name, success=True)
                return result

        self._record(name, success=False)
        raise RetryExhaustedError(name, attempt, last_error) from last_error

    async def _run_with_timeout(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        policy: RetryPolicy
    ) -> T:
        if policy.timeout_seconds is None:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout_seconds)
        except asyncio.TimeoutError:
            raise OperationTimeoutError(
                f"{name} timed out after {policy.timeout_seconds:.1f}s",
                operation=name
            )

    def _record(self, name: str, success: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_operation(name, success)

"""
Complexity router.

Cheap gate deciding whether an OCR result can be used as-is or must escalate
to the multimodal provider. Each check is a named rule so it can be tested and
swapped on its own; the keyword tables are a coarse proxy for content
complexity, not a classifier.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..extraction.models import ExtractionOptions, OCRResult

logger = logging.getLogger(__name__)

DEFAULT_QUALITY_THRESHOLD = 0.7
MIN_MEANINGFUL_LENGTH = 10

HANDWRITING_KEYWORDS: Tuple[str, ...] = ("handwritten", "cursive", "script", "manuscript")
COMPLEX_LAYOUT_KEYWORDS: Tuple[str, ...] = ("diagram", "chart", "graph", "formula", "equation", "table")


@dataclass(frozen=True)
class RoutingContext:
    """Inputs shared by every routing rule."""
    result: OCRResult
    options: ExtractionOptions
    threshold: float

    @property
    def lowered_text(self) -> str:
        return self.result.text.lower()


@dataclass(frozen=True)
class RoutingRule:
    """A named escalation check. `escalates` returns True when OCR is not enough."""
    name: str
    escalates: Callable[[RoutingContext], bool]
    requires_complexity_detection: bool = False


@dataclass(frozen=True)
class RoutingDecision:
    sufficient: bool
    reason: Optional[str] = None


def _low_confidence(context: RoutingContext) -> bool:
    return context.result.confidence < context.threshold


def _too_short(context: RoutingContext) -> bool:
    return len(context.result.text.strip()) < MIN_MEANINGFUL_LENGTH


def _unassisted_handwriting(context: RoutingContext) -> bool:
    if context.options.enhance_handwriting:
        return False
    text = context.lowered_text
    return any(keyword in text for keyword in HANDWRITING_KEYWORDS)


def _complex_layout(context: RoutingContext) -> bool:
    text = context.lowered_text
    return any(keyword in text for keyword in COMPLEX_LAYOUT_KEYWORDS)


DEFAULT_RULES: List[RoutingRule] = [
    RoutingRule("low_confidence", _low_confidence),
    RoutingRule("text_too_short", _too_short),
    RoutingRule("handwriting_detected", _unassisted_handwriting, requires_complexity_detection=True),
    RoutingRule("complex_layout", _complex_layout, requires_complexity_detection=True),
]


class ComplexityRouter:
    """Applies routing rules in order; the first rule that fires wins."""

    def __init__(
        self,
        default_threshold: float = DEFAULT_QUALITY_THRESHOLD,
        rules: Optional[List[RoutingRule]] = None
    ):
        self.default_threshold = default_threshold
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def evaluate(self, result: Optional[OCRResult], options: ExtractionOptions) -> RoutingDecision:
        if result is None:
            return RoutingDecision(sufficient=False, reason="no_text_detected")

        threshold = options.quality_threshold
        if threshold is None:
            threshold = self.default_threshold
        context = RoutingContext(result=result, options=options, threshold=threshold)

        for rule in self.rules:
            if rule.requires_complexity_detection and not options.complexity_detection:
                continue
            if rule.escalates(context):
                logger.info(
                    f"OCR result escalates: {rule.name} "
                    f"(confidence {result.confidence:.3f}, threshold {threshold:.2f})"
                )
                return RoutingDecision(sufficient=False, reason=rule.name)

        return RoutingDecision(sufficient=True)

    def is_sufficient(self, result: Optional[OCRResult], options: ExtractionOptions) -> bool:
        return self.evaluate(result, options).sufficient

"""
Cost estimation for reporting.

Static provider price table and a pure estimator. Nothing here is used for
routing decisions.
"""

import math
from typing import Dict, Union

from ..extraction.error_handling import ValidationError
from ..extraction.models import CostBreakdown, ProcessingDecision

# Prices in USD
PRICING = {
    "ocr": {
        "per_1k_images": 1.50,
    },
    "text_model": {
        "input_per_1m_tokens": 0.15,
        "output_per_1m_tokens": 0.60,
    },
    "multimodal": {
        "per_image": 0.01,
        "input_per_1m_tokens": 2.00,
        "output_per_1m_tokens": 8.00,
    },
}

CHARS_PER_TOKEN = 4
OUTPUT_EXPANSION = 1.5

METHOD_LABELS = {
    "ocr_only": "OCR Only (Fast & Cheap)",
    "ocr_with_text_formatting": "OCR + Text Model Formatting",
    "multimodal": "Multimodal (Expensive)",
}

# Processing decisions map onto the method that dominates their cost
DECISION_METHODS = {
    ProcessingDecision.OCR_ONLY.value: "ocr_only",
    ProcessingDecision.HYBRID_BATCH.value: "ocr_only",
    ProcessingDecision.MULTIMODAL_FALLBACK.value: "multimodal",
    ProcessingDecision.INDIVIDUAL_FALLBACK.value: "multimodal",
}


def estimate_tokens(text_length: int) -> Dict[str, int]:
    """Rough input/output token counts for one page of text."""
    return {
        "input": math.ceil(text_length / CHARS_PER_TOKEN),
        "output": math.ceil(text_length * OUTPUT_EXPANSION / CHARS_PER_TOKEN),
    }


class CostEstimator:
    """Pure cost estimation over the static price table."""

    def __init__(self, pricing: Dict = None):
        self.pricing = pricing or PRICING

    def resolve_method(self, method: Union[str, ProcessingDecision]) -> str:
        if isinstance(method, ProcessingDecision):
            method = method.value
        method = DECISION_METHODS.get(method, method)
        if method not in METHOD_LABELS:
            raise ValidationError(
                f"estimate_cost: unknown method '{method}', expected one of "
                f"{', '.join(sorted(list(METHOD_LABELS) + list(DECISION_METHODS)))}",
                "estimate_cost"
            )
        return method

    def estimate(
        self,
        image_count: int,
        avg_text_length: int = 2000,
        method: Union[str, ProcessingDecision] = "ocr_only"
    ) -> CostBreakdown:
        """
        Estimate spend for processing a number of images.

        Args:
            image_count: Number of page images
            avg_text_length: Average characters of text per page
            method: ocr_only, ocr_with_text_formatting, multimodal, or a
                ProcessingDecision value

        Returns:
            CostBreakdown
        """
        if image_count < 0 or avg_text_length < 0:
            raise ValidationError(
                "estimate_cost: image_count and avg_text_length must be non-negative",
                "estimate_cost"
            )
        method = self.resolve_method(method)
        tokens = estimate_tokens(avg_text_length)

        ocr_cost = 0.0
        text_model_cost = 0.0
        multimodal_cost = 0.0

        if method in ("ocr_only", "ocr_with_text_formatting"):
            ocr_cost = image_count / 1000 * self.pricing["ocr"]["per_1k_images"]

        if method == "ocr_with_text_formatting":
            prices = self.pricing["text_model"]
            text_model_cost = image_count * (
                tokens["input"] / 1_000_000 * prices["input_per_1m_tokens"]
                + tokens["output"] / 1_000_000 * prices["output_per_1m_tokens"]
            )

        if method == "multimodal":
            prices = self.pricing["multimodal"]
            multimodal_cost = image_count * (
                prices["per_image"]
                + tokens["input"] / 1_000_000 * prices["input_per_1m_tokens"]
                + tokens["output"] / 1_000_000 * prices["output_per_1m_tokens"]
            )

        return CostBreakdown(
            ocr_cost=ocr_cost,
            text_model_cost=text_model_cost,
            multimodal_cost=multimodal_cost,
            total_cost=ocr_cost + text_model_cost + multimodal_cost,
            method=METHOD_LABELS[method]
        )

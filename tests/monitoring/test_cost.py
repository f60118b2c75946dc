"""
Tests for cost estimation.
"""

import pytest

from notespark.extraction.error_handling import ValidationError
from notespark.extraction.models import ProcessingDecision
from notespark.monitoring.cost import CostEstimator, estimate_tokens


@pytest.fixture
def estimator():
    return CostEstimator()


class TestEstimateTokens:
    """Test token approximation."""

    def test_tokens(self):
        """Test characters per token and output expansion."""
        assert estimate_tokens(2000) == {"input": 500, "output": 750}
        assert estimate_tokens(1) == {"input": 1, "output": 1}


class TestCostEstimator:
    """Test per-method estimates."""

    def test_ocr_only(self, estimator):
        """Test OCR is priced per thousand images."""
        breakdown = estimator.estimate(1000, method="ocr_only")
        assert breakdown.ocr_cost == pytest.approx(1.50)
        assert breakdown.total_cost == pytest.approx(1.50)
        assert breakdown.method == "OCR Only (Fast & Cheap)"

    def test_ocr_with_text_formatting(self, estimator):
        """Test text model tokens are added per image."""
        breakdown = estimator.estimate(10, avg_text_length=2000, method="ocr_with_text_formatting")
        expected_text = 10 * (500 / 1e6 * 0.15 + 750 / 1e6 * 0.60)
        assert breakdown.text_model_cost == pytest.approx(expected_text)
        assert breakdown.total_cost == pytest.approx(10 / 1000 * 1.50 + expected_text)

    def test_multimodal(self, estimator):
        """Test image and token charges scale with the image count."""
        one = estimator.estimate(1, method="multimodal")
        ten = estimator.estimate(10, method="multimodal")
        assert one.multimodal_cost == pytest.approx(0.01 + 500 / 1e6 * 2.00 + 750 / 1e6 * 8.00)
        assert ten.total_cost == pytest.approx(one.total_cost * 10)

    def test_method_ordering(self, estimator):
        """Test OCR stays cheaper than multimodal for the same workload."""
        for count in (1, 5, 100):
            ocr = estimator.estimate(count, method="ocr_only").total_cost
            formatted = estimator.estimate(count, method="ocr_with_text_formatting").total_cost
            multimodal = estimator.estimate(count, method="multimodal").total_cost
            assert ocr <= formatted < multimodal

    def test_monotonic_in_image_count(self, estimator):
        """Test more images never cost less."""
        costs = [estimator.estimate(count, method="multimodal").total_cost for count in range(0, 20)]
        assert costs == sorted(costs)
        assert costs[0] == 0.0

    def test_decision_values_accepted(self, estimator):
        """Test processing decisions map to their dominant method."""
        assert estimator.estimate(3, method=ProcessingDecision.HYBRID_BATCH).method == "OCR Only (Fast & Cheap)"
        assert estimator.estimate(3, method="individual_fallback").method == "Multimodal (Expensive)"

    def test_unknown_method(self, estimator):
        """Test unknown methods are rejected."""
        with pytest.raises(ValidationError, match="unknown method"):
            estimator.estimate(1, method="carrier_pigeon")

    def test_negative_count(self, estimator):
        """Test negative inputs are rejected."""
        with pytest.raises(ValidationError):
            estimator.estimate(-1)

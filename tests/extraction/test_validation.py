"""
Tests for input validation.
"""

import pytest

from notespark.adapters.file_accessor import InMemoryFileAccessor
from notespark.extraction.error_handling import ValidationError
from notespark.extraction.models import ExtractionOptions
from notespark.extraction.validation import InputValidator


@pytest.fixture
def validator(accessor):
    return InputValidator(accessor)


class TestValidateImage:
    """Test single image validation."""

    def test_valid_png(self, validator):
        """Test a decodable PNG passes with size and dimensions."""
        image = validator.validate_image("page1.png", "extract_text")

        assert image.path == "page1.png"
        assert image.format == "png"
        assert image.size_bytes > 0
        assert image.info.width == 32

    def test_file_uri_stripped(self, validator):
        """Test file:// references resolve to the plain path."""
        image = validator.validate_image("file://page2.png", "extract_text")
        assert image.path == "page2.png"
        assert image.image_ref == "file://page2.png"

    def test_missing_file(self, validator):
        """Test a missing file is rejected with the operation prefix."""
        with pytest.raises(ValidationError, match=r"^extract_text: image file not found"):
            validator.validate_image("missing.png", "extract_text")

    def test_empty_reference(self, validator):
        """Test blank references are rejected."""
        with pytest.raises(ValidationError):
            validator.validate_image("  ", "extract_text")

    def test_too_large(self, png_bytes):
        """Test the size limit."""
        accessor = InMemoryFileAccessor({"big.png": png_bytes})
        validator = InputValidator(accessor, max_size_bytes=10)

        with pytest.raises(ValidationError, match="too large"):
            validator.validate_image("big.png", "extract_text")

    def test_empty_file(self):
        """Test zero-byte files are rejected."""
        validator = InputValidator(InMemoryFileAccessor({"empty.png": b""}))
        with pytest.raises(ValidationError, match="empty"):
            validator.validate_image("empty.png", "extract_text")

    def test_unsupported_format(self, png_bytes):
        """Test unsupported extensions list the supported formats."""
        validator = InputValidator(InMemoryFileAccessor({"scan.gif": png_bytes}))
        with pytest.raises(ValidationError, match="unsupported image format 'gif'"):
            validator.validate_image("scan.gif", "extract_text")

    def test_corrupt_image(self):
        """Test bytes that do not decode are rejected before any upload."""
        validator = InputValidator(InMemoryFileAccessor({"broken.jpg": b"not really a jpeg"}))
        with pytest.raises(ValidationError, match="unreadable image data"):
            validator.validate_image("broken.jpg", "extract_text")

    def test_heic_not_probed(self):
        """Test formats Pillow cannot open are accepted on extension alone."""
        validator = InputValidator(InMemoryFileAccessor({"photo.heic": b"\x00\x01heic-bytes"}))
        image = validator.validate_image("photo.heic", "extract_text")
        assert image.format == "heic"
        assert image.info is None

    def test_probe_disabled(self):
        """Test decode probing can be switched off."""
        validator = InputValidator(
            InMemoryFileAccessor({"broken.png": b"garbage"}),
            verify_decodable=False
        )
        assert validator.validate_image("broken.png", "extract_text").info is None


class TestValidateImages:
    """Test list validation."""

    def test_empty_list(self, validator):
        """Test an empty list is rejected."""
        with pytest.raises(ValidationError, match="no images provided"):
            validator.validate_images([], "extract_text_batch")

    def test_max_images(self, validator):
        """Test the per-request image cap."""
        refs = [f"page{i}.png" for i in range(1, 6)]
        with pytest.raises(ValidationError, match="maximum 3 images"):
            validator.validate_images(refs, "compose_structured_note", max_images=3)

    def test_order_preserved(self, validator):
        """Test validated images come back in input order."""
        refs = ["page3.png", "page1.png", "page2.png"]
        images = validator.validate_images(refs, "extract_text_batch")
        assert [image.path for image in images] == refs


class TestValidateOptions:
    """Test option range checks."""

    def test_defaults_valid(self, validator):
        """Test default options pass."""
        validator.validate_options(ExtractionOptions(), "extract_text")

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_threshold_out_of_range(self, validator, threshold):
        """Test thresholds outside [0, 1]."""
        with pytest.raises(ValidationError, match="quality_threshold"):
            validator.validate_options(ExtractionOptions(quality_threshold=threshold), "extract_text")

    @pytest.mark.parametrize("timeout", [0.5, 301])
    def test_timeout_out_of_range(self, validator, timeout):
        """Test timeouts outside 1..300 seconds."""
        with pytest.raises(ValidationError, match="timeout"):
            validator.validate_options(ExtractionOptions(timeout_seconds=timeout), "extract_text")

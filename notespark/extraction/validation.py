"""
Input validation performed before any network call.

Checks image references and request options and fails fast with a
ValidationError whose message is prefixed with the calling operation.
Validation errors are never retried.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Sequence

from ..adapters.file_accessor import FileAccessor, strip_file_uri
from ..vision.image_processor import ImageInfo, ImageProcessor, extension_of
from .error_handling import ValidationError
from .models import ExtractionOptions

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE_BYTES = 20 * 1024 * 1024
SUPPORTED_FORMATS: FrozenSet[str] = frozenset({"jpg", "jpeg", "png", "webp", "heic", "heif"})
MIN_TIMEOUT_SECONDS = 1.0
MAX_TIMEOUT_SECONDS = 300.0


@dataclass(frozen=True)
class ValidatedImage:
    """An image reference that passed validation."""
    image_ref: str
    path: str
    size_bytes: int
    format: str
    info: Optional[ImageInfo] = None


class InputValidator:
    """Validates image references and option ranges."""

    def __init__(
        self,
        file_accessor: FileAccessor,
        image_processor: Optional[ImageProcessor] = None,
        max_size_bytes: int = MAX_IMAGE_SIZE_BYTES,
        supported_formats: FrozenSet[str] = SUPPORTED_FORMATS,
        verify_decodable: bool = True
    ):
        self.file_accessor = file_accessor
        self.image_processor = image_processor or ImageProcessor()
        self.max_size_bytes = max_size_bytes
        self.supported_formats = supported_formats
        self.verify_decodable = verify_decodable

    def validate_image(self, image_ref: str, operation: str) -> ValidatedImage:
        """
        Validate a single image reference.

        Args:
            image_ref: Path or file:// URI of the image
            operation: Operation name used as the error message prefix

        Returns:
            ValidatedImage with size and format

        Raises:
            ValidationError: On any failed check
        """
        if not isinstance(image_ref, str) or not image_ref.strip():
            raise ValidationError(f"{operation}: image reference must be a non-empty string", operation)

        path = strip_file_uri(image_ref.strip())

        try:
            exists = self.file_accessor.exists(path)
        except OSError as e:
            raise ValidationError(f"{operation}: cannot access image {path}: {e}", operation)
        if not exists:
            raise ValidationError(f"{operation}: image file not found: {path}", operation)

        try:
            size = self.file_accessor.stat(path)
        except OSError as e:
            raise ValidationError(f"{operation}: cannot read image {path}: {e}", operation)

        if size > self.max_size_bytes:
            raise ValidationError(
                f"{operation}: image too large ({size / (1024 * 1024):.1f}MB), "
                f"maximum is {self.max_size_bytes / (1024 * 1024):.0f}MB",
                operation
            )
        if size == 0:
            raise ValidationError(f"{operation}: image file is empty: {path}", operation)

        image_format = extension_of(path)
        if image_format not in self.supported_formats:
            raise ValidationError(
                f"{operation}: unsupported image format '{image_format or 'none'}', "
                f"supported formats: {', '.join(sorted(self.supported_formats))}",
                operation
            )

        info = None
        if self.verify_decodable and self.image_processor.can_probe(path):
            try:
                info = self.image_processor.probe(self.file_accessor.read_bytes(path))
            except (ValueError, OSError) as e:
                raise ValidationError(f"{operation}: {e}", operation)

        return ValidatedImage(
            image_ref=image_ref,
            path=path,
            size_bytes=size,
            format=image_format,
            info=info
        )

    def validate_images(
        self,
        image_refs: Sequence[str],
        operation: str,
        max_images: Optional[int] = None
    ) -> List[ValidatedImage]:
        """Validate a list of image references, in order."""
        if isinstance(image_refs, str) or not image_refs:
            raise ValidationError(f"{operation}: no images provided for processing", operation)
        if max_images is not None and len(image_refs) > max_images:
            raise ValidationError(
                f"{operation}: maximum {max_images} images allowed per request, got {len(image_refs)}",
                operation
            )
        return [self.validate_image(ref, operation) for ref in image_refs]

    def validate_options(self, options: ExtractionOptions, operation: str) -> None:
        """Check numeric option ranges."""
        threshold = options.quality_threshold
        if threshold is not None and not 0.0 <= threshold <= 1.0:
            raise ValidationError(
                f"{operation}: quality_threshold must be between 0 and 1, got {threshold}",
                operation
            )

        timeout = options.timeout_seconds
        if timeout is not None and not MIN_TIMEOUT_SECONDS <= timeout <= MAX_TIMEOUT_SECONDS:
            raise ValidationError(
                f"{operation}: timeout must be between {MIN_TIMEOUT_SECONDS:.0f} and "
                f"{MAX_TIMEOUT_SECONDS:.0f} seconds, got {timeout}",
                operation
            )

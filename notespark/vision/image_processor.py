"""
Image helpers for provider payloads.

Maps file extensions to declared mime types and probes image bytes with
Pillow so that corrupt uploads are rejected before they reach a paid API.
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "heic": "image/heic",
    "heif": "image/heif",
}

DEFAULT_MIME_TYPE = "image/jpeg"

# HEIC/HEIF need a Pillow plugin, so only these are decoded during validation
PROBE_FORMATS = {"jpg", "jpeg", "png", "webp"}


def extension_of(image_ref: str) -> str:
    """Lower-cased extension without the dot, or an empty string."""
    name = image_ref.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def mime_type_for(image_ref: str) -> str:
    """Declared mime type for an image reference."""
    extension = extension_of(image_ref)
    mime_type = MIME_TYPES.get(extension)
    if mime_type is None:
        logger.warning(f"Unknown image extension '{extension}', defaulting to {DEFAULT_MIME_TYPE}")
        return DEFAULT_MIME_TYPE
    return mime_type


@dataclass(frozen=True)
class ImageInfo:
    width: int
    height: int
    format: Optional[str]
    mode: str


class ImageProcessor:
    """
    Pillow-backed inspection of page images.

    Handles decode probing and basic dimension checks for images that are
    about to be uploaded.
    """

    def __init__(self, min_dimension: int = 1):
        """
        Initialize image processor.

        Args:
            min_dimension: Smallest accepted width or height in pixels
        """
        self.min_dimension = min_dimension

    def can_probe(self, image_ref: str) -> bool:
        return extension_of(image_ref) in PROBE_FORMATS

    def probe(self, data: bytes) -> ImageInfo:
        """
        Decode image headers and verify the file is a readable image.

        Args:
            data: Raw image bytes

        Returns:
            ImageInfo with dimensions and detected format

        Raises:
            ValueError: If the bytes are not a decodable image or too small
        """
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.verify()
            # verify() leaves the image unusable, reopen for attributes
            with Image.open(io.BytesIO(data)) as image:
                info = ImageInfo(
                    width=image.width,
                    height=image.height,
                    format=image.format,
                    mode=image.mode
                )
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise ValueError(f"unreadable image data: {e}")

        if info.width < self.min_dimension or info.height < self.min_dimension:
            raise ValueError(
                f"image too small: {info.width}x{info.height} "
                f"(minimum {self.min_dimension}px)"
            )

        return info

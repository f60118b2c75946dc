"""
Provider clients.

This module handles the cheap OCR provider, the multimodal generative
provider with its empty-response fallback ladder, prompt construction and
the local image probe used during validation.
"""

from .ocr_client import OCRClient, OCRClientConfig
from .multimodal_client import MultimodalClient, MultimodalClientConfig
from .image_processor import ImageProcessor

__all__ = [
    "OCRClient",
    "OCRClientConfig",
    "MultimodalClient",
    "MultimodalClientConfig",
    "ImageProcessor",
]

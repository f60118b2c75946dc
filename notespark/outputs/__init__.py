"""
Rule-based note structuring.

Turns plain extracted text into a titled note with HTML-like markup, and
parses notes composed by the multimodal provider.
"""

from .structurer import TextStructurer, parse_composed_note

__all__ = [
    "TextStructurer",
    "parse_composed_note",
]

"""
Provider response schemas.

Raw JSON from the OCR and multimodal providers is parsed into these models at
the client boundary so that malformed shapes surface as TransientError instead
of leaking missing keys into formatting logic.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ProviderModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# OCR (images:annotate)

class Vertex(_ProviderModel):
    x: Optional[float] = None
    y: Optional[float] = None


class BoundingPoly(_ProviderModel):
    vertices: List[Vertex] = Field(default_factory=list)


class TextAnnotation(_ProviderModel):
    description: str = ""
    confidence: Optional[float] = None
    bounding_poly: Optional[BoundingPoly] = Field(default=None, alias="boundingPoly")


class ProviderStatus(_ProviderModel):
    code: Optional[int] = None
    message: str = ""


class AnnotateImageResponse(_ProviderModel):
    text_annotations: List[TextAnnotation] = Field(default_factory=list, alias="textAnnotations")
    error: Optional[ProviderStatus] = None


class BatchAnnotateImagesResponse(_ProviderModel):
    responses: List[AnnotateImageResponse]


# Multimodal (models/*:generateContent)

class ContentPart(_ProviderModel):
    text: Optional[str] = None


class CandidateContent(_ProviderModel):
    parts: List[ContentPart] = Field(default_factory=list)
    role: Optional[str] = None


class Candidate(_ProviderModel):
    content: Optional[CandidateContent] = None
    finish_reason: Optional[str] = Field(default=None, alias="finishReason")


class PromptFeedback(_ProviderModel):
    block_reason: Optional[str] = Field(default=None, alias="blockReason")


class GenerateContentResponse(_ProviderModel):
    candidates: List[Candidate] = Field(default_factory=list)
    prompt_feedback: Optional[PromptFeedback] = Field(default=None, alias="promptFeedback")

    @property
    def finish_reason(self) -> str:
        if not self.candidates:
            return "UNKNOWN"
        return self.candidates[0].finish_reason or "UNKNOWN"

    def text(self) -> str:
        """Concatenated text of the first candidate."""
        if not self.candidates or self.candidates[0].content is None:
            return ""
        return "".join(part.text or "" for part in self.candidates[0].content.parts)


class ErrorBody(_ProviderModel):
    code: Optional[int] = None
    message: str = ""
    status: Optional[str] = None


class ErrorEnvelope(_ProviderModel):
    error: ErrorBody

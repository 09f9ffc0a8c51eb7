"""
Image generation over Gemini / Vertex generateContent.
"""
from .base import (
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ImageGenerationError,
    InputImage,
)
from .endpoints import build_generate_url
from .factory import ImageProviderFactory
from .runner import generate_with_retry
from .failure_types import FailureType, classify_failure

__all__ = [
    "ImageGenerationProvider",
    "ImageGenerationRequest",
    "ImageGenerationResponse",
    "ImageGenerationError",
    "InputImage",
    "build_generate_url",
    "ImageProviderFactory",
    "generate_with_retry",
    "FailureType",
    "classify_failure",
]

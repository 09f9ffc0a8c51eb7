"""
Base classes and types for image generation providers.
Used by factory, runner and the gemini / vertex providers.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from app.schemas.generation import ServiceConfig


@dataclass
class InputImage:
    """Downloaded input image, sent inline with the prompt."""
    data: bytes
    mime_type: str = "image/jpeg"


@dataclass
class ImageGenerationRequest:
    """Request for image generation. aspect_ratio "" lets the model decide."""
    prompt: str
    quality: str = "2K"  # imageSize tier: 1K, 2K, 4K
    aspect_ratio: str = ""
    images: list[InputImage] = field(default_factory=list)


@dataclass
class ImageGenerationResponse:
    """Response from image generation."""
    image_content: bytes
    model: str
    provider: str
    mime_type: str = "image/png"
    raw_response_sanitized: dict[str, Any] | None = None


class ImageGenerationError(Exception):
    """Raised when generation fails; detail holds Gemini-specific fields for logging."""
    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


def build_gemini_error_detail(result: dict[str, Any]) -> dict[str, Any]:
    """
    Extract error-related fields from raw Gemini API response for logging.
    Normalized keys: prompt_feedback, block_reason, finish_reason, finish_message.
    """
    detail: dict[str, Any] = {}
    if not result:
        return detail
    prompt_feedback = result.get("promptFeedback") or {}
    if prompt_feedback:
        detail["prompt_feedback"] = prompt_feedback
        if prompt_feedback.get("blockReason"):
            detail["block_reason"] = prompt_feedback.get("blockReason")
    candidates = result.get("candidates") or []
    if candidates:
        c0 = candidates[0]
        if "finishReason" in c0:
            detail["finish_reason"] = c0["finishReason"]
        if "finishMessage" in c0:
            detail["finish_message"] = c0["finishMessage"]
    return detail


def _sanitize_value(value: Any) -> Any:
    """Recursively replace base64 data with placeholder."""
    if value is None:
        return None
    if isinstance(value, dict):
        if "data" in value and ("mimeType" in value or "mime_type" in value):
            return {"mimeType": value.get("mimeType") or value.get("mime_type"), "data": "[REDACTED]"}
        return {k: _sanitize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_sanitize_value(v) for v in value]
    return value


def sanitize_gemini_response_for_log(result: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of the Gemini response safe for logging (no base64 image data)."""
    if not result:
        return {}
    out = _sanitize_value(result)
    return out if isinstance(out, dict) else {}


class ImageGenerationProvider(ABC):
    """Base class for image generation providers. One instance per resolved service."""

    name = "base"

    def __init__(self, service: ServiceConfig, timeout: float) -> None:
        self.service = service
        self.timeout = timeout

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model the provider calls."""

    @abstractmethod
    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        """Generate image from request. Raises ImageGenerationError on failure."""

"""
Gemini provider (generateContent image generation).
Serves the standard and custom service variants; vertex reuses it with its own endpoint.
200 OK with no image is never a silent success: it raises with normalized detail for the runner.
"""
import base64
import binascii
import json
import logging
from typing import Any

import httpx

from app.core.config import settings
from app.schemas.generation import ServiceConfig
from app.services.image_generation.base import (
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ImageGenerationError,
    build_gemini_error_detail,
    sanitize_gemini_response_for_log,
)
from app.services.image_generation.endpoints import build_generate_url, effective_model, redact_url

logger = logging.getLogger(__name__)

HARM_CATEGORIES = (
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)
DEFAULT_SAFETY_SETTINGS: list[dict[str, str]] = [
    {"category": category, "threshold": "OFF"} for category in HARM_CATEGORIES
]


def _parse_safety_settings(value: Any) -> list[dict[str, Any]]:
    """Parse safety_settings from config (list of {category, threshold} or JSON string)."""
    if not value:
        return DEFAULT_SAFETY_SETTINGS
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("invalid GEMINI_SAFETY_SETTINGS, using defaults")
            return DEFAULT_SAFETY_SETTINGS
        return parsed if isinstance(parsed, list) else DEFAULT_SAFETY_SETTINGS
    return DEFAULT_SAFETY_SETTINGS


def build_request_body(request: ImageGenerationRequest, safety_settings: list[dict[str, Any]]) -> dict[str, Any]:
    """Prompt text first, then every image inline in order."""
    parts: list[dict[str, Any]] = [{"text": request.prompt}]
    for image in request.images:
        parts.append({
            "inline_data": {
                "mime_type": image.mime_type,
                "data": base64.standard_b64encode(image.data).decode("ascii"),
            },
        })

    image_config: dict[str, Any] = {"imageSize": request.quality}
    if request.aspect_ratio:
        image_config["aspectRatio"] = request.aspect_ratio

    return {
        "contents": [{"parts": parts}],
        "generationConfig": {
            "responseModalities": ["IMAGE"],
            "imageConfig": image_config,
        },
        "safetySettings": safety_settings,
    }


def _error_message(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    try:
        err_body = response.json()
    except ValueError:
        err_body = {}
    if not isinstance(err_body, dict):
        err_body = {}
    detail = build_gemini_error_detail(err_body)
    detail["http_status"] = response.status_code
    retry_after = response.headers.get("Retry-After")
    if retry_after is not None:
        detail["retry_after"] = retry_after
    api_message = (err_body.get("error") or {}).get("message") if err_body else None
    message = f"API error {response.status_code}: {api_message or response.text[:500]}"
    return message, detail


class GeminiProvider(ImageGenerationProvider):
    """Gemini image generation via generateContent with an api key."""

    name = "gemini"

    def __init__(self, service: ServiceConfig, timeout: float | None = None) -> None:
        super().__init__(service, timeout if timeout is not None else settings.gemini_timeout)
        self._model = effective_model(service, settings.gemini_image_model)
        # Raises InvalidBackendConfig before any attempt is made
        self.url = build_generate_url(service, self._model)
        self.safety_settings = _parse_safety_settings(settings.gemini_safety_settings)

    @property
    def model_name(self) -> str:
        return self._model

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(self.url, json=body)
        except httpx.TimeoutException as e:
            raise ImageGenerationError(f"request timed out after {self.timeout:.0f}s", detail={}) from e
        except httpx.HTTPError as e:
            raise ImageGenerationError(f"request failed: {e}", detail={}) from e

        if resp.status_code != 200:
            message, detail = _error_message(resp)
            raise ImageGenerationError(message, detail=detail)
        try:
            result = resp.json()
        except ValueError as e:
            raise ImageGenerationError("invalid JSON in response", detail={"http_status": 200}) from e
        if not isinstance(result, dict):
            raise ImageGenerationError("unexpected response shape", detail={"http_status": 200})
        return result

    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        body = build_request_body(request, self.safety_settings)
        logger.info(
            "generate_content_request",
            extra={
                "service": self.service.name or self.name,
                "service_type": self.service.type.value,
                "quality": request.quality,
                "aspect_ratio": request.aspect_ratio or None,
                "image_count": len(request.images),
                "path": redact_url(self.url),
            },
        )
        result = self._post(body)

        prompt_feedback = result.get("promptFeedback") or {}
        if prompt_feedback.get("blockReason"):
            raise ImageGenerationError(
                f"prompt blocked: {prompt_feedback['blockReason']}",
                detail=build_gemini_error_detail(result),
            )

        candidates = result.get("candidates") or []
        if not candidates:
            raise ImageGenerationError("no candidates in response", detail=build_gemini_error_detail(result))

        content = candidates[0].get("content") or {}
        response_parts = content.get("parts") or []
        if not response_parts:
            detail = build_gemini_error_detail(result)
            finish_reason = detail.get("finish_reason")
            message = f"no parts in content (finishReason={finish_reason})" if finish_reason else "no parts in content"
            raise ImageGenerationError(message, detail=detail)

        for part in response_parts:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and isinstance(inline.get("data"), str):
                try:
                    content_bytes = base64.standard_b64decode(inline["data"])
                except (binascii.Error, ValueError) as e:
                    raise ImageGenerationError("invalid base64 image data", detail={}) from e
                return ImageGenerationResponse(
                    image_content=content_bytes,
                    model=self.model_name,
                    provider=self.name,
                    mime_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
                    raw_response_sanitized=sanitize_gemini_response_for_log(result),
                )

        raise ImageGenerationError("no image data in response", detail=build_gemini_error_detail(result))

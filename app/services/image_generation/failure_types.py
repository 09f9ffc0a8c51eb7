"""
Failure normalization for Gemini / Vertex errors.
Used for logging and metrics labels only: every provider failure consumes one
attempt of the fixed budget regardless of its type.
"""
from enum import Enum
from typing import Any


class FailureType(str, Enum):
    TRANSPORT_TRANSIENT = "transport_transient"  # 429, 5xx, timeout, connection errors
    CLIENT_ERROR = "client_error"  # 4xx except 429 (bad key, bad request)
    PROMPT_BLOCKED = "prompt_blocked"  # promptFeedback.blockReason
    RESPONSE_BLOCKED = "response_blocked"  # finishReason SAFETY / PROHIBITED_CONTENT / ...
    EMPTY_RESPONSE = "empty_response"  # 200 without an image


BLOCKING_FINISH_REASONS = frozenset({
    "SAFETY",
    "IMAGE_SAFETY",
    "BLOCKLIST",
    "SPII",
    "PROHIBITED_CONTENT",
    "RECITATION",
})


def classify_failure(http_status: int | None, detail: dict[str, Any]) -> FailureType:
    """Classify failure from HTTP status and Gemini-style detail."""
    if http_status is not None and http_status != 200:
        if http_status == 429 or 500 <= http_status < 600:
            return FailureType.TRANSPORT_TRANSIENT
        if 400 <= http_status < 500:
            return FailureType.CLIENT_ERROR

    prompt_feedback = detail.get("prompt_feedback") or {}
    if detail.get("block_reason") or prompt_feedback.get("blockReason"):
        return FailureType.PROMPT_BLOCKED

    finish_reason = str(detail.get("finish_reason") or "").strip().upper()
    if finish_reason in BLOCKING_FINISH_REASONS:
        return FailureType.RESPONSE_BLOCKED

    # Parsed a response but found no image
    if detail or http_status == 200:
        return FailureType.EMPTY_RESPONSE

    return FailureType.TRANSPORT_TRANSIENT

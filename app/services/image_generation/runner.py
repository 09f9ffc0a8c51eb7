"""
Attempt driver: fixed-budget generate-with-retry.
Same request (prompt, quality, aspect ratio, images) on every try, fixed delay
between tries, no jitter. On exhaustion the last error is re-raised unchanged.
"""
import logging
import time
from typing import Callable

from app.core.config import settings
from app.services.image_generation.base import (
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ImageGenerationError,
)
from app.services.image_generation.failure_types import classify_failure
from app.utils.metrics import generation_attempts_total, generation_duration_seconds

logger = logging.getLogger(__name__)

AttemptCallback = Callable[[int, int], None]


def generate_with_retry(
    provider: ImageGenerationProvider,
    request: ImageGenerationRequest,
    *,
    max_attempts: int | None = None,
    delay_seconds: float | None = None,
    on_attempt: AttemptCallback | None = None,
) -> ImageGenerationResponse:
    """
    Call provider.generate up to max_attempts times (default 6), sleeping
    delay_seconds (default 2.0) between failed tries.

    on_attempt(attempt, max_attempts) is called before each try, e.g. to edit
    the status message. Errors raised by the callback propagate.
    """
    if max_attempts is None:
        max_attempts = settings.generation_max_attempts
    if delay_seconds is None:
        delay_seconds = settings.generation_retry_delay_seconds

    last_error: ImageGenerationError | None = None

    for attempt in range(1, max_attempts + 1):
        if on_attempt is not None:
            on_attempt(attempt, max_attempts)

        started = time.monotonic()
        try:
            result = provider.generate(request)
        except ImageGenerationError as e:
            generation_duration_seconds.labels(provider=provider.name).observe(time.monotonic() - started)
            last_error = e
            detail = e.detail or {}
            failure_type = classify_failure(detail.get("http_status"), detail)
            detail["failure_type"] = failure_type.value
            generation_attempts_total.labels(provider=provider.name, outcome=failure_type.value).inc()
            logger.warning(
                "generation_attempt_failed",
                extra={
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "failure_type": failure_type.value,
                    "http_status": detail.get("http_status"),
                    "error": str(e),
                },
            )
            if attempt < max_attempts:
                time.sleep(delay_seconds)
            continue

        generation_duration_seconds.labels(provider=provider.name).observe(time.monotonic() - started)
        generation_attempts_total.labels(provider=provider.name, outcome="success").inc()
        if attempt > 1:
            logger.info(
                "generation_succeeded_after_retry",
                extra={"attempt": attempt, "max_attempts": max_attempts},
            )
        return result

    if last_error is not None:
        raise last_error
    raise RuntimeError("generate_with_retry: max_attempts must be >= 1")

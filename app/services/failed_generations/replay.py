"""
One replay of a queued failed generation (run by the beat task every 15 minutes).

Exactly one provider call per replay: the schedule itself is the retry loop.
Outcomes are recorded on the task, never shown to the user except on success.
"""
import logging
from enum import Enum
from typing import Callable

import httpx
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.failed_generation import FailedGeneration
from app.schemas.generation import FailedGenerationPayload, ServiceConfig
from app.services.aspect_ratio import resolve_aspect_ratio
from app.services.backends.resolver import resolve_service_config
from app.services.exceptions import DownloadFailure, InvalidBackendConfig, NoServiceConfigured
from app.services.failed_generations.service import FailedGenerationService
from app.services.image_generation import (
    ImageGenerationError,
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ImageProviderFactory,
)
from app.services.telegram.client import TelegramAPIError, TelegramClient
from app.services.telegram.files import download_images
from app.utils.metrics import failed_generation_events_total

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ServiceConfig, float], ImageGenerationProvider]


class ReplayOutcome(str, Enum):
    EMPTY = "empty"
    DISCARDED = "discarded"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def _default_provider_factory(service: ServiceConfig, timeout: float) -> ImageGenerationProvider:
    return ImageProviderFactory.create(service, timeout=timeout)


def deliver_replay_result(
    telegram: TelegramClient,
    task: FailedGeneration,
    payload: FailedGenerationPayload,
    result: ImageGenerationResponse,
) -> None:
    """Notice, preview photo, then the original file; each replies to the original message when known."""
    reply_to = task.reply_to_message_id or None
    telegram.send_message(
        task.chat_id,
        f"♻️ Automatic retry succeeded (task #{task.id})",
        reply_to_message_id=reply_to,
    )
    telegram.send_photo(
        task.chat_id,
        result.image_content,
        filename="retry_preview.png",
        reply_to_message_id=reply_to,
    )
    filename = f"retry_generated_{payload.quality}.png" if payload.quality else "retry_generated.png"
    telegram.send_document(
        task.chat_id,
        result.image_content,
        filename=filename,
        caption="📎 Scheduled retry output (original quality)",
        reply_to_message_id=reply_to,
    )


def _service_for(db: Session, task: FailedGeneration, payload: FailedGenerationPayload) -> ServiceConfig:
    if payload.service.api_key:
        return payload.service
    service, _ = resolve_service_config(db, task.user_id)
    return service


def replay_one_failed_generation(
    db: Session,
    telegram: TelegramClient,
    provider_factory: ProviderFactory | None = None,
    timeout: float | None = None,
) -> ReplayOutcome:
    queue = FailedGenerationService(db)
    task = queue.pick_random()
    if task is None:
        return ReplayOutcome.EMPTY

    task_id = task.id
    log_extra = {"task_id": task_id, "user_id": task.user_id, "retry_count": task.retry_count}

    try:
        payload = FailedGenerationPayload.model_validate_json(task.payload)
    except ValidationError as e:
        logger.error("failed_generation_payload_invalid", extra={**log_extra, "error": str(e)})
        queue.delete(task_id)
        failed_generation_events_total.labels(event="discarded").inc()
        return ReplayOutcome.DISCARDED

    def _fail(error: Exception | str, stage: str) -> ReplayOutcome:
        queue.mark_retry(task_id, str(error))
        failed_generation_events_total.labels(event="replay_failed").inc()
        logger.warning("failed_generation_replay_failed", extra={**log_extra, "outcome": stage, "error": str(error)})
        return ReplayOutcome.FAILED

    factory = provider_factory or _default_provider_factory
    replay_timeout = timeout if timeout is not None else settings.failed_generation_replay_timeout

    try:
        service = _service_for(db, task, payload)
        provider = factory(service, replay_timeout)
    except (NoServiceConfigured, InvalidBackendConfig) as e:
        return _fail(e, "service")

    try:
        images = download_images(telegram, payload.image_file_ids)
    except DownloadFailure as e:
        return _fail(e, "download")

    aspect_ratio = resolve_aspect_ratio(payload.aspect_ratio, images[0].data if images else None)
    request = ImageGenerationRequest(
        prompt=payload.prompt,
        quality=payload.quality,
        aspect_ratio=aspect_ratio,
        images=images,
    )

    try:
        result = provider.generate(request)
    except ImageGenerationError as e:
        return _fail(e, "generate")

    try:
        deliver_replay_result(telegram, task, payload, result)
    except (TelegramAPIError, httpx.HTTPError) as e:
        return _fail(e, "deliver")

    queue.delete(task_id)
    failed_generation_events_total.labels(event="replay_succeeded").inc()
    logger.info("failed_generation_replayed", extra={**log_extra, "outcome": "succeeded"})
    return ReplayOutcome.SUCCEEDED

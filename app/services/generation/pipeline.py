"""
Live generation: download inputs, resolve the ratio once, run the attempt
driver with status updates, deliver the result or queue the request.
"""
import logging
from enum import Enum
from typing import Callable

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.schemas.generation import GenerationJob, ServiceConfig
from app.services.aspect_ratio import ratio_display_text, resolve_aspect_ratio
from app.services.exceptions import DownloadFailure, InvalidBackendConfig
from app.services.failed_generations.service import FailedGenerationService
from app.services.generation import messages
from app.services.image_generation import (
    ImageGenerationError,
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ImageProviderFactory,
    generate_with_retry,
)
from app.services.telegram.client import TelegramAPIError, TelegramClient
from app.services.telegram.files import download_images
from app.utils.metrics import generation_requests_total

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ServiceConfig, float], ImageGenerationProvider]


class GenerationOutcome(str, Enum):
    SUCCESS = "success"
    QUEUED = "queued"
    INVALID_CONFIG = "invalid_config"
    DOWNLOAD_FAILED = "download_failed"
    DELIVERY_FAILED = "delivery_failed"


def _default_provider_factory(service: ServiceConfig, timeout: float) -> ImageGenerationProvider:
    return ImageProviderFactory.create(service, timeout=timeout)


def deliver_result(telegram: TelegramClient, job: GenerationJob, result: ImageGenerationResponse) -> None:
    """Compressed preview first, then the untouched file as a document."""
    telegram.delete_message(job.chat_id, job.status_message_id)
    telegram.send_photo(
        job.chat_id,
        result.image_content,
        filename="preview.png",
        reply_to_message_id=job.message_id,
    )
    telegram.send_document(
        job.chat_id,
        result.image_content,
        filename=f"generated_{job.quality}.png",
        caption="📎 Original quality file",
        reply_to_message_id=job.message_id,
    )


def run_generation(
    db: Session,
    telegram: TelegramClient,
    job: GenerationJob,
    provider_factory: ProviderFactory | None = None,
) -> GenerationOutcome:
    log_extra = {"user_id": job.user_id, "chat_id": job.chat_id, "message_id": job.message_id}
    quality_label = messages.quality_display(job.quality, job.quality_explicit)
    ratio_label = job.requested_ratio or ("Auto" if job.image_file_ids else "1:1 (default)")

    def _status(text: str) -> None:
        telegram.edit_message(job.chat_id, job.status_message_id, text, parse_mode="HTML")

    def _finish(outcome: GenerationOutcome) -> GenerationOutcome:
        generation_requests_total.labels(outcome=outcome.value).inc()
        logger.info("generation_finished", extra={**log_extra, "outcome": outcome.value})
        return outcome

    try:
        provider = (provider_factory or _default_provider_factory)(job.service, settings.gemini_timeout)
    except InvalidBackendConfig as e:
        _status(messages.invalid_service_text(str(e)))
        return _finish(GenerationOutcome.INVALID_CONFIG)

    try:
        images = download_images(
            telegram,
            job.image_file_ids,
            on_progress=lambda position, total: _status(
                messages.downloading_text(ratio_label, quality_label, position, total)
            ),
        )
    except DownloadFailure as e:
        _status(messages.download_failed_text(e.position, str(e.cause)))
        return _finish(GenerationOutcome.DOWNLOAD_FAILED)

    # Resolved once; every attempt below reuses it
    aspect_ratio = resolve_aspect_ratio(job.requested_ratio, images[0].data if images else None)
    ratio_label = ratio_display_text(job.requested_ratio, aspect_ratio, len(images))
    request = ImageGenerationRequest(
        prompt=job.prompt,
        quality=job.quality,
        aspect_ratio=aspect_ratio,
        images=images,
    )
    _status(messages.generating_text(job.service_name, ratio_label, quality_label, len(images)))

    try:
        result = generate_with_retry(
            provider,
            request,
            on_attempt=lambda attempt, total: _status(
                messages.generating_text(
                    job.service_name, ratio_label, quality_label, len(images),
                    attempt=attempt, max_attempts=total, tier=job.quality,
                )
            ),
        )
    except ImageGenerationError as e:
        FailedGenerationService(db).enqueue(
            user_id=job.user_id,
            chat_id=job.chat_id,
            reply_to_message_id=job.message_id,
            payload=job.to_failed_payload(),
            last_error=str(e),
        )
        _status(messages.queued_text(
            settings.generation_max_attempts,
            settings.failed_generation_retry_interval_minutes,
            str(e),
        ))
        return _finish(GenerationOutcome.QUEUED)

    try:
        deliver_result(telegram, job, result)
    except (TelegramAPIError, httpx.HTTPError) as e:
        logger.exception("generation_delivery_failed", extra={**log_extra, "error": str(e)})
        return _finish(GenerationOutcome.DELIVERY_FAILED)
    return _finish(GenerationOutcome.SUCCESS)

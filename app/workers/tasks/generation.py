"""
Celery task: one live generation request.
Bot calls: send_task("app.workers.tasks.generation.generate_image", args=[job_dict]).
The task blocks for the whole retry sequence; the status message shows progress.
"""
import logging

from pydantic import ValidationError

from app.core.celery_app import celery_app
from app.core.config import settings
from app.db.session import SessionLocal
from app.schemas.generation import GenerationJob
from app.services.generation.messages import failed_text
from app.services.generation.pipeline import run_generation
from app.services.telegram.client import TelegramClient

logger = logging.getLogger(__name__)

# Worst case: every attempt hits the provider timeout, plus downloads and delivery
_TIME_LIMIT = int(
    settings.generation_max_attempts * (settings.gemini_timeout + settings.generation_retry_delay_seconds)
) + 300


@celery_app.task(
    name="app.workers.tasks.generation.generate_image",
    time_limit=_TIME_LIMIT,
    soft_time_limit=_TIME_LIMIT - 30,
)
def generate_image(job_data: dict) -> dict:
    try:
        job = GenerationJob.model_validate(job_data)
    except ValidationError as e:
        logger.error("generation_job_invalid", extra={"error": str(e)})
        return {"ok": False, "outcome": "invalid_job"}

    db = SessionLocal()
    telegram = TelegramClient()
    try:
        outcome = run_generation(db, telegram, job)
        return {"ok": outcome.value == "success", "outcome": outcome.value}
    except Exception as e:
        logger.exception(
            "generation_task_failed",
            extra={"user_id": job.user_id, "chat_id": job.chat_id, "error": str(e)},
        )
        telegram.edit_message(job.chat_id, job.status_message_id, failed_text(str(e)), parse_mode="HTML")
        raise
    finally:
        telegram.close()
        db.close()

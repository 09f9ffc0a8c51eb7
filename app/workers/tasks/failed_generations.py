"""
Celery beat task: replay one random failed generation every 15 minutes.
A Redis lock keeps overlapping ticks from replaying concurrently.
"""
import logging

from app.core.celery_app import celery_app
from app.core.config import settings
from app.db.session import SessionLocal
from app.services.failed_generations.replay import replay_one_failed_generation
from app.services.failed_generations.service import FailedGenerationService
from app.services.idempotency import SingleFlightLock
from app.services.telegram.client import TelegramClient

logger = logging.getLogger(__name__)

LOCK_KEY = "failed-generation-replay"
_LOCK_TTL = int(settings.failed_generation_replay_timeout) + 120


@celery_app.task(
    name="app.workers.tasks.failed_generations.retry_failed_generation",
    time_limit=_LOCK_TTL,
    soft_time_limit=_LOCK_TTL - 30,
)
def retry_failed_generation() -> dict:
    lock = SingleFlightLock()
    if not lock.acquire(LOCK_KEY, _LOCK_TTL):
        logger.info("failed_generation_replay_skipped", extra={"outcome": "locked"})
        return {"ok": True, "outcome": "locked"}

    db = SessionLocal()
    telegram = TelegramClient()
    try:
        outcome = replay_one_failed_generation(db, telegram)
        pending = FailedGenerationService(db).count_pending()
        return {"ok": True, "outcome": outcome.value, "pending": pending}
    except Exception:
        logger.exception("failed_generation_replay_error")
        db.rollback()
        return {"ok": False, "outcome": "error"}
    finally:
        telegram.close()
        db.close()
        if not lock.release(LOCK_KEY):
            logger.warning("failed_generation_replay_lock_lost", extra={"outcome": "lock_expired"})

import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.failed_generation import FailedGeneration
from app.schemas.generation import FailedGenerationPayload
from app.utils.metrics import failed_generation_events_total, failed_generations_pending
from app.utils.text import truncate_error

logger = logging.getLogger(__name__)


class FailedGenerationService:
    """Durable queue of generation requests that used up their live retry budget."""

    def __init__(self, db: Session):
        self.db = db

    def enqueue(
        self,
        user_id: int,
        chat_id: int,
        reply_to_message_id: int | None,
        payload: FailedGenerationPayload,
        last_error: str,
    ) -> FailedGeneration | None:
        """
        Store a failed request with retry_count=0.
        Store errors are logged and swallowed: the user has already been told about the failure.
        """
        task = FailedGeneration(
            user_id=user_id,
            chat_id=chat_id,
            reply_to_message_id=reply_to_message_id or 0,
            payload=payload.model_dump_json(),
            last_error=truncate_error(last_error or ""),
            retry_count=0,
        )
        try:
            self.db.add(task)
            self.db.commit()
            self.db.refresh(task)
        except SQLAlchemyError:
            self.db.rollback()
            failed_generation_events_total.labels(event="enqueue_failed").inc()
            logger.exception("failed_generation_enqueue_failed", extra={"user_id": user_id, "chat_id": chat_id})
            return None
        failed_generation_events_total.labels(event="enqueued").inc()
        logger.info(
            "failed_generation_enqueued",
            extra={"task_id": task.id, "user_id": user_id, "chat_id": chat_id},
        )
        return task

    def get(self, task_id: int) -> FailedGeneration | None:
        return self.db.query(FailedGeneration).filter(FailedGeneration.id == task_id).one_or_none()

    def pick_random(self) -> FailedGeneration | None:
        return self.db.query(FailedGeneration).order_by(func.random()).limit(1).first()

    def mark_retry(self, task_id: int, error: str) -> None:
        """retry_count + 1, overwrite last_error, stamp last_retry_at. The task stays queued."""
        task = self.get(task_id)
        if task is None:
            return
        task.retry_count = (task.retry_count or 0) + 1
        task.last_error = truncate_error(error or "")
        task.last_retry_at = datetime.now(timezone.utc)
        self.db.add(task)
        self.db.commit()

    def delete(self, task_id: int) -> None:
        self.db.query(FailedGeneration).filter(FailedGeneration.id == task_id).delete(synchronize_session=False)
        self.db.commit()

    def count_pending(self) -> int:
        count = self.db.query(func.count(FailedGeneration.id)).scalar() or 0
        failed_generations_pending.set(count)
        return count

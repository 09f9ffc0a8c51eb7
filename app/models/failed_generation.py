from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, Text

from app.db.base import Base


class FailedGeneration(Base):
    """A generation request that used up its live retry budget; replayed by the beat task."""

    __tablename__ = "failed_generations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    chat_id = Column(BigInteger, nullable=False)
    reply_to_message_id = Column(BigInteger, nullable=False, default=0)  # 0 = no reply target
    payload = Column(Text, nullable=False)  # FailedGenerationPayload JSON
    last_error = Column(Text, nullable=False, default="")
    retry_count = Column(Integer, nullable=False, default=0)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    last_retry_at = Column(DateTime(timezone=True), nullable=True)

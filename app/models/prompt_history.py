from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, Text

from app.db.base import Base


class PromptHistory(Base):
    __tablename__ = "prompt_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    prompt = Column(Text, nullable=False)
    used_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

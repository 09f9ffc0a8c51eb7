from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, String

from app.db.base import Base


class UserSettings(Base):
    """Per-user preferences. Only the default quality tier for now."""

    __tablename__ = "user_settings"

    user_id = Column(BigInteger, primary_key=True, autoincrement=False)
    default_quality = Column(String, nullable=False, default="2K")
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

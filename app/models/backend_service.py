from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from app.db.base import Base


class BackendService(Base):
    """A user's named generation backend (standard / custom / vertex)."""

    __tablename__ = "user_services"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_user_services_user_name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    name = Column(String, nullable=False)
    service_type = Column(String, nullable=False, default="standard")
    api_key = Column(Text, nullable=False)
    base_url = Column(Text, nullable=False, default="")  # "" = variant default endpoint
    project_id = Column(String, nullable=False, default="")
    location = Column(String, nullable=False, default="")
    model = Column(String, nullable=False, default="")
    # At most one per user; exactly one while the user has any service
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

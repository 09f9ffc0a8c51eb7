from sqlalchemy.orm import Session

from app.core.config import QUALITY_TIERS, settings
from app.models.user_settings import UserSettings


class UserSettingsService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_quality(self, user_id: int) -> str:
        row = self.db.query(UserSettings).filter(UserSettings.user_id == user_id).one_or_none()
        if row is None or row.default_quality not in QUALITY_TIERS:
            return settings.default_quality
        return row.default_quality

    def set_quality(self, user_id: int, quality: str) -> str:
        quality = (quality or "").strip().upper()
        if quality not in QUALITY_TIERS:
            raise ValueError(f"unsupported quality: {quality}")
        row = self.db.query(UserSettings).filter(UserSettings.user_id == user_id).one_or_none()
        if row is None:
            row = UserSettings(user_id=user_id, default_quality=quality)
        else:
            row.default_quality = quality
        self.db.add(row)
        self.db.commit()
        return quality

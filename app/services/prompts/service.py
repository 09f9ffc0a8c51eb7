from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.prompt_history import PromptHistory
from app.models.saved_prompt import SavedPrompt


class PromptService:
    """Saved prompts (/save, /list, /setdefault, /delete) and prompt history (/history)."""

    def __init__(self, db: Session):
        self.db = db

    def save(self, user_id: int, name: str, prompt: str) -> SavedPrompt:
        """Create or overwrite the user's prompt with this name."""
        row = (
            self.db.query(SavedPrompt)
            .filter(SavedPrompt.user_id == user_id, SavedPrompt.name == name)
            .one_or_none()
        )
        if row is None:
            row = SavedPrompt(user_id=user_id, name=name, prompt=prompt)
        else:
            row.prompt = prompt
            row.created_at = datetime.now(timezone.utc)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def list_saved(self, user_id: int) -> list[SavedPrompt]:
        return (
            self.db.query(SavedPrompt)
            .filter(SavedPrompt.user_id == user_id)
            .order_by(SavedPrompt.created_at.desc(), SavedPrompt.id.desc())
            .all()
        )

    def get_saved(self, user_id: int, prompt_id: int) -> SavedPrompt | None:
        return (
            self.db.query(SavedPrompt)
            .filter(SavedPrompt.user_id == user_id, SavedPrompt.id == prompt_id)
            .one_or_none()
        )

    def get_default(self, user_id: int) -> SavedPrompt | None:
        return (
            self.db.query(SavedPrompt)
            .filter(SavedPrompt.user_id == user_id, SavedPrompt.is_default.is_(True))
            .first()
        )

    def set_default(self, user_id: int, prompt_id: int) -> bool:
        """Clear-all-then-set in one transaction. False if the prompt is not the user's."""
        row = self.get_saved(user_id, prompt_id)
        if row is None:
            return False
        self.db.execute(
            update(SavedPrompt)
            .where(SavedPrompt.user_id == user_id, SavedPrompt.is_default.is_(True))
            .values(is_default=False)
        )
        row.is_default = True
        self.db.add(row)
        self.db.commit()
        return True

    def delete(self, user_id: int, prompt_id: int) -> bool:
        deleted = (
            self.db.query(SavedPrompt)
            .filter(SavedPrompt.user_id == user_id, SavedPrompt.id == prompt_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted > 0

    def add_history(self, user_id: int, prompt: str) -> None:
        self.db.add(PromptHistory(user_id=user_id, prompt=prompt))
        self.db.commit()

    def list_history(self, user_id: int, limit: int = 10) -> list[PromptHistory]:
        return (
            self.db.query(PromptHistory)
            .filter(PromptHistory.user_id == user_id)
            .order_by(PromptHistory.used_at.desc(), PromptHistory.id.desc())
            .limit(limit)
            .all()
        )

    def get_history(self, user_id: int, history_id: int) -> PromptHistory | None:
        return (
            self.db.query(PromptHistory)
            .filter(PromptHistory.user_id == user_id, PromptHistory.id == history_id)
            .one_or_none()
        )

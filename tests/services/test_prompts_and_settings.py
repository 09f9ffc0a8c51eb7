"""Saved prompts, prompt history and the per-user quality setting."""
import pytest

from app.models.saved_prompt import SavedPrompt
from app.services.prompts.service import PromptService
from app.services.user_settings.service import UserSettingsService


def test_save_overwrites_same_name(db):
    prompts = PromptService(db)
    first = prompts.save(1, "manga", "translate v1")
    second = prompts.save(1, "manga", "translate v2")
    assert first.id == second.id
    assert [p.prompt for p in prompts.list_saved(1)] == ["translate v2"]


def test_single_default_prompt(db):
    prompts = PromptService(db)
    a = prompts.save(1, "a", "prompt a")
    b = prompts.save(1, "b", "prompt b")
    assert prompts.set_default(1, a.id) is True
    assert prompts.set_default(1, b.id) is True
    defaults = db.query(SavedPrompt).filter(SavedPrompt.user_id == 1, SavedPrompt.is_default.is_(True)).all()
    assert [p.id for p in defaults] == [b.id]
    assert prompts.get_default(1).prompt == "prompt b"


def test_prompts_are_per_user(db):
    prompts = PromptService(db)
    mine = prompts.save(1, "a", "mine")
    assert prompts.set_default(2, mine.id) is False
    assert prompts.delete(2, mine.id) is False
    assert prompts.get_saved(2, mine.id) is None
    assert prompts.delete(1, mine.id) is True
    assert prompts.list_saved(1) == []


def test_history_newest_first_and_limited(db):
    prompts = PromptService(db)
    for i in range(12):
        prompts.add_history(1, f"prompt {i}")
    history = prompts.list_history(1, limit=10)
    assert len(history) == 10
    assert history[0].prompt == "prompt 11"
    assert prompts.get_history(1, history[0].id).prompt == "prompt 11"
    assert prompts.get_history(2, history[0].id) is None


def test_quality_defaults_to_2k(db):
    assert UserSettingsService(db).get_quality(1) == "2K"


def test_quality_set_and_read(db):
    service = UserSettingsService(db)
    assert service.set_quality(1, "4k") == "4K"
    assert service.get_quality(1) == "4K"
    assert service.set_quality(1, "1K") == "1K"
    assert service.get_quality(1) == "1K"


def test_quality_rejects_unknown_tier(db):
    with pytest.raises(ValueError):
        UserSettingsService(db).set_quality(1, "8K")

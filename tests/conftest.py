"""Shared fixtures. Settings are read at import time, so the environment is set first."""
import io
import os

os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-token")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("GEMINI_API_KEY", "")

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.models import backend_service, failed_generation, prompt_history, saved_prompt, user_settings  # noqa: F401


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def make_png(width: int, height: int) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (200, 120, 40)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_factory():
    return make_png


class FakeTelegram:
    """Records outgoing calls; download_file serves bytes from `files` or raises what is stored there."""

    def __init__(self, files: dict | None = None) -> None:
        self.files = files or {}
        self.sent_messages: list[dict] = []
        self.edits: list[dict] = []
        self.deleted: list[tuple[int, int]] = []
        self.photos: list[dict] = []
        self.documents: list[dict] = []

    def download_file(self, file_id: str):
        data = self.files[file_id]
        if isinstance(data, Exception):
            raise data
        return data, "image/png"

    def send_message(self, chat_id, text, reply_to_message_id=None, parse_mode=None, reply_markup=None):
        self.sent_messages.append({"chat_id": chat_id, "text": text, "reply_to_message_id": reply_to_message_id})
        return {"message_id": 900 + len(self.sent_messages)}

    def edit_message(self, chat_id, message_id, text, parse_mode=None):
        self.edits.append({"chat_id": chat_id, "message_id": message_id, "text": text})

    def delete_message(self, chat_id, message_id):
        self.deleted.append((chat_id, message_id))

    def send_photo(self, chat_id, photo, filename="preview.png", caption=None, reply_to_message_id=None):
        self.photos.append({
            "chat_id": chat_id, "content": photo, "filename": filename, "reply_to_message_id": reply_to_message_id,
        })
        return {}

    def send_document(self, chat_id, document, filename, caption=None, reply_to_message_id=None):
        self.documents.append({
            "chat_id": chat_id,
            "content": document,
            "filename": filename,
            "caption": caption,
            "reply_to_message_id": reply_to_message_id,
        })
        return {}


@pytest.fixture
def fake_telegram():
    return FakeTelegram

"""
Telegram client wrapper using httpx sync client.
Provides sync interface for Celery workers (no event loop issues).
"""
import json
import time
import logging

import httpx

from app.core.config import settings
from app.utils.metrics import (
    telegram_requests_total,
    telegram_request_duration_seconds,
)


logger = logging.getLogger(__name__)

_EXTENSION_MIME_TYPES = {
    ".png": "image/png",
    ".webp": "image/webp",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


class TelegramAPIError(Exception):
    """Telegram answered ok=false."""

    def __init__(self, method: str, error_code: int, description: str) -> None:
        super().__init__(f"{error_code}: {description}")
        self.method = method
        self.error_code = error_code
        self.description = description


def guess_mime_type(file_path: str) -> str:
    lower = (file_path or "").lower()
    for ext, mime_type in _EXTENSION_MIME_TYPES.items():
        if lower.endswith(ext):
            return mime_type
    return "image/jpeg"


class TelegramClient:
    """
    Sync Telegram client for Celery workers.
    Uses httpx sync client - no event loop issues.
    """

    def __init__(self, token: str | None = None) -> None:
        self._token = token or settings.telegram_bot_token
        api_base = settings.telegram_api_base.rstrip("/")
        self._base_url = f"{api_base}/bot{self._token}"
        self._file_base_url = f"{api_base}/file/bot{self._token}"
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=settings.http_client_timeout)
        return self._client

    def _record_request(self, method: str, status: str, duration: float) -> None:
        telegram_requests_total.labels(method=method, status=status).inc()
        telegram_request_duration_seconds.labels(method=method).observe(duration)

    def _api_call(self, method: str, data: dict | None = None, files: dict | None = None) -> dict:
        """Make API call to Telegram."""
        url = f"{self._base_url}/{method}"
        start = time.time()
        try:
            if files:
                resp = self.client.post(url, data=data, files=files)
            else:
                resp = self.client.post(url, json=data)
        except httpx.HTTPError:
            self._record_request(method, "error", time.time() - start)
            raise
        try:
            result = resp.json()
        except ValueError:
            # Gateways answer 502/504 with an HTML page
            self._record_request(method, "error", time.time() - start)
            logger.warning(
                "telegram_api_bad_response",
                extra={"method": method, "status_code": resp.status_code},
            )
            raise TelegramAPIError(method, resp.status_code, "response is not JSON")
        if not result.get("ok"):
            self._record_request(method, "error", time.time() - start)
            error_desc = result.get("description", "Unknown error")
            error_code = result.get("error_code", 0)
            logger.warning(
                "telegram_api_error",
                extra={"method": method, "status_code": error_code, "error": error_desc},
            )
            raise TelegramAPIError(method, error_code, error_desc)
        self._record_request(method, "success", time.time() - start)
        return result

    def send_message(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: int | None = None,
        parse_mode: str | None = None,
        reply_markup: dict | None = None,
    ) -> dict:
        """Send text message to chat. Returns the sent Message object."""
        data: dict = {"chat_id": int(chat_id), "text": text}
        if reply_to_message_id:
            data["reply_parameters"] = {
                "message_id": int(reply_to_message_id),
                "allow_sending_without_reply": True,
            }
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup
        return self._api_call("sendMessage", data)["result"]

    def edit_message(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        parse_mode: str | None = None,
    ) -> None:
        """Edit message text (progress updates). Failures are logged, not raised."""
        data: dict = {
            "chat_id": int(chat_id),
            "message_id": int(message_id),
            "text": text,
        }
        if parse_mode:
            data["parse_mode"] = parse_mode
        try:
            self._api_call("editMessageText", data)
        except (TelegramAPIError, httpx.HTTPError) as e:
            logger.warning(
                "telegram_edit_failed",
                extra={"error": str(e), "chat_id": chat_id, "message_id": message_id},
            )

    def delete_message(self, chat_id: int, message_id: int) -> None:
        """Delete message (e.g. status message after sending result)."""
        try:
            self._api_call("deleteMessage", {"chat_id": int(chat_id), "message_id": int(message_id)})
        except (TelegramAPIError, httpx.HTTPError) as e:
            logger.warning("telegram_delete_failed", extra={"error": str(e), "chat_id": chat_id})

    def get_file(self, file_id: str) -> dict:
        """getFile: returns the File object (file_path, file_size)."""
        return self._api_call("getFile", {"file_id": file_id})["result"]

    def download_file(self, file_id: str) -> tuple[bytes, str]:
        """Download a file by file_id. Returns (bytes, mime type guessed from the file path)."""
        file_path = self.get_file(file_id).get("file_path")
        if not file_path:
            raise TelegramAPIError("getFile", 0, "file has no file_path")
        start = time.time()
        try:
            resp = self.client.get(f"{self._file_base_url}/{file_path}")
            resp.raise_for_status()
        except httpx.HTTPError:
            self._record_request("downloadFile", "error", time.time() - start)
            raise
        self._record_request("downloadFile", "success", time.time() - start)
        return resp.content, guess_mime_type(file_path)

    def _send_bytes(
        self,
        method: str,
        field: str,
        chat_id: int,
        content: bytes,
        filename: str,
        mime_type: str,
        caption: str | None,
        reply_to_message_id: int | None,
    ) -> dict:
        data: dict = {"chat_id": str(int(chat_id))}
        if caption:
            data["caption"] = caption
        if reply_to_message_id:
            # In multipart/form-data nested objects are passed as JSON strings
            data["reply_parameters"] = json.dumps({
                "message_id": int(reply_to_message_id),
                "allow_sending_without_reply": True,
            })
        files = {field: (filename, content, mime_type)}
        return self._api_call(method, data=data, files=files)["result"]

    def send_photo(
        self,
        chat_id: int,
        photo: bytes,
        filename: str = "preview.png",
        caption: str | None = None,
        reply_to_message_id: int | None = None,
    ) -> dict:
        """Send photo (Telegram recompresses it: quick preview)."""
        return self._send_bytes(
            "sendPhoto", "photo", chat_id, photo, filename, "image/png", caption, reply_to_message_id,
        )

    def send_document(
        self,
        chat_id: int,
        document: bytes,
        filename: str,
        caption: str | None = None,
        reply_to_message_id: int | None = None,
    ) -> dict:
        """Send document to chat (original file, no compression)."""
        return self._send_bytes(
            "sendDocument", "document", chat_id, document, filename,
            guess_mime_type(filename) if "." in filename else "application/octet-stream",
            caption, reply_to_message_id,
        )

    def close(self) -> None:
        """Close httpx client."""
        if self._client is not None:
            try:
                self._client.close()
            finally:
                self._client = None

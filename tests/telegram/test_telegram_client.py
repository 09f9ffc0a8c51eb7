"""Sync Telegram client used by the workers (httpx mocked)."""
import json
from unittest.mock import MagicMock

import httpx
import pytest

from app.services.exceptions import DownloadFailure
from app.services.telegram.client import TelegramAPIError, TelegramClient, guess_mime_type
from app.services.telegram.files import download_images


def _json_response(payload: dict) -> MagicMock:
    resp = MagicMock()
    resp.json.return_value = payload
    return resp


def _client_with(http: MagicMock) -> TelegramClient:
    client = TelegramClient(token="TOKEN")
    client._client = http
    return client


def test_send_message_replies_with_parameters():
    http = MagicMock()
    http.post.return_value = _json_response({"ok": True, "result": {"message_id": 77}})
    result = _client_with(http).send_message(5, "hi", reply_to_message_id=9, parse_mode="HTML")

    assert result == {"message_id": 77}
    url = http.post.call_args.args[0]
    body = http.post.call_args.kwargs["json"]
    assert url.endswith("/botTOKEN/sendMessage")
    assert body["reply_parameters"] == {"message_id": 9, "allow_sending_without_reply": True}
    assert body["parse_mode"] == "HTML"


def test_api_error_raises():
    http = MagicMock()
    http.post.return_value = _json_response({"ok": False, "error_code": 400, "description": "chat not found"})
    with pytest.raises(TelegramAPIError) as exc:
        _client_with(http).send_message(5, "hi")
    assert exc.value.error_code == 400
    assert exc.value.method == "sendMessage"


def test_edit_and_delete_failures_are_swallowed():
    http = MagicMock()
    http.post.return_value = _json_response({"ok": False, "error_code": 400, "description": "message is not modified"})
    client = _client_with(http)
    client.edit_message(1, 2, "same text")
    client.delete_message(1, 2)
    assert http.post.call_count == 2


def test_send_document_multipart_with_reply():
    http = MagicMock()
    http.post.return_value = _json_response({"ok": True, "result": {}})
    _client_with(http).send_document(5, b"PNG", "generated_2K.png", caption="cap", reply_to_message_id=3)

    kwargs = http.post.call_args.kwargs
    assert kwargs["files"] == {"document": ("generated_2K.png", b"PNG", "image/png")}
    assert kwargs["data"]["caption"] == "cap"
    assert json.loads(kwargs["data"]["reply_parameters"])["message_id"] == 3


def test_download_file_guesses_mime_from_path():
    http = MagicMock()
    http.post.return_value = _json_response({"ok": True, "result": {"file_path": "photos/file_1.webp"}})
    file_resp = MagicMock()
    file_resp.content = b"WEBP"
    http.get.return_value = file_resp

    data, mime_type = _client_with(http).download_file("fid")

    assert (data, mime_type) == (b"WEBP", "image/webp")
    assert http.get.call_args.args[0].endswith("/file/botTOKEN/photos/file_1.webp")


@pytest.mark.parametrize("path,expected", [
    ("a.PNG", "image/png"),
    ("a.jpg", "image/jpeg"),
    ("stickers/a.webp", "image/webp"),
    ("noext", "image/jpeg"),
])
def test_guess_mime_type(path, expected):
    assert guess_mime_type(path) == expected


def test_download_images_reports_position():
    telegram = MagicMock()
    telegram.download_file.side_effect = [(b"1", "image/png"), httpx.ConnectError("reset")]
    progress = []

    with pytest.raises(DownloadFailure) as exc:
        download_images(telegram, ["a", "b", "c"], on_progress=lambda p, t: progress.append((p, t)))

    assert exc.value.position == 2
    assert progress == [(1, 3), (2, 3)]


def test_non_json_answer_raises_api_error_with_http_status():
    client = TelegramClient(token="TOKEN")
    client._client = httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(502, text="<html>Bad Gateway</html>"))
    )
    with pytest.raises(TelegramAPIError) as exc:
        client.get_file("f1")
    assert exc.value.error_code == 502
    assert exc.value.method == "getFile"

"""Which Telegram file ids a message contributes as input images."""
from aiogram.types import Message


def largest_photo_id(message: Message) -> str | None:
    """Telegram sends every size of a photo; the last one is the largest."""
    if not message.photo:
        return None
    return message.photo[-1].file_id


def sticker_file_id(message: Message) -> str | None:
    # PNG thumbnail when there is one; animated/video stickers are not images
    sticker = message.sticker
    if sticker is None:
        return None
    if sticker.thumbnail is not None:
        return sticker.thumbnail.file_id
    return sticker.file_id


def image_document_id(message: Message) -> str | None:
    document = message.document
    if document is None:
        return None
    if not (document.mime_type or "").startswith("image/"):
        return None
    return document.file_id


def replied_non_photo_ids(reply: Message) -> list[str]:
    """Sticker and image-document inputs of a replied message (photos are handled separately)."""
    ids: list[str] = []
    for file_id in (sticker_file_id(reply), image_document_id(reply)):
        if file_id:
            ids.append(file_id)
    return ids


def is_group_chat(message: Message) -> bool:
    return message.chat.type in ("group", "supergroup")


def strip_group_prefix(text: str) -> str | None:
    """Group chats only react to text starting with '.'; None means ignore the message."""
    if not text.startswith("."):
        return None
    return text[1:].strip()

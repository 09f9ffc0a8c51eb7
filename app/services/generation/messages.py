"""Status message texts for a live generation (HTML parse mode)."""
import html

from app.utils.text import error_blockquote


def _code(value: object) -> str:
    return f"<code>{html.escape(str(value))}</code>"


def quality_display(quality: str, explicit: bool) -> str:
    return quality if explicit else f"{quality} (default)"


def processing_text(service_name: str, ratio: str, quality: str, image_count: int) -> str:
    return (
        "⏳ <b>Processing...</b>\n\n"
        f"🔌 Service: {_code(service_name)}\n"
        f"📏 Ratio: {_code(ratio)}\n"
        f"🎨 Quality: {_code(quality)}\n"
        f"📸 Images: {image_count}"
    )


def downloading_text(ratio: str, quality: str, position: int, total: int) -> str:
    return (
        "⏳ <b>Processing...</b>\n\n"
        f"📏 Ratio: {_code(ratio)}\n"
        f"🎨 Quality: {_code(quality)}\n"
        f"📸 Downloading image {position}/{total}..."
    )


def generating_text(
    service_name: str,
    ratio: str,
    quality: str,
    image_count: int,
    attempt: int | None = None,
    max_attempts: int | None = None,
    tier: str | None = None,
) -> str:
    header = "⏳ <b>Generating image...</b>"
    if attempt is not None:
        header += f" (attempt {attempt}/{max_attempts}, quality {html.escape(tier or '')})"
    return (
        f"{header}\n\n"
        f"🔌 Service: {_code(service_name)}\n"
        f"📏 Ratio: {_code(ratio)}\n"
        f"🎨 Quality: {_code(quality)}\n"
        f"📸 Images: {image_count}"
    )


def download_failed_text(position: int, error: str) -> str:
    return f"❌ <b>Processing failed</b>\n\nCould not download image {position}\n\n{error_blockquote(error)}"


def invalid_service_text(error: str) -> str:
    return (
        "❌ <b>Service configuration error</b>\n\n"
        f"{error_blockquote(error)}\n\n"
        "Fix it with /service add or switch with /service use."
    )


def queued_text(max_attempts: int, retry_interval_minutes: int, error: str) -> str:
    return (
        f"❌ <b>Processing failed</b> (retried {max_attempts} times)\n"
        f"Added to the retry queue: every {retry_interval_minutes} minutes one queued request is picked at random and tried again.\n\n"
        f"{error_blockquote(error)}"
    )


def failed_text(error: str) -> str:
    return f"❌ <b>Processing failed</b>\n\n{error_blockquote(error)}"

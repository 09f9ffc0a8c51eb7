"""Text helpers for user-facing status messages."""
import html

MAX_ERROR_LENGTH = 200
TRUNCATED_MARKER = "...\n(error message truncated)"


def truncate_error(message: str, max_len: int = MAX_ERROR_LENGTH) -> str:
    """Cut long provider errors to max_len characters and mark the cut."""
    if len(message) > max_len:
        return message[:max_len] + TRUNCATED_MARKER
    return message


def error_blockquote(message: str) -> str:
    """HTML expandable blockquote with the (truncated, escaped) error."""
    return f"<blockquote expandable>{html.escape(truncate_error(message))}</blockquote>"

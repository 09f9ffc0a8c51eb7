"""Domain errors raised by the generation pipeline (not provider failures, see image_generation.base)."""


class NoServiceConfigured(Exception):
    """User has no stored service and GEMINI_API_KEY is not set."""

    def __init__(self, user_id: int | None = None) -> None:
        super().__init__("No generation service configured, add one with /service add")
        self.user_id = user_id


class InvalidBackendConfig(ValueError):
    """Service config cannot produce a valid endpoint (empty api key, vertex without project/location)."""


class DownloadFailure(Exception):
    """An input image could not be fetched from Telegram. position is 1-based."""

    def __init__(self, position: int, cause: Exception | str) -> None:
        super().__init__(f"Failed to download image {position}: {cause}")
        self.position = position
        self.cause = cause


class ServiceNotFound(LookupError):
    """No service with that id belongs to the user."""

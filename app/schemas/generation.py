from enum import Enum

from pydantic import BaseModel, Field, field_validator


class ServiceVariant(str, Enum):
    STANDARD = "standard"
    CUSTOM = "custom"
    VERTEX = "vertex"


_VARIANT_ALIASES = {
    "": ServiceVariant.STANDARD,
    "gemini": ServiceVariant.STANDARD,
    "standard": ServiceVariant.STANDARD,
    "origin": ServiceVariant.STANDARD,
    "original": ServiceVariant.STANDARD,
    "custom": ServiceVariant.CUSTOM,
    "vertex": ServiceVariant.VERTEX,
    "gcp": ServiceVariant.VERTEX,
}


def normalize_variant(value: str | ServiceVariant | None) -> ServiceVariant:
    """Map user-facing aliases to a variant; unknown names fall back to standard."""
    if isinstance(value, ServiceVariant):
        return value
    return _VARIANT_ALIASES.get((value or "").strip().lower(), ServiceVariant.STANDARD)


class ServiceConfig(BaseModel):
    """Snapshot of a backend service, carried by in-flight requests and queued tasks."""

    type: ServiceVariant = ServiceVariant.STANDARD
    name: str = ""
    api_key: str = ""
    base_url: str = ""
    project_id: str = ""
    location: str = ""
    model: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v):
        return normalize_variant(v)

    @field_validator("name", "api_key", "base_url", "project_id", "location", "model", mode="before")
    @classmethod
    def _strip(cls, v):
        return (v or "").strip()


class FailedGenerationPayload(BaseModel):
    """Everything needed to replay a request. aspect_ratio is the user's explicit ratio ("" = derive)."""

    prompt: str
    quality: str = "2K"
    aspect_ratio: str = ""
    image_file_ids: list[str] = Field(default_factory=list)
    service: ServiceConfig = Field(default_factory=ServiceConfig)


class GenerationJob(BaseModel):
    """Live request handed from the bot to the generation worker."""

    user_id: int
    chat_id: int
    message_id: int  # user's message; results reply to it
    status_message_id: int
    prompt: str
    quality: str = "2K"
    quality_explicit: bool = False
    requested_ratio: str = ""  # explicit @ratio, "" = derive from first image
    image_file_ids: list[str] = Field(default_factory=list)
    service: ServiceConfig
    service_name: str = ""

    def to_failed_payload(self) -> FailedGenerationPayload:
        return FailedGenerationPayload(
            prompt=self.prompt,
            quality=self.quality,
            aspect_ratio=self.requested_ratio,
            image_file_ids=list(self.image_file_ids),
            service=self.service,
        )

"""
Which backend a user's request runs on:
stored default service -> GEMINI_API_KEY fallback -> NoServiceConfigured.
"""
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.backend_service import BackendService
from app.schemas.generation import ServiceConfig, ServiceVariant
from app.services.backends.service import BackendRegistryService
from app.services.exceptions import NoServiceConfigured

ENV_SERVICE_NAME = "env-default"


def to_service_config(service: BackendService) -> ServiceConfig:
    return ServiceConfig(
        type=service.service_type,
        name=service.name,
        api_key=service.api_key,
        base_url=service.base_url,
        project_id=service.project_id,
        location=service.location,
        model=service.model,
    )


def env_service_config() -> ServiceConfig | None:
    if not settings.gemini_api_key.strip():
        return None
    return ServiceConfig(
        type=ServiceVariant.STANDARD,
        name=ENV_SERVICE_NAME,
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_base_url,
    )


def resolve_service_config(db: Session, user_id: int) -> tuple[ServiceConfig, str]:
    """Return (service snapshot, display name). Read-only."""
    stored = BackendRegistryService(db).get_default(user_id)
    if stored is not None:
        return to_service_config(stored), f"{stored.name} (#{stored.id})"

    fallback = env_service_config()
    if fallback is not None:
        return fallback, ENV_SERVICE_NAME

    raise NoServiceConfigured(user_id)


def mask_secret(secret: str) -> str:
    trimmed = (secret or "").strip()
    if not trimmed:
        return "(empty)"
    if len(trimmed) <= 8:
        return "****"
    return f"{trimmed[:4]}...{trimmed[-4:]}"

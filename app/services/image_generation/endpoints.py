"""
generateContent endpoint construction for each service variant.
Pure functions: no I/O, same ServiceConfig in -> same URL out.
"""
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from app.schemas.generation import ServiceConfig, ServiceVariant, normalize_variant
from app.services.exceptions import InvalidBackendConfig

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_VERTEX_BASE_URL = "https://aiplatform.googleapis.com"
DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"


def default_base_url(variant: ServiceVariant | str) -> str:
    if normalize_variant(variant) == ServiceVariant.VERTEX:
        return DEFAULT_VERTEX_BASE_URL
    return DEFAULT_GEMINI_BASE_URL


def effective_model(service: ServiceConfig, fallback: str | None = None) -> str:
    return (service.model or "").strip() or (fallback or "").strip() or DEFAULT_IMAGE_MODEL


def _append_api_key(raw_url: str, api_key: str) -> str:
    parts = urlsplit(raw_url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "key"]
    query.append(("key", api_key))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def build_generate_url(service: ServiceConfig, model: str | None = None) -> str:
    """
    Build the generateContent URL (api key as ?key=) for a service.

    Raises InvalidBackendConfig when the api key is empty, or for vertex
    when project_id or location is missing.
    """
    api_key = (service.api_key or "").strip()
    if not api_key:
        raise InvalidBackendConfig("service api key is empty")

    variant = normalize_variant(service.type)
    model = effective_model(service, model)
    base_url = (service.base_url or "").strip()

    if variant == ServiceVariant.VERTEX:
        project_id = (service.project_id or "").strip()
        location = (service.location or "").strip()
        if not project_id or not location:
            raise InvalidBackendConfig("vertex service requires project_id and location")

    # A full generateContent endpoint is used as-is
    if ":generateContent" in base_url:
        return _append_api_key(base_url, api_key)

    base_url = (base_url or default_base_url(variant)).rstrip("/")

    if variant == ServiceVariant.VERTEX:
        endpoint = (
            f"{base_url}/v1/projects/{quote(project_id, safe='')}"
            f"/locations/{quote(location, safe='')}"
            f"/publishers/google/models/{quote(model, safe='')}:generateContent"
        )
        return _append_api_key(endpoint, api_key)

    endpoint = f"{base_url}/v1beta/models/{quote(model, safe='')}:generateContent"
    return _append_api_key(endpoint, api_key)


def redact_url(url: str) -> str:
    """URL with the key query parameter masked, for logs."""
    parts = urlsplit(url)
    query = [(k, "***" if k == "key" else v) for k, v in parse_qsl(parts.query, keep_blank_values=True)]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))

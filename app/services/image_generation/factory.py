"""
Factory for creating image generation providers from a resolved service.
"""
import logging

from app.schemas.generation import ServiceConfig, ServiceVariant
from app.services.image_generation.base import ImageGenerationProvider
from app.services.image_generation.providers.gemini import GeminiProvider
from app.services.image_generation.providers.vertex import VertexProvider

logger = logging.getLogger(__name__)


class ImageProviderFactory:
    """Factory for creating image generation providers."""

    # Standard and custom differ only in base URL
    PROVIDERS: dict[ServiceVariant, type[GeminiProvider]] = {
        ServiceVariant.STANDARD: GeminiProvider,
        ServiceVariant.CUSTOM: GeminiProvider,
        ServiceVariant.VERTEX: VertexProvider,
    }

    @classmethod
    def create(cls, service: ServiceConfig, timeout: float | None = None) -> ImageGenerationProvider:
        """
        Create provider instance for a service snapshot.

        Args:
            service: resolved service (stored, env fallback or queued snapshot)
            timeout: per-call HTTP timeout; None = settings.gemini_timeout

        Raises:
            InvalidBackendConfig: if the service cannot produce an endpoint
        """
        provider_class = cls.PROVIDERS[service.type]
        provider = provider_class(service, timeout)
        logger.info(
            "image_provider_created",
            extra={"service": service.name or provider.name, "service_type": service.type.value},
        )
        return provider

"""
Vertex AI provider: same generateContent protocol as Gemini, addressed through
/v1/projects/{project}/locations/{location}/publishers/google/models/{model}.
"""
from app.schemas.generation import ServiceConfig, ServiceVariant
from app.services.image_generation.providers.gemini import GeminiProvider


class VertexProvider(GeminiProvider):
    """Gemini image models served from Vertex AI with an api key."""

    name = "vertex"

    def __init__(self, service: ServiceConfig, timeout: float | None = None) -> None:
        if service.type != ServiceVariant.VERTEX:
            service = service.model_copy(update={"type": ServiceVariant.VERTEX})
        super().__init__(service, timeout)

    @property
    def project_id(self) -> str:
        return self.service.project_id

    @property
    def location(self) -> str:
        return self.service.location

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.backend_service import BackendService
from app.schemas.generation import normalize_variant
from app.services.exceptions import ServiceNotFound

logger = logging.getLogger(__name__)


class DuplicateServiceName(ValueError):
    pass


class BackendRegistryService:
    """
    Per-user generation backends.

    Each public mutation is one transaction and leaves the user with at most
    one default service, and exactly one while any service exists.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_services(self, user_id: int) -> list[BackendService]:
        return (
            self.db.query(BackendService)
            .filter(BackendService.user_id == user_id)
            .order_by(BackendService.id.asc())
            .all()
        )

    def get(self, user_id: int, service_id: int) -> BackendService | None:
        return (
            self.db.query(BackendService)
            .filter(BackendService.user_id == user_id, BackendService.id == service_id)
            .one_or_none()
        )

    def get_default(self, user_id: int) -> BackendService | None:
        return (
            self.db.query(BackendService)
            .filter(BackendService.user_id == user_id, BackendService.is_default.is_(True))
            .order_by(BackendService.id.desc())
            .first()
        )

    def _clear_defaults(self, user_id: int) -> None:
        self.db.execute(
            update(BackendService)
            .where(BackendService.user_id == user_id, BackendService.is_default.is_(True))
            .values(is_default=False)
        )

    def add(
        self,
        user_id: int,
        service_type: str,
        name: str,
        api_key: str,
        base_url: str = "",
        project_id: str = "",
        location: str = "",
        model: str = "",
        make_default: bool = True,
    ) -> BackendService:
        """Store a service. The first service is always made default."""
        has_any = self.db.query(BackendService.id).filter(BackendService.user_id == user_id).first() is not None
        is_default = make_default or not has_any
        try:
            if is_default:
                self._clear_defaults(user_id)
            service = BackendService(
                user_id=user_id,
                name=name.strip(),
                service_type=normalize_variant(service_type).value,
                api_key=api_key.strip(),
                base_url=(base_url or "").strip(),
                project_id=(project_id or "").strip(),
                location=(location or "").strip(),
                model=(model or "").strip(),
                is_default=is_default,
            )
            self.db.add(service)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateServiceName(f"service name '{name}' already exists") from e
        self.db.refresh(service)
        logger.info(
            "backend_service_added",
            extra={"user_id": user_id, "service": service.name, "service_type": service.service_type},
        )
        return service

    def set_default(self, user_id: int, service_id: int) -> BackendService:
        service = self.get(user_id, service_id)
        if service is None:
            raise ServiceNotFound(service_id)
        self._clear_defaults(user_id)
        service.is_default = True
        self.db.add(service)
        self.db.commit()
        self.db.refresh(service)
        return service

    def delete(self, user_id: int, service_id: int) -> None:
        """Delete a service; if it was the default, the newest remaining one becomes default."""
        service = self.get(user_id, service_id)
        if service is None:
            raise ServiceNotFound(service_id)
        was_default = bool(service.is_default)
        self.db.delete(service)
        self.db.flush()
        if was_default:
            successor = (
                self.db.query(BackendService)
                .filter(BackendService.user_id == user_id)
                .order_by(BackendService.created_at.desc(), BackendService.id.desc())
                .first()
            )
            if successor is not None:
                successor.is_default = True
                self.db.add(successor)
        self.db.commit()
        logger.info("backend_service_deleted", extra={"user_id": user_id, "service": str(service_id)})

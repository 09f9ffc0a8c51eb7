"""Per-user service registry: default invariant and resolution order."""
import random
from unittest.mock import patch

import pytest

from app.models.backend_service import BackendService
from app.schemas.generation import ServiceVariant
from app.services.backends.resolver import ENV_SERVICE_NAME, mask_secret, resolve_service_config
from app.services.backends.service import BackendRegistryService, DuplicateServiceName
from app.services.exceptions import NoServiceConfigured, ServiceNotFound


def _defaults(db, user_id):
    return db.query(BackendService).filter(
        BackendService.user_id == user_id, BackendService.is_default.is_(True)
    ).count()


def _total(db, user_id):
    return db.query(BackendService).filter(BackendService.user_id == user_id).count()


def test_first_service_is_default(db):
    svc = BackendRegistryService(db).add(1, "gemini", "main", "key-1", make_default=False)
    assert svc.is_default is True
    assert svc.service_type == ServiceVariant.STANDARD.value


def test_new_service_takes_default(db):
    registry = BackendRegistryService(db)
    first = registry.add(1, "standard", "a", "k1")
    second = registry.add(1, "custom", "b", "k2", base_url="https://gw.example.com")
    db.refresh(first)
    assert first.is_default is False
    assert second.is_default is True
    assert _defaults(db, 1) == 1


def test_duplicate_name_rejected(db):
    registry = BackendRegistryService(db)
    registry.add(1, "standard", "a", "k1")
    with pytest.raises(DuplicateServiceName):
        registry.add(1, "standard", "a", "k2")
    assert _total(db, 1) == 1
    assert _defaults(db, 1) == 1


def test_same_name_for_different_users(db):
    registry = BackendRegistryService(db)
    registry.add(1, "standard", "a", "k1")
    registry.add(2, "standard", "a", "k2")
    assert _defaults(db, 1) == 1
    assert _defaults(db, 2) == 1


def test_delete_default_promotes_newest(db):
    registry = BackendRegistryService(db)
    a = registry.add(1, "standard", "a", "k1")
    b = registry.add(1, "standard", "b", "k2")
    c = registry.add(1, "standard", "c", "k3")
    registry.set_default(1, a.id)
    registry.delete(1, a.id)
    assert registry.get_default(1).id == c.id
    assert registry.get(1, b.id).is_default is False


def test_unknown_ids(db):
    registry = BackendRegistryService(db)
    registry.add(1, "standard", "a", "k1")
    with pytest.raises(ServiceNotFound):
        registry.set_default(1, 999)
    with pytest.raises(ServiceNotFound):
        registry.delete(2, 1)


def test_random_sequences_keep_one_default(db):
    rng = random.Random(20240611)
    registry = BackendRegistryService(db)
    users = [10, 20, 30]
    for step in range(300):
        user_id = rng.choice(users)
        existing = registry.list_services(user_id)
        op = rng.random()
        if op < 0.45 or not existing:
            registry.add(
                user_id,
                rng.choice(["standard", "custom", "vertex"]),
                f"svc-{step}",
                f"key-{step}",
                make_default=rng.random() < 0.5,
            )
        elif op < 0.75:
            registry.set_default(user_id, rng.choice(existing).id)
        else:
            registry.delete(user_id, rng.choice(existing).id)

        for uid in users:
            expected = 1 if _total(db, uid) > 0 else 0
            assert _defaults(db, uid) == expected, f"user {uid} after step {step}"


def test_resolve_stored_default(db):
    registry = BackendRegistryService(db)
    registry.add(7, "standard", "old", "k-old")
    chosen = registry.add(7, "vertex", "gcp-main", "k-new", project_id="p", location="us-central1")
    service, display = resolve_service_config(db, 7)
    assert display == f"gcp-main (#{chosen.id})"
    assert service.type == ServiceVariant.VERTEX
    assert service.api_key == "k-new"
    assert service.project_id == "p"


def test_resolve_env_fallback(db):
    with patch("app.services.backends.resolver.settings") as mock_settings:
        mock_settings.gemini_api_key = "env-key"
        mock_settings.gemini_base_url = ""
        service, display = resolve_service_config(db, 42)
    assert display == ENV_SERVICE_NAME
    assert service.name == ENV_SERVICE_NAME
    assert service.type == ServiceVariant.STANDARD
    assert service.api_key == "env-key"


def test_resolve_nothing_configured(db):
    with patch("app.services.backends.resolver.settings") as mock_settings:
        mock_settings.gemini_api_key = "   "
        with pytest.raises(NoServiceConfigured):
            resolve_service_config(db, 42)


def test_resolve_is_read_only(db):
    BackendRegistryService(db).add(7, "standard", "a", "k")
    before = [(s.id, s.is_default) for s in BackendRegistryService(db).list_services(7)]
    resolve_service_config(db, 7)
    resolve_service_config(db, 7)
    after = [(s.id, s.is_default) for s in BackendRegistryService(db).list_services(7)]
    assert before == after


@pytest.mark.parametrize(
    "secret,expected",
    [("", "(empty)"), ("short", "****"), ("12345678", "****"), ("abcd1234wxyz", "abcd...wxyz")],
)
def test_mask_secret(secret, expected):
    assert mask_secret(secret) == expected

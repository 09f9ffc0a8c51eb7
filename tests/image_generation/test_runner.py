"""Attempt driver: fixed budget, fixed delay, same request every try."""
import unittest
from unittest.mock import patch

from app.schemas.generation import ServiceConfig
from app.services.exceptions import InvalidBackendConfig
from app.services.image_generation.base import (
    ImageGenerationError,
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
)
from app.services.image_generation.runner import generate_with_retry


class FakeProvider(ImageGenerationProvider):
    name = "fake"

    def __init__(self, outcomes):
        super().__init__(ServiceConfig(api_key="k"), timeout=1.0)
        self.outcomes = list(outcomes)
        self.requests = []

    @property
    def model_name(self) -> str:
        return "fake-model"

    def generate(self, request):
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _ok() -> ImageGenerationResponse:
    return ImageGenerationResponse(image_content=b"png", model="fake-model", provider="fake")


@patch("app.services.image_generation.runner.time.sleep")
class TestGenerateWithRetry(unittest.TestCase):
    def setUp(self):
        self.request = ImageGenerationRequest(prompt="translate", quality="4K", aspect_ratio="16:9")

    def test_first_try_success_no_sleep(self, sleep):
        provider = FakeProvider([_ok()])
        result = generate_with_retry(provider, self.request, max_attempts=6, delay_seconds=2.0)
        self.assertEqual(result.image_content, b"png")
        self.assertEqual(len(provider.requests), 1)
        sleep.assert_not_called()

    def test_success_on_third_try(self, sleep):
        provider = FakeProvider([ImageGenerationError("a"), ImageGenerationError("b"), _ok()])
        result = generate_with_retry(provider, self.request, max_attempts=6, delay_seconds=2.0)
        self.assertEqual(result.provider, "fake")
        self.assertEqual(len(provider.requests), 3)
        self.assertEqual(sleep.call_count, 2)
        sleep.assert_called_with(2.0)

    def test_exhaustion_reraises_last_error(self, sleep):
        errors = [ImageGenerationError(f"e{i}", detail={"http_status": 503}) for i in range(6)]
        provider = FakeProvider(errors)
        with self.assertRaises(ImageGenerationError) as ctx:
            generate_with_retry(provider, self.request, max_attempts=6, delay_seconds=2.0)
        self.assertIs(ctx.exception, errors[-1])
        self.assertEqual(len(provider.requests), 6)
        # no sleep after the last try
        self.assertEqual(sleep.call_count, 5)

    def test_same_request_every_attempt(self, sleep):
        provider = FakeProvider([ImageGenerationError("x")] * 5 + [_ok()])
        generate_with_retry(provider, self.request, max_attempts=6, delay_seconds=2.0)
        self.assertEqual({(r.quality, r.aspect_ratio) for r in provider.requests}, {("4K", "16:9")})
        self.assertTrue(all(r is self.request for r in provider.requests))

    def test_blocked_prompt_still_uses_full_budget(self, sleep):
        errors = [
            ImageGenerationError("prompt blocked: SAFETY", detail={"block_reason": "SAFETY"})
            for _ in range(6)
        ]
        provider = FakeProvider(errors)
        with self.assertRaises(ImageGenerationError) as ctx:
            generate_with_retry(provider, self.request, max_attempts=6, delay_seconds=2.0)
        self.assertEqual(len(provider.requests), 6)
        self.assertEqual(ctx.exception.detail["failure_type"], "prompt_blocked")

    def test_on_attempt_called_before_each_try(self, sleep):
        provider = FakeProvider([ImageGenerationError("x"), _ok()])
        calls = []
        generate_with_retry(
            provider,
            self.request,
            max_attempts=6,
            delay_seconds=2.0,
            on_attempt=lambda attempt, total: calls.append((attempt, total)),
        )
        self.assertEqual(calls, [(1, 6), (2, 6)])

    def test_defaults_from_settings(self, sleep):
        provider = FakeProvider([ImageGenerationError("x")] * 6)
        with self.assertRaises(ImageGenerationError):
            generate_with_retry(provider, self.request)
        self.assertEqual(len(provider.requests), 6)
        sleep.assert_called_with(2.0)

    def test_config_error_not_retried(self, sleep):
        provider = FakeProvider([InvalidBackendConfig("service api key is empty"), _ok()])
        with self.assertRaises(InvalidBackendConfig):
            generate_with_retry(provider, self.request, max_attempts=6, delay_seconds=2.0)
        self.assertEqual(len(provider.requests), 1)
        sleep.assert_not_called()

import unittest
from datetime import date
from unittest import mock

from domain.ai_provider import AIProviderName, ProviderError, QuoteLinesProvider
from domain.ai_status import AIResultStatus
from domain.models import LineType, make_line
from domain.price_memory import InMemoryPriceMemoryStore, PriceBookItemType
from domain.quote_service import (
    INVALID_INPUT_MESSAGE,
    NO_PROVIDER_MESSAGE,
    QUOTA_EXCEEDED_MESSAGE,
    RATE_LIMITED_MESSAGE,
    QuoteLinesService,
)
from domain.rate_limit import RateLimiter
from domain.safe_ai import MANUAL_MODE_MESSAGE
from domain.usage_quota import UsageTracker


class FakeProvider(QuoteLinesProvider):
    def __init__(self, provider_name, lines=None, error=None):
        self._name = provider_name
        self._lines = lines
        self._error = error
        self.calls = []

    @property
    def name(self):
        return self._name

    def generate_lines(self, description, vehicle_make=None, vehicle_model=None):
        self.calls.append((description, vehicle_make, vehicle_model))
        if self._error is not None:
            raise self._error
        return list(self._lines or [])


def oil_change_lines():
    return [
        make_line(LineType.MAIN_OEUVRE, "Vidange moteur", 0.5, 60),
        make_line(LineType.MAIN_OEUVRE, "Remplacement filtre", 0.25, 60),
    ]


def service_with(*providers, **kwargs):
    kwargs.setdefault("max_retries", 0)
    return QuoteLinesService({p.name: p for p in providers}, **kwargs)


class GenerationTestCase(unittest.TestCase):
    def test_lines_are_generated_and_post_processed(self) -> None:
        mistral = FakeProvider(AIProviderName.MISTRAL, oil_change_lines())
        service = service_with(mistral)

        result = service.generate("g1", "  vidange complète  ", " Renault ", "")

        self.assertEqual(result.status, AIResultStatus.OK)
        self.assertEqual(result.provider, AIProviderName.MISTRAL)
        self.assertEqual([l.description for l in result.lines], ["Vidange moteur + remplacement filtre"])
        self.assertEqual(mistral.calls, [("vidange complète", "Renault", None)])
        self.assertEqual(service.usage.usage("g1"), 1)

        payload = result.to_dict()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["provider"], "mistral")
        self.assertEqual(payload["post_process"]["status"], "processed")
        self.assertNotIn("fallback", payload)

    def test_next_provider_is_tried(self) -> None:
        mistral = FakeProvider(AIProviderName.MISTRAL, error=ProviderError("HTTP 500"))
        gemini = FakeProvider(AIProviderName.GEMINI, oil_change_lines())

        result = service_with(mistral, gemini).generate("g1", "vidange")

        self.assertEqual(result.provider, AIProviderName.GEMINI)
        self.assertEqual(len(mistral.calls), 1)

    def test_empty_answer_counts_as_failure(self) -> None:
        mistral = FakeProvider(AIProviderName.MISTRAL, [])
        openai = FakeProvider(AIProviderName.OPENAI, oil_change_lines())

        result = service_with(mistral, openai).generate("g1", "vidange")

        self.assertEqual(result.provider, AIProviderName.OPENAI)

    def test_all_providers_failing_gives_manual_mode(self) -> None:
        mistral = FakeProvider(AIProviderName.MISTRAL, error=ProviderError("Réponse illisible"))
        service = service_with(mistral, max_retries=1)

        result = service.generate("g1", "vidange")

        self.assertEqual(result.status, AIResultStatus.API_ERROR)
        self.assertEqual(result.error, MANUAL_MODE_MESSAGE)
        self.assertTrue(result.fallback)
        self.assertEqual(result.lines, [])
        self.assertEqual(len(mistral.calls), 2)
        self.assertEqual(service.usage.usage("g1"), 0)

    def test_invalid_post_processing_falls_back_to_raw_lines(self) -> None:
        raw = oil_change_lines()
        service = service_with(FakeProvider(AIProviderName.MISTRAL, raw))

        with mock.patch("domain.quote_service.validate_lines", return_value=False):
            result = service.generate("g1", "vidange")

        self.assertEqual(result.status, AIResultStatus.FALLBACK_USED)
        self.assertEqual(result.lines, raw)

    def test_price_memory_is_applied(self) -> None:
        store = InMemoryPriceMemoryStore()
        store.upsert(
            "g1", PriceBookItemType.LABOR, "vidange moteur remplacement filtre",
            "Vidange moteur + remplacement filtre", 72,
        )
        service = service_with(FakeProvider(AIProviderName.MISTRAL, oil_change_lines()), price_memory=store)

        result = service.generate("g1", "vidange")

        self.assertEqual(result.lines[0].unit_price_ht, 72)


class RefusalTestCase(unittest.TestCase):
    def test_invalid_description(self) -> None:
        provider = FakeProvider(AIProviderName.MISTRAL, oil_change_lines())
        result = service_with(provider).generate("g1", "   ")

        self.assertEqual(result.status, AIResultStatus.INVALID_INPUT)
        self.assertEqual(result.error, INVALID_INPUT_MESSAGE)
        self.assertEqual(provider.calls, [])

    def test_no_provider(self) -> None:
        result = QuoteLinesService({}).generate("g1", "vidange")

        self.assertEqual(result.status, AIResultStatus.NO_PROVIDER)
        self.assertEqual(result.error, NO_PROVIDER_MESSAGE)
        self.assertTrue(result.fallback)

    def test_rate_limited(self) -> None:
        service = service_with(
            FakeProvider(AIProviderName.MISTRAL, oil_change_lines()),
            rate_limiter=RateLimiter(max_requests=1, clock=lambda: 0.0),
        )

        self.assertEqual(service.generate("g1", "vidange").status, AIResultStatus.OK)
        result = service.generate("g1", "vidange")

        self.assertEqual(result.status, AIResultStatus.RATE_LIMITED)
        self.assertEqual(result.error, RATE_LIMITED_MESSAGE)

    def test_quota_exceeded(self) -> None:
        usage = UsageTracker(limits={"g1": 1}, today=lambda: date(2026, 5, 1))
        service = service_with(FakeProvider(AIProviderName.MISTRAL, oil_change_lines()), usage=usage)

        service.generate("g1", "vidange")
        result = service.generate("g1", "vidange")

        self.assertEqual(result.status, AIResultStatus.QUOTA_EXCEEDED)
        self.assertEqual(result.error, QUOTA_EXCEEDED_MESSAGE)
        self.assertTrue(result.to_dict()["quotaExceeded"])
        self.assertTrue(service.generate("g2", "vidange").ok)

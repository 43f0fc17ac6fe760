import json
import logging
import unittest
from unittest import mock

import pytest
import requests

from config.settings import Settings
from domain.ai_provider import AIProviderName, ProviderError
from domain.ai_status import AIResultStatus
from domain.models import LineType
from domain.price_memory import InMemoryPriceMemoryStore
from infrastructure.ai_factory import build_providers, build_service
from infrastructure.chat_completions import model_candidates
from infrastructure.gemini_client import GeminiQuoteLinesClient
from infrastructure.mistral_client import MistralQuoteLinesClient
from infrastructure.openai_client import OpenAIQuoteLinesClient

LINE = {
    "type": "main_oeuvre",
    "description": "Vidange moteur + remplacement filtre",
    "quantity": 0.75,
    "unit": "heure",
    "unit_price_ht": 60,
    "isOption": False,
    "isIncluded": False,
}
CONTENT = json.dumps({"lines": [LINE]})


class FakeResponse:
    def __init__(self, content=CONTENT, status_code=200, body=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = "erreur" if not self.ok else ""
        self._body = body if body is not None else {"choices": [{"message": {"content": content}}]}

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """Rejoue les réponses dans l'ordre ; la dernière est répétée."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def mistral(*responses):
    session = FakeSession(*responses)
    return MistralQuoteLinesClient("cle-test", session=session), session


def test_model_candidates_puts_configured_first():
    assert model_candidates("b", ("a", "b")) == ["b", "a"]
    assert model_candidates(None, ("a",)) == ["a"]
    assert model_candidates("  ", ()) == []


class ChatCompletionsClientTestCase(unittest.TestCase):
    def test_payload_and_result(self) -> None:
        client, session = mistral(FakeResponse())

        lines = client.generate_lines("vidange", "Renault", "Clio")

        self.assertEqual(lines[0].type, LineType.MAIN_OEUVRE)
        call = session.calls[0]
        self.assertEqual(call["url"], "https://api.mistral.ai/v1/chat/completions")
        self.assertEqual(call["headers"]["Authorization"], "Bearer cle-test")
        payload = call["json"]
        self.assertEqual(payload["model"], "mistral-large-latest")
        self.assertEqual(payload["response_format"], {"type": "json_object"})
        self.assertEqual([m["role"] for m in payload["messages"]], ["system", "user"])
        self.assertIn("Renault", payload["messages"][1]["content"])

    def test_next_model_after_failure(self) -> None:
        client, session = mistral(FakeResponse(status_code=404), FakeResponse())

        lines = client.generate_lines("vidange")

        self.assertEqual(len(lines), 1)
        self.assertEqual(
            [call["json"]["model"] for call in session.calls],
            ["mistral-large-latest", "mistral-medium-latest"],
        )

    def test_http_error_keeps_status_code(self) -> None:
        client, session = mistral(FakeResponse(status_code=500))

        with self.assertRaises(ProviderError) as ctx:
            client.generate_lines("vidange")

        self.assertEqual(ctx.exception.http_status, 500)
        self.assertEqual(len(session.calls), 2)

    def test_unreadable_and_non_compliant_answers(self) -> None:
        bad_line = dict(LINE, type="piece")
        cases = [
            (FakeResponse(content="pas du json"), AIResultStatus.PARSE_ERROR),
            (FakeResponse(content=json.dumps({"lines": [bad_line]})), AIResultStatus.SCHEMA_ERROR),
            (FakeResponse(content=""), AIResultStatus.EMPTY_RESPONSE),
            (FakeResponse(body={"choices": []}), AIResultStatus.EMPTY_RESPONSE),
            (FakeResponse(body=ValueError("html")), AIResultStatus.PARSE_ERROR),
        ]
        for response, expected in cases:
            with self.subTest(expected=expected):
                client, _ = mistral(response)
                with self.assertRaises(ProviderError) as ctx:
                    client.generate_lines("vidange")
                self.assertEqual(ctx.exception.status, expected)

    def test_fenced_json_and_bare_list_are_accepted(self) -> None:
        for content in (f"```json\n{CONTENT}\n```", json.dumps([LINE])):
            with self.subTest(content=content):
                client, _ = mistral(FakeResponse(content=content))
                self.assertEqual(len(client.generate_lines("vidange")), 1)

    def test_network_errors(self) -> None:
        client, _ = mistral(requests.exceptions.Timeout("lent"))
        with self.assertRaises(ProviderError) as ctx:
            client.generate_lines("vidange")
        self.assertIn("Timeout", str(ctx.exception))

        client, _ = mistral(requests.exceptions.ConnectionError("refus"))
        with self.assertRaises(ProviderError) as ctx:
            client.generate_lines("vidange")
        self.assertIn("connexion", str(ctx.exception))

    def test_missing_key(self) -> None:
        with self.assertRaises(ProviderError) as ctx:
            MistralQuoteLinesClient(None)
        self.assertEqual(ctx.exception.status, AIResultStatus.NO_PROVIDER)


def test_openai_from_settings():
    client = OpenAIQuoteLinesClient.from_settings(Settings(openai_api_key="o", ai_timeout_seconds=10))

    assert client.name is AIProviderName.OPENAI
    assert client.models == ["gpt-4o-mini"]
    assert client.timeout_s == 10
    assert client.endpoint == "https://api.openai.com/v1/chat/completions"


# ----------------------------------------------------------------------
# Gemini (SDK google-generativeai simulé)
# ----------------------------------------------------------------------

class FakeGoogleError(Exception):
    code = 429


class GeminiClientTestCase(unittest.TestCase):
    def setUp(self) -> None:
        patcher = mock.patch("infrastructure.gemini_client.genai")
        self.genai = patcher.start()
        self.addCleanup(patcher.stop)
        self.generate = self.genai.GenerativeModel.return_value.generate_content

    def test_model_names_are_prefixed(self) -> None:
        client = GeminiQuoteLinesClient("cle", model="models/gemini-1.5-pro")

        self.genai.configure.assert_called_once_with(api_key="cle")
        self.assertEqual(client.model_names, ["models/gemini-1.5-pro", "models/gemini-1.5-flash"])

    def test_generate_lines(self) -> None:
        self.generate.return_value = mock.Mock(text=CONTENT)
        client = GeminiQuoteLinesClient("cle")

        lines = client.generate_lines("vidange", "Peugeot", "208")

        self.assertEqual(lines[0].description, LINE["description"])
        self.genai.GenerativeModel.assert_called_with("models/gemini-1.5-flash")
        prompt = self.generate.call_args.kwargs["contents"][0]
        self.assertIn("Peugeot", prompt)

    def test_falls_back_to_next_model(self) -> None:
        self.generate.side_effect = [RuntimeError("404 model not found"), mock.Mock(text=CONTENT)]
        client = GeminiQuoteLinesClient("cle")

        self.assertEqual(len(client.generate_lines("vidange")), 1)
        self.genai.GenerativeModel.assert_called_with("models/gemini-1.5-pro")

    def test_api_error_code_is_kept(self) -> None:
        self.generate.side_effect = FakeGoogleError("quota")
        client = GeminiQuoteLinesClient("cle")

        with self.assertRaises(ProviderError) as ctx:
            client.generate_lines("vidange")
        self.assertEqual(ctx.exception.http_status, 429)

    def test_empty_text(self) -> None:
        self.generate.return_value = mock.Mock(text="")
        client = GeminiQuoteLinesClient("cle")

        with self.assertRaises(ProviderError) as ctx:
            client.generate_lines("vidange")
        self.assertEqual(ctx.exception.status, AIResultStatus.EMPTY_RESPONSE)


# ----------------------------------------------------------------------
# Factory
# ----------------------------------------------------------------------

class FactoryTestCase(unittest.TestCase):
    def test_providers_in_fallback_order(self) -> None:
        settings = Settings(mistral_api_key="m", gemini_api_key="g", openai_api_key="o")
        with mock.patch("infrastructure.gemini_client.genai"):
            providers = build_providers(settings)

        self.assertEqual(
            list(providers),
            [AIProviderName.MISTRAL, AIProviderName.GEMINI, AIProviderName.OPENAI],
        )

    def test_missing_keys_are_skipped(self) -> None:
        providers = build_providers(Settings(openai_api_key="o"))
        self.assertEqual(list(providers), [AIProviderName.OPENAI])

        with self.assertLogs("infrastructure.ai_factory", level=logging.CRITICAL):
            self.assertEqual(build_providers(Settings()), {})

    def test_build_service_uses_settings(self) -> None:
        settings = Settings(rate_limit_max=3, format_labels=True, ai_max_retries=2)

        service = build_service(settings, providers={})

        self.assertEqual(service.rate_limiter.max_requests, 3)
        self.assertTrue(service.options.format_labels)
        self.assertFalse(service.options.group_oil_volumes)
        self.assertEqual(service.max_retries, 2)
        self.assertIsInstance(service.price_memory, InMemoryPriceMemoryStore)


@pytest.mark.parametrize("name", ["", "   "])
def test_gemini_rejects_blank_model_name(name):
    with pytest.raises(ProviderError):
        GeminiQuoteLinesClient._normalize_model_name(name)

from __future__ import annotations

from types import SimpleNamespace

import pytest
from google.genai import errors

from src.adapters.gemini_client import GeminiGateway, build_contents, normalize_model_name
from src.services.errors import LLMRequestFailed


def _not_found() -> errors.ClientError:
    return errors.ClientError(404, {"error": {"code": 404, "message": "model not found", "status": "NOT_FOUND"}})


class FakeModels:
    def __init__(self, replies=None, available=None, missing=()):
        self.replies = replies or {}
        self.available = available or []
        self.missing = set(missing)
        self.requests = []
        self.list_calls = 0

    def generate_content(self, *, model, contents, config):
        self.requests.append(model)
        if model in self.missing:
            raise _not_found()
        reply = self.replies.get(model, "Hello from Gemini")
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(text=reply)

    def list(self):
        self.list_calls += 1
        return [SimpleNamespace(name=name, supported_actions=actions) for name, actions in self.available]


def _gateway(models: FakeModels, model: str = "gemini-1.5-flash") -> GeminiGateway:
    return GeminiGateway(api_key="test-key", model=model, client=SimpleNamespace(models=models))


def test_build_contents_maps_roles_and_skips_blank_messages():
    contents = build_contents(
        "system rules",
        [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "  "},
            {"role": "assistant", "content": "hello"},
        ],
    )

    assert [c.role for c in contents] == ["user", "user", "model"]
    assert contents[0].parts[0].text == "system rules"


def test_generate_returns_stripped_text():
    models = FakeModels(replies={"gemini-1.5-flash": "  Plastic is 50 LKR/kg.  "})

    assert _gateway(models).generate("prompt", [{"role": "user", "content": "price?"}]) == "Plastic is 50 LKR/kg."


def test_missing_model_triggers_discovery_and_caches_result():
    models = FakeModels(
        missing={"gemini-1.5-flash"},
        available=[
            ("models/embedding-001", ["embedContent"]),
            ("models/gemini-2.5-pro", ["generateContent"]),
            ("models/gemini-2.5-flash", ["generateContent", "countTokens"]),
        ],
    )
    gateway = _gateway(models)

    assert gateway.generate("prompt", []) == "Hello from Gemini"
    assert gateway.active_model == "gemini-2.5-flash"

    gateway.generate("prompt", [])
    assert models.requests == ["gemini-1.5-flash", "gemini-2.5-flash", "gemini-2.5-flash"]
    assert models.list_calls == 1

    gateway.reset_model_cache()
    assert gateway.active_model == "gemini-1.5-flash"


def test_discovery_prefers_pro_when_no_flash_model():
    models = FakeModels(
        missing={"gemini-old"},
        available=[("models/gemini-ultra", ["generateContent"]), ("models/gemini-2.5-pro", ["generateContent"])],
    )

    gateway = _gateway(models, model="models/gemini-old")
    gateway.generate("prompt", [])

    assert gateway.active_model == "gemini-2.5-pro"


def test_missing_model_without_alternative_fails():
    models = FakeModels(missing={"gemini-1.5-flash"}, available=[("models/gemini-1.5-flash", ["generateContent"])])

    with pytest.raises(LLMRequestFailed):
        _gateway(models).generate("prompt", [])


def test_other_api_errors_are_wrapped():
    models = FakeModels(replies={"gemini-1.5-flash": errors.ServerError(503, {"error": {"message": "overloaded"}})})

    with pytest.raises(LLMRequestFailed):
        _gateway(models).generate("prompt", [])
    assert models.list_calls == 0


def test_empty_reply_is_a_failure():
    models = FakeModels(replies={"gemini-1.5-flash": "   "})

    with pytest.raises(LLMRequestFailed):
        _gateway(models).generate("prompt", [])


def test_missing_api_key_fails_before_network():
    gateway = GeminiGateway(api_key="", model="gemini-1.5-flash")

    with pytest.raises(LLMRequestFailed):
        gateway.generate("prompt", [])


def test_normalize_model_name():
    assert normalize_model_name("models/gemini-2.5-flash") == "gemini-2.5-flash"
    assert normalize_model_name("gemini-2.5-flash") == "gemini-2.5-flash"

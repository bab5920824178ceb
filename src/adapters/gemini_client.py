from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from google import genai
from google.genai import errors, types

from src.services.errors import LLMRequestFailed

logger = logging.getLogger(__name__)


def normalize_model_name(model: str) -> str:
    return model[len("models/") :] if model.startswith("models/") else model


def build_contents(system_prompt: str, history: Sequence[Dict[str, str]]) -> List[types.Content]:
    contents = [types.Content(role="user", parts=[types.Part(text=system_prompt)])]
    for message in history:
        text = (message.get("content") or "").strip()
        if not text:
            continue
        role = "model" if message.get("role") == "assistant" else "user"
        contents.append(types.Content(role=role, parts=[types.Part(text=text)]))
    return contents


class GeminiGateway:
    """Calls Gemini, falling back to a discovered model when the configured one is not found."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: float = 30,
        temperature: float = 0.2,
        max_output_tokens: int = 640,
        client: Any = None,
    ) -> None:
        self._api_key = api_key
        self._model = normalize_model_name(model)
        self._timeout_ms = int(timeout_seconds * 1000)
        self._config = types.GenerateContentConfig(temperature=temperature, max_output_tokens=max_output_tokens)
        self._client = client
        self._resolved_model: Optional[str] = None

    @property
    def active_model(self) -> str:
        return self._resolved_model or self._model

    def reset_model_cache(self) -> None:
        self._resolved_model = None

    def generate(self, system_prompt: str, history: Sequence[Dict[str, str]]) -> str:
        contents = build_contents(system_prompt, history)
        model = self.active_model
        try:
            response = self._generate(model, contents)
        except errors.APIError as exc:
            if exc.code != 404:
                logger.warning("Gemini request failed: %s %s", exc.code, exc.message)
                raise LLMRequestFailed("Gemini request failed") from exc
            response = self._retry_with_discovered_model(model, contents, exc)
        except LLMRequestFailed:
            raise
        except Exception as exc:
            logger.warning("Gemini request error: %s", exc)
            raise LLMRequestFailed("Gemini request failed") from exc

        reply = (getattr(response, "text", None) or "").strip()
        if not reply:
            raise LLMRequestFailed("Gemini returned an empty response")
        return reply

    def _retry_with_discovered_model(self, failed_model: str, contents: List[types.Content], cause: Exception):
        resolved = self._discover_model()
        if not resolved or resolved == failed_model:
            logger.warning("Gemini model %s not found and no alternative was discovered", failed_model)
            raise LLMRequestFailed("Gemini request failed") from cause
        try:
            response = self._generate(resolved, contents)
        except Exception as exc:
            logger.warning("Gemini retry with model %s failed: %s", resolved, exc)
            raise LLMRequestFailed("Gemini request failed") from exc
        self._resolved_model = resolved
        logger.info("Gemini model resolved to %s", resolved)
        return response

    def _discover_model(self) -> Optional[str]:
        try:
            supported = [
                normalize_model_name(entry.name)
                for entry in self._get_client().models.list()
                if entry.name and "generateContent" in (getattr(entry, "supported_actions", None) or [])
            ]
        except LLMRequestFailed:
            raise
        except Exception as exc:
            logger.warning("Gemini model discovery failed: %s", exc)
            return None
        if not supported:
            return None
        for marker in ("flash", "pro"):
            for name in supported:
                if marker in name.lower():
                    return name
        return supported[0]

    def _generate(self, model: str, contents: List[types.Content]):
        return self._get_client().models.generate_content(model=model, contents=contents, config=self._config)

    def _get_client(self):
        if self._client is None:
            if not self._api_key:
                raise LLMRequestFailed("GEMINI_API_KEY is not configured")
            self._client = genai.Client(
                api_key=self._api_key,
                http_options=types.HttpOptions(timeout=self._timeout_ms),
            )
        return self._client

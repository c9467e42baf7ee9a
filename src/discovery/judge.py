"""Generative model access and reply parsing."""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Protocol

import google.generativeai as genai

from src.discovery.errors import ProviderError
from src.shared.logging import get_logger

logger = get_logger(__name__)

_CODE_FENCE_RE = re.compile(r"```(?:json)?")


class GenerativeJudge(Protocol):
    async def complete(self, prompt: str) -> str: ...

    async def complete_multimodal(self, prompt: str, image: bytes, mime_type: str) -> str: ...


def strip_fences(text: str) -> str:
    """Remove ``` / ```json markers the model sometimes wraps replies in."""
    return _CODE_FENCE_RE.sub("", text).strip()


def parse_json_reply(text: str) -> Any:
    """Decode a model reply as JSON, raising :class:`ProviderError` if it is not."""
    cleaned = strip_fences(text or "")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ProviderError(f"Model reply is not valid JSON: {exc}") from exc


class GeminiJudge:
    """Gemini-backed :class:`GenerativeJudge` with a bounded per-call timeout."""

    def __init__(self, api_key: str, model_name: str = "gemini-1.5-flash", timeout_s: float = 20.0) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.timeout_s = timeout_s
        self._model: genai.GenerativeModel | None = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _ensure_initialized(self) -> genai.GenerativeModel:
        if self._model is None:
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model_name)
        return self._model

    async def complete(self, prompt: str) -> str:
        return await self._generate(prompt)

    async def complete_multimodal(self, prompt: str, image: bytes, mime_type: str) -> str:
        return await self._generate([prompt, {"mime_type": mime_type, "data": image}])

    async def _generate(self, contents: Any) -> str:
        if not self.configured:
            raise ProviderError("Gemini API key is not configured")

        model = self._ensure_initialized()
        try:
            response = await asyncio.wait_for(
                model.generate_content_async(contents), timeout=self.timeout_s,
            )
            text = response.text
        except asyncio.TimeoutError as exc:
            raise ProviderError(f"Gemini call timed out after {self.timeout_s}s") from exc
        except Exception as exc:
            raise ProviderError(f"Gemini call failed: {exc}") from exc

        if not text or not text.strip():
            raise ProviderError("Gemini returned an empty reply")
        logger.debug("Gemini reply (%d chars)", len(text))
        return text

import httpx
import time
from typing import Protocol
from loguru import logger

from docchat.core.config import Settings
from docchat.core.errors import ModelUnavailable

GEMINI_GEN_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

EMPTY_COMPLETION_REPLY = "I apologize, but I couldn't generate a response."
EMPTY_SUMMARY_REPLY = "Summary could not be generated."

SUMMARY_PROMPT = """Please provide a concise summary of the following document content, highlighting the key points and main themes:

{content}"""


class LanguageModel(Protocol):
    async def complete(self, prompt: str) -> str:
        ...

    async def summarize(self, text: str) -> str:
        ...


class GeminiLanguageModel:
    """Text completion over the Gemini REST API. One attempt per call; no fallbacks."""

    def __init__(self, api_key: str, model: str, timeout_s: float = 60.0, pipeline_debug: bool = False):
        self._api_key = api_key
        self._model = model
        self._timeout_s = timeout_s
        self._pipeline_debug = pipeline_debug

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiLanguageModel":
        return cls(settings.gemini_api_key, settings.generation_model, settings.generation_timeout_s, settings.pipeline_debug)

    async def _generate(self, prompt: str) -> str:
        if not self._api_key:
            raise ModelUnavailable("Gemini API key is not configured")
        start = time.time()
        url = GEMINI_GEN_URL.format(model=self._model)
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                r = await client.post(url, json=payload, headers={"x-goog-api-key": self._api_key})
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Gemini API error for model {self._model}: {e}")
            raise ModelUnavailable("Failed to generate AI response. Please try again later.") from e
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = ""
        if self._pipeline_debug:
            logger.info(f"[PIPELINE][GENERATE][done] model={self._model} latency_ms={int((time.time() - start) * 1000)} chars={len(text)}")
        return text

    async def complete(self, prompt: str) -> str:
        text = await self._generate(prompt)
        return text or EMPTY_COMPLETION_REPLY

    async def summarize(self, text: str) -> str:
        summary = await self._generate(SUMMARY_PROMPT.format(content=text[:60000]))
        return summary or EMPTY_SUMMARY_REPLY

"""
content_provider.py — Generated Story Content
=============================================
Twists, next-player suggestions and story prompts come from Gemini over
plain HTTP (httpx).

Every public method always returns text: on any failure (no API key,
timeout, HTTP error, unexpected payload) the failure is logged and a fixed
fallback sentence is returned instead. Callers run the result through the
keyword screen before it reaches a story.

Usage:
    provider = GeminiContentProvider(get_settings())
    twist = await provider.generate_twist("Once upon a time ...")
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

import httpx

from storychain.core.config import Settings

logger = logging.getLogger(__name__)

FALLBACK_TWIST = "Suddenly, the story takes an unexpected turn that no one saw coming!"
FALLBACK_SUGGESTION = "The story continues with the next player's turn!"
FALLBACK_PROMPT = "Continue the story with your own creative addition!"

_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


class ContentProviderError(Exception):
    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"[{operation}] {message}")


class ContentProvider(Protocol):
    async def generate_twist(self, story_text: str) -> str: ...

    async def generate_player_suggestion(self, player_names: Sequence[str]) -> str: ...

    async def generate_prompt(self, story_text: str, player_names: Sequence[str]) -> str: ...


class GeminiContentProvider:
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport
        self._timeout = httpx.Timeout(settings.CONTENT_PROVIDER_TIMEOUT, connect=5.0)

    # ── Low level ───────────────────────────────────

    def _endpoint(self) -> str:
        base = self.settings.GEMINI_API_URL.rstrip("/")
        return f"{base}/{self.settings.GEMINI_MODEL}:generateContent"

    def _body(self, prompt: str, max_tokens: int) -> dict:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": self.settings.GENERATION_TEMPERATURE,
                "topP": self.settings.GENERATION_TOP_P,
                "topK": self.settings.GENERATION_TOP_K,
            },
            "safetySettings": [
                {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
                for category in _SAFETY_CATEGORIES
            ],
        }

    async def call_gemini(self, prompt: str, max_tokens: int = 150, operation: str = "generate") -> str:
        """Raw generation call. Raises ContentProviderError on any failure."""
        if not self.settings.GEMINI_API_KEY:
            raise ContentProviderError(operation, "Gemini API key not configured")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self._endpoint(),
                    params={"key": self.settings.GEMINI_API_KEY},
                    json=self._body(prompt, max_tokens),
                )
                resp.raise_for_status()
            data = resp.json()
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except httpx.HTTPStatusError as e:
            raise ContentProviderError(operation, f"HTTP {e.response.status_code}: {e.response.text[:200]}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ContentProviderError(operation, f"Invalid response from Gemini API: {e}") from e
        except httpx.HTTPError as e:
            raise ContentProviderError(operation, str(e) or type(e).__name__) from e

    async def _generate(self, operation: str, prompt: str, max_tokens: int, fallback: str) -> str:
        try:
            text = await self.call_gemini(prompt, max_tokens, operation)
        except ContentProviderError as e:
            logger.warning(f"⚠️  {e}, using fallback text")
            return fallback
        return text.strip() or fallback

    # ── Operations ──────────────────────────────────

    async def generate_twist(self, story_text: str) -> str:
        prompt = (
            "Based on this collaborative story, add an unexpected but creative twist that keeps "
            "the narrative engaging and appropriate for all ages. The twist should be surprising "
            "but logical given the story so far. Keep it to 1-2 sentences.\n\n"
            f'Story so far: "{story_text}"\n\n'
            "Add a creative twist:"
        )
        return await self._generate("twist", prompt, 100, FALLBACK_TWIST)

    async def generate_player_suggestion(self, player_names: Sequence[str]) -> str:
        prompt = (
            f"Given these players in a collaborative story game: {', '.join(player_names)}. "
            "Suggest which player should go next and why. Keep it fun and creative. "
            "Respond in 1-2 sentences."
        )
        return await self._generate("suggestion", prompt, 80, FALLBACK_SUGGESTION)

    async def generate_prompt(self, story_text: str, player_names: Sequence[str]) -> str:
        prompt = (
            "Create a creative story prompt for a collaborative storytelling game. "
            f"Players: {', '.join(player_names)}. "
            f'Current story: "{story_text}". '
            "Generate an engaging prompt that encourages creative storytelling. "
            "Keep it appropriate and inspiring."
        )
        return await self._generate("prompt", prompt, 120, FALLBACK_PROMPT)

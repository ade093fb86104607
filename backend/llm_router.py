"""Unified text-generation interface supporting Google Gemini and OpenAI."""

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_MODEL = "gemini-2.0-flash"

SAFETY_CATEGORIES = [
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
]


class ModelError(Exception):
    """Generation failed for a reason not covered by a subclass."""


class ApiKeyError(ModelError):
    pass


class NetworkError(ModelError):
    pass


@dataclass
class GenerationSettings:
    temperature: float = 0.5
    top_p: float = 0.8
    top_k: int = 20
    max_output_tokens: int = 4096
    stop_sequences: list[str] = field(default_factory=lambda: ["Human:", "Assistant:", "User:"])
    safety_thresholds: dict[str, str] = field(
        default_factory=lambda: {c: "BLOCK_MEDIUM_AND_ABOVE" for c in SAFETY_CATEGORIES}
    )


def _build_gemini_config(settings: GenerationSettings):
    """Build Gemini GenerateContentConfig."""
    from google.genai import types

    safety = [
        types.SafetySetting(category=category, threshold=threshold)
        for category, threshold in settings.safety_thresholds.items()
    ]
    return types.GenerateContentConfig(
        temperature=settings.temperature,
        top_p=settings.top_p,
        top_k=settings.top_k,
        max_output_tokens=settings.max_output_tokens,
        stop_sequences=settings.stop_sequences,
        safety_settings=safety,
    )


class LLMRouter:
    def __init__(self, provider: Optional[str] = None, model: Optional[str] = None):
        self.provider = provider or os.getenv("LLM_PROVIDER", "gemini")
        self.model = model or os.getenv("LLM_MODEL", DEFAULT_MODEL)

    def _resolve_provider(self, model: str) -> str:
        if model.startswith("gpt-"):
            return "openai"
        if model.startswith("gemini-"):
            return "gemini"
        return self.provider

    async def generate(self, prompt: str, settings: Optional[GenerationSettings] = None) -> str:
        settings = settings or GenerationSettings()
        provider = self._resolve_provider(self.model)
        if provider == "openai":
            return await self._openai_generate(prompt, settings)
        elif provider == "gemini":
            return await self._gemini_generate(prompt, settings)
        else:
            raise ModelError(f"Cannot route model: {self.model}")

    async def _gemini_generate(self, prompt: str, settings: GenerationSettings) -> str:
        import httpx
        from google import genai
        from google.genai import errors

        client = genai.Client(api_key=os.getenv("GEMINI_API_KEY"))
        try:
            response = await client.aio.models.generate_content(
                model=self.model, contents=prompt, config=_build_gemini_config(settings),
            )
        except errors.APIError as e:
            if "API key" in str(e):
                raise ApiKeyError(str(e)) from e
            raise ModelError(str(e)) from e
        except httpx.TransportError as e:
            raise NetworkError(f"network error talking to Gemini: {e}") from e
        return response.text or ""

    async def _openai_generate(self, prompt: str, settings: GenerationSettings) -> str:
        import openai
        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=os.getenv("OPENAI_API_KEY"))
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=settings.temperature,
                top_p=settings.top_p,
                max_tokens=settings.max_output_tokens,
                stop=settings.stop_sequences,
            )
        except openai.AuthenticationError as e:
            raise ApiKeyError(f"Invalid API key: {e}") from e
        except openai.APIConnectionError as e:
            raise NetworkError(f"network error talking to OpenAI: {e}") from e
        except openai.OpenAIError as e:
            raise ModelError(str(e)) from e
        return response.choices[0].message.content or ""

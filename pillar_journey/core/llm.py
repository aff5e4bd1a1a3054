"""
Pillar Journey — LLM Provider Abstraction.

Single public coroutine `complete()` that routes a prompt to the configured
provider and returns the raw text. Provider SDKs are imported lazily, so
only the one selected via LLM_PROVIDER needs to be installed.
Supports: gemini (default), anthropic, openai, cohere.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

# (api_key, model, system, user_message, max_tokens) -> text
_ProviderFn = Callable[[str, str, str, str, int], Awaitable[str]]


class LLMError(Exception):
    """Raised when the provider call fails or times out."""


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_gemini(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(model_name=model, system_instruction=system)
    response = await gm.generate_content_async(
        user_message,
        generation_config=genai.types.GenerationConfig(
            max_output_tokens=max_tokens,
            response_mime_type="application/json",
        ),
    )
    return response.text


async def _complete_anthropic(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=[{"role": "user", "content": user_message}],
    )
    return response.content[0].text


async def _complete_openai(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.choices[0].message.content or ""


async def _complete_cohere(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.message.content[0].text


_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_complete_gemini,    "gemini-2.0-flash"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


class _Provider:
    """Lazily resolved provider; settings are read on first use."""

    def __init__(self) -> None:
        self.fn: _ProviderFn | None = None
        self.model = ""
        self.api_key = ""
        self.timeout = 0.0

    def resolve(self) -> None:
        from pillar_journey.config import settings

        name = settings.LLM_PROVIDER.lower()
        if name not in _PROVIDERS:
            raise LLMError(
                f"Unknown LLM_PROVIDER={name!r}. Supported: {', '.join(_PROVIDERS)}"
            )
        self.fn, default_model = _PROVIDERS[name]
        self.model = settings.LLM_MODEL or default_model
        self.api_key = settings.LLM_API_KEY
        self.timeout = settings.PLAN_GENERATION_TIMEOUT_SECONDS
        logger.info("LLM provider: %s, model: %s", name, self.model)


_provider = _Provider()


def reset_provider() -> None:
    """Forget the resolved provider so the next call re-reads settings."""
    global _provider
    _provider = _Provider()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(system: str, user_message: str, max_tokens: int = 2048) -> str:
    """Send a prompt to the configured provider and return the response text.

    Raises LLMError on provider errors, on timeout and when the configured
    provider is unknown.
    """
    if _provider.fn is None:
        _provider.resolve()

    try:
        return await asyncio.wait_for(
            _provider.fn(_provider.api_key, _provider.model, system, user_message, max_tokens),
            timeout=_provider.timeout or None,
        )
    except asyncio.TimeoutError as exc:
        raise LLMError(f"LLM call timed out after {_provider.timeout:.0f}s") from exc
    except Exception as exc:
        raise LLMError(f"LLM call failed: {exc}") from exc

"""
Focusly — LLM Provider Abstraction.

Single public function `complete()` that routes to the configured provider
and picks the model for the caller's access tier.
Provider is selected at startup via the LLM_PROVIDER env var.
Supports: openai (default), anthropic.

Transient provider failures are retried with bounded exponential backoff
(LLM_MAX_RETRIES attempts); once exhausted, ProviderError is raised.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

import backoff

from focusly.core.access_policy import Tier
from focusly.core.errors import ProviderError

logger = logging.getLogger(__name__)

# Type alias for provider implementations
_ProviderFn = Callable[[str, str, str, str, int], Awaitable[str]]

COACH_SYSTEM_PROMPT = (
    "You are Focusly, a strict yet supportive accountability coach. "
    "You help users stay accountable to their goals and turn them into "
    "small, concrete daily actions. Be concise and clear."
)

# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


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


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, dict[Tier, str]]] = {
    "openai": (
        _complete_openai,
        {Tier.HIGH: "gpt-4o", Tier.STANDARD: "gpt-3.5-turbo"},
    ),
    "anthropic": (
        _complete_anthropic,
        {Tier.HIGH: "claude-sonnet-4-5", Tier.STANDARD: "claude-haiku-4-5-20251001"},
    ),
}


def _select_provider() -> tuple[_ProviderFn, dict[Tier, str], str]:
    """Read settings and return (provider_fn, models_by_tier, api_key)."""
    from focusly.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_models = _PROVIDERS[provider_name]
    models = {
        Tier.HIGH: settings.LLM_MODEL_HIGH or default_models[Tier.HIGH],
        Tier.STANDARD: settings.LLM_MODEL_STANDARD or default_models[Tier.STANDARD],
    }

    logger.info(
        "LLM provider: %s, models: high=%s standard=%s",
        provider_name, models[Tier.HIGH], models[Tier.STANDARD],
    )
    return fn, models, settings.LLM_API_KEY


def _max_tries() -> int:
    from focusly.config import settings
    return max(1, settings.LLM_MAX_RETRIES)


@backoff.on_exception(backoff.expo, Exception, max_tries=_max_tries, logger=logger)
async def _call_provider(
    fn: _ProviderFn, api_key: str, model: str, system: str, user_message: str, max_tokens: int,
) -> str:
    return await fn(api_key, model, system, user_message, max_tokens)


# Lazy singleton — populated on first call to complete()
_provider_fn: _ProviderFn | None = None
_models: dict[Tier, str] = {}
_api_key: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(
    system: str, user_message: str, tier: Tier = Tier.HIGH, max_tokens: int = 512,
) -> str:
    """Send a prompt to the configured LLM provider and return the response text.

    Raises ProviderError once retries are exhausted.
    """
    global _provider_fn, _models, _api_key

    if _provider_fn is None:
        _provider_fn, _models, _api_key = _select_provider()

    model = _models[tier]
    try:
        return await _call_provider(_provider_fn, _api_key, model, system, user_message, max_tokens)
    except Exception as exc:
        logger.error("LLM call failed (model=%s): %s", model, exc)
        raise ProviderError(str(exc)) from exc


async def complete_prompt(prompt: str, tier: Tier) -> str:
    """CompletionPort implementation: the prompt under the coach persona."""
    return await complete(COACH_SYSTEM_PROMPT, prompt, tier=tier)

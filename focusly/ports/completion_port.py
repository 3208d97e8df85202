"""Completion port — abstract interface for the AI completion provider.

Implementations raise ProviderError when the provider cannot answer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from focusly.core.access_policy import Tier


class CompletionPort(Protocol):
    """Turns a prompt into text at the quality level of a tier."""

    async def __call__(self, prompt: str, tier: Tier) -> str: ...

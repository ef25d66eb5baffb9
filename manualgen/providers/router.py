"""
Provider Fallback Router
========================
Tries the primary provider's key manager; on any failure hands the same
request to the fallback provider.  Only when both fail does the caller
see an error, a ``ProvidersExhausted`` naming both reasons.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from ..errors import ProviderError, ProvidersExhausted
from .key_manager import (
    GeminiTransport,
    GroqTransport,
    KeyManager,
    ProviderRequest,
)

logger = logging.getLogger(__name__)


class FallbackRouter:
    """Primary → fallback routing over two ``KeyManager`` pools."""

    def __init__(self, primary: KeyManager, fallback: KeyManager):
        self.primary = primary
        self.fallback = fallback

    @classmethod
    def from_env(
        cls,
        *,
        state_dir: Optional[str] = None,
        timeout_s: float = 30.0,
        max_retries: int = 2,
    ) -> "FallbackRouter":
        """Groq first, Gemini as fallback, keys read from the environment."""
        groq = KeyManager.from_env(
            "groq", "GROQ", GroqTransport(),
            state_dir=state_dir, timeout_s=timeout_s, max_retries=max_retries,
        )
        gemini = KeyManager.from_env(
            "gemini", "GEMINI", GeminiTransport(),
            extra_vars=("GOOGLE_API_KEY",),
            state_dir=state_dir, timeout_s=timeout_s, max_retries=max_retries,
        )
        return cls(groq, gemini)

    async def generate(self, request: ProviderRequest) -> Dict[str, Any]:
        """Return ``{content, provider, responseTimeMs}``.

        Raises:
            ProvidersExhausted: both providers failed.
        """
        started = time.perf_counter()
        try:
            content = await self.primary.call(request)
            provider = self.primary.provider
        except ProviderError as primary_exc:
            logger.warning(
                f"[ROUTER] {self.primary.provider} failed ({primary_exc}); "
                f"falling back to {self.fallback.provider}"
            )
            try:
                content = await self.fallback.call(request)
                provider = self.fallback.provider
            except ProviderError as fallback_exc:
                logger.error(f"[ROUTER] {self.fallback.provider} failed too: {fallback_exc}")
                raise ProvidersExhausted(
                    self.primary.provider, str(primary_exc),
                    self.fallback.provider, str(fallback_exc),
                ) from fallback_exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"[ROUTER] {provider} answered in {elapsed_ms:.0f} ms")
        return {"content": content, "provider": provider, "responseTimeMs": round(elapsed_ms, 1)}

    async def complete(self, prompt: str, **kwargs) -> str:
        """Convenience wrapper returning only the text."""
        result = await self.generate(ProviderRequest(prompt=prompt, **kwargs))
        return result["content"]

    def get_status(self) -> Dict[str, Any]:
        return {
            "primary": self.primary.get_status(),
            "fallback": self.fallback.get_status(),
        }

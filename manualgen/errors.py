"""
Error Taxonomy
==============
Every failure the pipeline can surface derives from ``ManualGenError``.

Non-fatal errors (``ElementDetectionError``, ``ScreenshotCaptureError``)
are caught inside the crawl engine and the screenshot worker; the page or
element is skipped.  Provider errors are retried and rotated inside the
key manager and only reach the caller once every key and both providers
are exhausted.  ``PipelinePhaseFailure`` is what the orchestrator records
when a phase aborts the run.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ManualGenError(Exception):
    """Base class for all manual-generator errors."""


# ---------------------------------------------------------------------------
# Crawl / browser
# ---------------------------------------------------------------------------

class NavigationError(ManualGenError):
    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        super().__init__(f"Navigation to {url} failed: {reason}" if reason else f"Navigation to {url} failed")


class ElementDetectionError(ManualGenError):
    """Element detection failed on a page (treated as an empty result)."""


class ScreenshotCaptureError(ManualGenError):
    """A capture could not be produced (the capture is skipped)."""


class AuthenticationFailure(ManualGenError):
    """Login was attempted with credentials and did not succeed."""


# ---------------------------------------------------------------------------
# AI providers
# ---------------------------------------------------------------------------

class ProviderError(ManualGenError):
    """Any provider failure that is not quota, credential or timeout."""

    def __init__(self, provider: str, reason: str = ""):
        self.provider = provider
        self.reason = reason
        super().__init__(f"[{provider}] {reason}" if reason else f"[{provider}] request failed")


class ProviderQuotaExhausted(ProviderError):
    def __init__(self, provider: str, reason: str = "quota exhausted"):
        super().__init__(provider, reason)


class ProviderCredentialInvalid(ProviderError):
    def __init__(self, provider: str, reason: str = "invalid credential"):
        super().__init__(provider, reason)


class ProviderTimeout(ProviderError):
    def __init__(self, provider: str, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(provider, f"timed out after {timeout_s}s")


class ProvidersExhausted(ManualGenError):
    """Both the primary and the fallback provider failed."""

    def __init__(self, primary: str, primary_reason: str, fallback: str, fallback_reason: str):
        self.primary = primary
        self.primary_reason = primary_reason
        self.fallback = fallback
        self.fallback_reason = fallback_reason
        super().__init__(
            f"All providers failed: {primary}: {primary_reason}; "
            f"{fallback}: {fallback_reason}"
        )


# ---------------------------------------------------------------------------
# Runtime / pipeline
# ---------------------------------------------------------------------------

class NotActiveError(ManualGenError):
    def __init__(self, agent_name: str):
        self.agent_name = agent_name
        super().__init__(f"Agent '{agent_name}' is not active")


class UnknownAgentError(ManualGenError):
    def __init__(self, agent_name: str):
        self.agent_name = agent_name
        super().__init__(f"No agent registered under '{agent_name}'")


class PipelinePhaseFailure(ManualGenError):
    """A pipeline phase failed; carries the phase name and partial statistics."""

    def __init__(
        self,
        phase: str,
        message: str,
        statistics: Optional[Dict[str, Any]] = None,
    ):
        self.phase = phase
        self.message = message
        self.statistics = dict(statistics or {})
        super().__init__(f"Phase '{phase}' failed: {message}")

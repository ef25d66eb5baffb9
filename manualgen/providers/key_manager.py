"""
Provider Key Manager
====================
Quota-aware credential rotation for one AI provider.

Each provider (Groq, Gemini) owns a ``KeyManager`` holding a pool of
``ProviderKeyRecord``.  ``call`` picks the next usable key round-robin,
sends the request through the provider's HTTP transport and classifies
the outcome:

    - HTTP 429   → key marked quota-exhausted, next attempt immediately
    - HTTP 401   → key deactivated permanently, next attempt immediately
    - other      → fixed backoff, then retry
    - success    → request counter bumped, state persisted

Exhausted keys come back on their own once ``now > reset_at`` (the next
local midnight); the check runs lazily whenever a key is selected and
when the status file is loaded.

Security:
    - Keys are never logged.  ``get_status`` masks them to 10 chars.
    - The status file stores a SHA-256 fingerprint, not the key itself.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import requests

from ..errors import (
    ProviderCredentialInvalid,
    ProviderError,
    ProviderQuotaExhausted,
    ProviderTimeout,
)
from ..utils import RetryHandler

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

MAX_RETRIES = 2
DAILY_LIMIT = 50
MAX_ENV_KEYS = 5
_BACKOFF_S = 1.0
_TIMEOUT_S = 30.0


def next_midnight(now: float) -> float:
    """Epoch seconds of the first local midnight strictly after *now*."""
    day = datetime.fromtimestamp(now).replace(hour=0, minute=0, second=0, microsecond=0)
    return (day + timedelta(days=1)).timestamp()


def mask_key(credential: str) -> str:
    return f"{credential[:10]}..."


def fingerprint(credential: str) -> str:
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()[:16]


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class ProviderRequest:
    """Provider-neutral completion request."""
    prompt: str = ""
    messages: List[Dict[str, str]] = field(default_factory=list)
    max_tokens: int = 2048
    temperature: float = 0.7
    model: Optional[str] = None

    def as_messages(self) -> List[Dict[str, str]]:
        if self.messages:
            return list(self.messages)
        return [{"role": "user", "content": self.prompt}]

    def as_prompt(self) -> str:
        if self.prompt:
            return self.prompt
        return "\n\n".join(m.get("content", "") for m in self.messages)


@dataclass
class ProviderKeyRecord:
    credential: str
    is_active: bool = True
    request_count: int = 0
    quota_exhausted: bool = False
    daily_limit: int = DAILY_LIMIT
    reset_at: float = 0.0
    last_used_at: Optional[float] = None

    @property
    def is_usable(self) -> bool:
        return self.is_active and not self.quota_exhausted

    def to_state(self) -> Dict[str, Any]:
        return {
            "fingerprint": fingerprint(self.credential),
            "isActive": self.is_active,
            "requestCount": self.request_count,
            "quotaExhausted": self.quota_exhausted,
            "dailyLimit": self.daily_limit,
            "resetAt": self.reset_at,
            "lastUsedAt": self.last_used_at,
        }


# ---------------------------------------------------------------------------
# HTTP transports
# ---------------------------------------------------------------------------

class ProviderTransport(ABC):
    """Sends one request with one credential and classifies the response."""

    provider: str = ""
    default_model: str = ""

    def __init__(self, model: Optional[str] = None, session: Optional[requests.Session] = None):
        self.model = model or self.default_model
        self._session = session or requests.Session()

    @abstractmethod
    def build(self, credential: str, request: ProviderRequest) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return ``(url, headers, json_body)``."""
        ...

    @abstractmethod
    def parse(self, body: Dict[str, Any]) -> str:
        """Extract the completion text from a 2xx JSON body."""
        ...

    def is_invalid_credential(self, status: int, text: str) -> bool:
        return status in (401, 403)

    async def send(self, credential: str, request: ProviderRequest, timeout_s: float) -> str:
        url, headers, payload = self.build(credential, request)
        loop = asyncio.get_running_loop()

        def _sync_post():
            return self._session.post(url, headers=headers, json=payload, timeout=timeout_s)

        try:
            response = await loop.run_in_executor(None, _sync_post)
        except requests.Timeout:
            raise ProviderTimeout(self.provider, timeout_s) from None
        except requests.RequestException as exc:
            raise ProviderError(self.provider, str(exc)) from exc

        status = response.status_code
        if status == 429:
            raise ProviderQuotaExhausted(self.provider, "HTTP 429")
        if self.is_invalid_credential(status, response.text):
            raise ProviderCredentialInvalid(self.provider, f"HTTP {status}")
        if status >= 400:
            raise ProviderError(self.provider, f"HTTP {status}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError:
            raise ProviderError(self.provider, "response is not JSON") from None
        text = self.parse(body)
        if not text:
            raise ProviderError(self.provider, "empty completion")
        return text


class GroqTransport(ProviderTransport):
    """OpenAI-compatible chat completions endpoint."""

    provider = "groq"
    default_model = "llama3-8b-8192"
    endpoint = "https://api.groq.com/openai/v1/chat/completions"

    def build(self, credential, request):
        headers = {
            "Authorization": f"Bearer {credential}",
            "Content-Type": "application/json",
        }
        body = {
            "model": request.model or self.model,
            "messages": request.as_messages(),
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        return self.endpoint, headers, body

    def parse(self, body):
        try:
            return body["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""


class GeminiTransport(ProviderTransport):
    """Google Generative Language ``generateContent`` endpoint."""

    provider = "gemini"
    default_model = "gemini-1.5-flash"
    endpoint = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def build(self, credential, request):
        url = self.endpoint.format(model=request.model or self.model)
        headers = {
            "x-goog-api-key": credential,
            "Content-Type": "application/json",
        }
        body = {
            "contents": [{"parts": [{"text": request.as_prompt()}]}],
            "generationConfig": {
                "maxOutputTokens": request.max_tokens,
                "temperature": request.temperature,
            },
        }
        return url, headers, body

    def is_invalid_credential(self, status, text):
        # Gemini reports a bad key as 400 API_KEY_INVALID
        if status == 400 and "API_KEY_INVALID" in text:
            return True
        return super().is_invalid_credential(status, text)

    def parse(self, body):
        try:
            parts = body["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return ""
        return "".join(p.get("text", "") for p in parts)


# ---------------------------------------------------------------------------
# Key manager
# ---------------------------------------------------------------------------

class KeyManager:
    """Rotates, rate-tracks and persists the key pool of one provider."""

    def __init__(
        self,
        provider: str,
        credentials: Sequence[str],
        transport: ProviderTransport,
        *,
        status_path: Optional[str] = None,
        daily_limit: int = DAILY_LIMIT,
        max_retries: int = MAX_RETRIES,
        backoff_s: float = _BACKOFF_S,
        timeout_s: float = _TIMEOUT_S,
        clock: Callable[[], float] = time.time,
        sleep=asyncio.sleep,
    ):
        self.provider = provider
        self.transport = transport
        self.status_path = Path(status_path) if status_path else None
        self.max_retries = max_retries
        self.timeout_s = timeout_s
        self._clock = clock
        self._retry = RetryHandler(
            max_attempts=max_retries, backoff=backoff_s, exponential_base=1.0, sleep=sleep,
        )
        reset_at = next_midnight(clock())
        # de-duplicate while keeping order
        self.records: List[ProviderKeyRecord] = [
            ProviderKeyRecord(credential=c, daily_limit=daily_limit, reset_at=reset_at)
            for c in dict.fromkeys(c for c in credentials if c)
        ]
        self._last_index = -1
        self._load_status()
        logger.info(f"[KEYS] {self.provider}: {len(self.records)} key(s) loaded")

    @classmethod
    def from_env(
        cls,
        provider: str,
        env_prefix: str,
        transport: ProviderTransport,
        *,
        extra_vars: Sequence[str] = (),
        state_dir: Optional[str] = None,
        **kwargs,
    ) -> "KeyManager":
        """Load ``{PREFIX}_API_KEY_1..5`` (then ``{PREFIX}_API_KEY`` and *extra_vars*)."""
        keys = [os.environ.get(f"{env_prefix}_API_KEY_{i}", "") for i in range(1, MAX_ENV_KEYS + 1)]
        keys = [k for k in keys if k]
        if not keys:
            for var in (f"{env_prefix}_API_KEY",) + tuple(extra_vars):
                value = os.environ.get(var, "")
                if value:
                    keys.append(value)
                    break
        if not keys:
            logger.warning(f"[KEYS] {provider}: no API keys found in environment ({env_prefix}_API_KEY_*)")
        status_path = None
        if state_dir:
            status_path = str(Path(state_dir) / f"{provider}-keys-status.json")
        return cls(provider, keys, transport, status_path=status_path, **kwargs)

    # ── Rotation ──────────────────────────────────────────────────

    def _refresh_quotas(self) -> None:
        now = self._clock()
        changed = False
        for rec in self.records:
            if now > rec.reset_at:
                if rec.quota_exhausted or rec.request_count:
                    logger.info(f"[KEYS] {self.provider}: daily quota reset for {mask_key(rec.credential)}")
                rec.quota_exhausted = False
                rec.request_count = 0
                rec.reset_at = next_midnight(now)
                changed = True
        if changed:
            self._save_status()

    def next_available(self) -> Optional[ProviderKeyRecord]:
        """Next usable key, resuming after the one used last."""
        self._refresh_quotas()
        n = len(self.records)
        for offset in range(1, n + 1):
            idx = (self._last_index + offset) % n
            rec = self.records[idx]
            if rec.is_usable:
                self._last_index = idx
                return rec
        return None

    @property
    def available_count(self) -> int:
        self._refresh_quotas()
        return sum(1 for r in self.records if r.is_usable)

    # ── Calls ─────────────────────────────────────────────────────

    async def call(self, request: ProviderRequest) -> str:
        """Send *request*, rotating keys on quota and credential errors.

        Raises:
            ProviderQuotaExhausted: no usable key is left.
            ProviderError: the last attempt's failure once retries run out.
        """

        async def _attempt(attempt: int) -> str:
            rec = self.next_available()
            if rec is None:
                raise _NoKeyAvailable(self.provider)
            try:
                text = await self.transport.send(rec.credential, request, self.timeout_s)
            except ProviderQuotaExhausted:
                rec.quota_exhausted = True
                logger.warning(f"[KEYS] {self.provider}: {mask_key(rec.credential)} hit its quota")
                self._save_status()
                raise
            except ProviderCredentialInvalid:
                rec.is_active = False
                logger.warning(f"[KEYS] {self.provider}: {mask_key(rec.credential)} rejected, deactivated")
                self._save_status()
                raise
            rec.request_count += 1
            rec.last_used_at = self._clock()
            if rec.request_count >= rec.daily_limit:
                rec.quota_exhausted = True
                logger.info(f"[KEYS] {self.provider}: {mask_key(rec.credential)} reached daily limit")
            self._save_status()
            return text

        return await self._retry.run(
            _attempt,
            retry_on=(ProviderError,),
            no_delay_on=(ProviderQuotaExhausted, ProviderCredentialInvalid),
            give_up_on=(_NoKeyAvailable,),
            label=f"{self.provider} call",
        )

    # ── Status ────────────────────────────────────────────────────

    def get_status(self) -> Dict[str, Any]:
        self._refresh_quotas()
        return {
            "provider": self.provider,
            "totalKeys": len(self.records),
            "availableKeys": sum(1 for r in self.records if r.is_usable),
            "keys": [
                {
                    "key": mask_key(r.credential),
                    "isActive": r.is_active,
                    "quotaExhausted": r.quota_exhausted,
                    "requestCount": r.request_count,
                    "dailyLimit": r.daily_limit,
                    "resetAt": datetime.fromtimestamp(r.reset_at).isoformat(),
                }
                for r in self.records
            ],
        }

    def reset_all_keys(self) -> None:
        reset_at = next_midnight(self._clock())
        for rec in self.records:
            rec.is_active = True
            rec.quota_exhausted = False
            rec.request_count = 0
            rec.reset_at = reset_at
        self._save_status()
        logger.info(f"[KEYS] {self.provider}: all keys reset")

    # ── Persistence ───────────────────────────────────────────────

    def _load_status(self) -> None:
        if not self.status_path or not self.status_path.exists():
            return
        try:
            data = json.loads(self.status_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning(f"[KEYS] {self.provider}: corrupt status file ignored: {exc}")
            return

        saved = {entry.get("fingerprint"): entry for entry in data.get("keys", [])}
        for rec in self.records:
            entry = saved.get(fingerprint(rec.credential))
            if not entry:
                continue
            rec.is_active = bool(entry.get("isActive", True))
            rec.request_count = int(entry.get("requestCount", 0))
            rec.quota_exhausted = bool(entry.get("quotaExhausted", False))
            rec.reset_at = float(entry.get("resetAt", rec.reset_at))
            rec.last_used_at = entry.get("lastUsedAt")
        self._last_index = int(data.get("lastIndex", -1))
        if self.records:
            self._last_index %= len(self.records)
        self._refresh_quotas()

    def _save_status(self) -> None:
        if not self.status_path:
            return
        payload = {
            "provider": self.provider,
            "lastIndex": self._last_index,
            "savedAt": self._clock(),
            "keys": [r.to_state() for r in self.records],
        }
        try:
            self.status_path.parent.mkdir(parents=True, exist_ok=True)
            self.status_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning(f"[KEYS] {self.provider}: could not persist key status: {exc}")


class _NoKeyAvailable(ProviderQuotaExhausted):
    def __init__(self, provider: str):
        super().__init__(provider, "no active keys available")

"""
Shared fakes: an in-memory browser page, a scripted provider transport
and a sleep recorder.  None of them touch the network or a real browser.
"""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from manualgen.errors import ProviderError


class FakeResponse:
    def __init__(self, status: int = 200):
        self.status = status


class FakePage:
    """Serves HTML from a ``{url: html}`` site map.

    ``statuses`` overrides the HTTP status per URL; ``raws`` feeds the
    element-collection ``evaluate`` call; ``png`` maps URL to the bytes a
    full-page screenshot writes.
    """

    def __init__(
        self,
        site: Dict[str, str],
        *,
        statuses: Optional[Dict[str, int]] = None,
        raws: Optional[List[dict]] = None,
        png: Optional[Dict[str, bytes]] = None,
    ):
        self.site = site
        self.statuses = statuses or {}
        self.raws = raws or []
        self.png = png or {}
        self.url = "about:blank"
        self.visits: List[str] = []
        self.screenshots = 0

    async def goto(self, url, timeout=None, wait_until=None):
        self.visits.append(url)
        self.url = url
        return FakeResponse(self.statuses.get(url, 200 if url in self.site else 404))

    async def wait_for_load_state(self, state=None, timeout=None):
        return None

    async def title(self):
        return f"Title of {self.url}"

    async def content(self):
        return self.site.get(self.url, "")

    async def evaluate(self, script, arg=None):
        if arg is None:
            return {"title": await self.title()}
        return list(self.raws)

    async def screenshot(self, path=None, full_page=False):
        self.screenshots += 1
        Path(path).write_bytes(self.png.get(self.url, b"PNG:" + self.url.encode()))


class ScriptedTransport:
    """Provider transport whose outcome per call is scripted.

    ``script`` maps a credential to a list of outcomes consumed in order;
    an outcome is either the completion text or an exception instance.
    Credentials with no script left answer ``"ok:<credential>"``.
    """

    def __init__(self, provider: str = "fake", script: Optional[Dict[str, list]] = None):
        self.provider = provider
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.calls: List[str] = []

    async def send(self, credential, request, timeout_s):
        self.calls.append(credential)
        queue = self.script.get(credential)
        outcome = queue.pop(0) if queue else f"ok:{credential}"
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FailingTransport(ScriptedTransport):
    async def send(self, credential, request, timeout_s):
        self.calls.append(credential)
        raise ProviderError(self.provider, "HTTP 500")


class SleepRecorder:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay):
        self.calls.append(delay)


class Clock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def sleep():
    return SleepRecorder()

"""
Login worker: authenticates the shared browser page before the crawl.
"""

from __future__ import annotations

from typing import Dict, Optional

from ..auth import Credentials, LoginManager
from ..browser import BrowserSession
from ..errors import AuthenticationFailure
from .runtime import BaseAgent, Handler, Task, TaskResult


class LoginAgent(BaseAgent):
    description = "Authenticates the browser session with username and password"
    capabilities = ["authentication"]

    def __init__(self, session: BrowserSession, manager: Optional[LoginManager] = None, name: str = "LoginAgent"):
        super().__init__(name)
        self.session = session
        self.manager = manager or LoginManager()

    def task_handlers(self) -> Dict[str, Handler]:
        return {"authenticate": self._authenticate}

    async def _authenticate(self, task: Task) -> Dict:
        creds: Credentials = task.payload["credentials"]
        if not creds.is_complete:
            raise AuthenticationFailure("username and password are both required")
        page = await self.session.start()
        ok = await self.manager.login(page, creds, fallback_url=task.payload.get("loginUrl", ""))
        if not ok:
            raise AuthenticationFailure("login was not accepted")
        return {"authenticated": True, "landingUrl": page.url}

    def render_report(self, result: TaskResult) -> str:
        if not result.success:
            return super().render_report(result)
        data = result.data or {}
        return (
            f"# {self.name} Report\n\n"
            "- **Status:** authenticated\n"
            f"- **Landing page:** {data.get('landingUrl', '')}\n"
            f"- **Processing time:** {result.processing_time_ms:.0f} ms\n"
        )

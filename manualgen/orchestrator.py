"""
Pipeline Orchestrator
=====================
Drives one manual-generation run through its phases, strictly in order:

    Login (only with credentials) → Crawl → Analyze → Content → Generate

Every phase is a task routed through the agent registry.  The first
failed ``TaskResult`` stops the run: later phases are never invoked.
Whatever happens, the ``PipelineExecution`` is finalized exactly once and
written to ``<output_dir>/reports/pipeline_<executionId>.json`` with a
Markdown twin, so a failed run still leaves a readable report.

No phase is retried here.  Retries live inside the phases themselves
(provider key rotation, per-page skips in the crawl).
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .agents import (
    AgentRegistry,
    AnalysisAgent,
    ContentAgent,
    CrawlerAgent,
    GeneratorAgent,
    LoginAgent,
    ScreenshotAgent,
)
from .auth import Credentials, resolve_credentials
from .browser import BrowserSession
from .crawl import CrawlConfig, PageCapturer
from .errors import PipelinePhaseFailure
from .providers import FallbackRouter
from .run_config import ManualRunConfig
from .screenshot_cache import ScreenshotCache
from .storage import ObjectStorage

logger = logging.getLogger(__name__)

LOGIN, CRAWL, ANALYZE, CONTENT, GENERATE = "login", "crawl", "analyze", "content", "generate"


def _iso(ts: Optional[float]) -> Optional[str]:
    return datetime.fromtimestamp(ts).isoformat(timespec="seconds") if ts else None


@dataclass
class PipelineExecution:
    """Mutable record of one run, filled in as phases complete."""
    execution_id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex[:12]}")
    started_at: float = field(default_factory=time.time)
    ended_at: Optional[float] = None
    status: str = "running"          # running | success | failed
    phases_completed: List[str] = field(default_factory=list)
    statistics: Dict[str, int] = field(default_factory=lambda: {
        "pagesProcessed": 0,
        "elementsAnalyzed": 0,
        "totalElements": 0,
        "screenshotsCaptured": 0,
        "wordCount": 0,
    })
    document_paths: Dict[str, str] = field(default_factory=dict)
    remote_urls: Dict[str, str] = field(default_factory=dict)
    per_phase_reports: Dict[str, str] = field(default_factory=dict)
    errors: List[Dict[str, str]] = field(default_factory=list)
    report_paths: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def duration_s(self) -> float:
        return round((self.ended_at or time.time()) - self.started_at, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executionId": self.execution_id,
            "startedAt": _iso(self.started_at),
            "endedAt": _iso(self.ended_at),
            "durationSeconds": self.duration_s,
            "status": self.status,
            "phasesCompleted": list(self.phases_completed),
            "statistics": dict(self.statistics),
            "documentPaths": dict(self.document_paths),
            "remoteUrls": dict(self.remote_urls),
            "perPhaseReports": dict(self.per_phase_reports),
            "errors": list(self.errors),
        }

    def to_markdown(self) -> str:
        stats = self.statistics
        status = "SUCCESS" if self.succeeded else "FAILED"
        lines = [
            f"# Pipeline Report {self.execution_id}",
            "",
            f"- **Status:** {status}",
            f"- **Started:** {_iso(self.started_at)}",
            f"- **Ended:** {_iso(self.ended_at)}",
            f"- **Duration:** {self.duration_s} s",
            f"- **Phases completed:** {', '.join(self.phases_completed) or 'none'}",
            "",
            "## Statistics",
            "",
            "| Metric | Value |",
            "|---|---|",
            f"| Pages processed | {stats['pagesProcessed']} |",
            f"| Interactive elements | {stats['totalElements']} |",
            f"| Elements analyzed | {stats['elementsAnalyzed']} |",
            f"| Screenshots captured | {stats['screenshotsCaptured']} |",
            f"| Word count | {stats['wordCount']} |",
        ]
        if self.document_paths:
            lines += ["", "## Documents", ""]
            lines += [f"- **{fmt}:** {path}" for fmt, path in self.document_paths.items()]
        if self.errors:
            lines += ["", "## Errors", ""]
            lines += [f"- `{e['phase']}`: {e['message']}" for e in self.errors]
        for report in self.per_phase_reports.values():
            lines += ["", "---", ""] + [f"#{line}" if line.startswith("#") else line for line in report.splitlines()]
        return "\n".join(lines) + "\n"


class PipelineOrchestrator:
    """Runs the phase sequence over an ``AgentRegistry``.

    The registry must hold workers named ``LoginAgent``, ``CrawlerAgent``,
    ``AnalysisAgent``, ``ContentAgent`` and ``GeneratorAgent``; a
    ``ScreenshotAgent`` is optional and, when present, tidies the
    screenshot cache after the crawl.
    """

    PHASE_AGENTS = {
        LOGIN: "LoginAgent",
        CRAWL: "CrawlerAgent",
        ANALYZE: "AnalysisAgent",
        CONTENT: "ContentAgent",
        GENERATE: "GeneratorAgent",
    }

    def __init__(
        self,
        config: ManualRunConfig,
        registry: AgentRegistry,
        *,
        session: Optional[BrowserSession] = None,
        credentials: Optional[Credentials] = None,
    ):
        self.config = config
        self.registry = registry
        self.session = session
        self.credentials = credentials
        self.execution: Optional[PipelineExecution] = None
        self._finalized = False
        self._closed = False
        self._current_phase: Optional[str] = None

    @classmethod
    def from_config(cls, config: ManualRunConfig) -> "PipelineOrchestrator":
        """Wire the real browser, cache, providers and storage for *config*."""
        out = Path(config.output_dir)
        session = BrowserSession(
            headless=config.headless,
            viewport=config.viewport_dict,
            user_agent=config.user_agent,
            navigation_timeout_ms=config.navigation_timeout_ms,
        )
        storage = ObjectStorage.from_env()
        cache = ScreenshotCache(str(out / "screenshots"), ttl_s=config.cache_ttl_s)
        capturer = PageCapturer(
            cache,
            viewport=config.viewport,
            selector_timeout_ms=config.selector_timeout_ms,
            navigation_timeout_ms=config.navigation_timeout_ms,
            storage=storage,
        )
        router = FallbackRouter.from_env(
            state_dir=str(out / "state"),
            timeout_s=config.provider_timeout_s,
            max_retries=config.max_retries,
        )
        crawl_config = CrawlConfig(
            max_depth=config.max_depth,
            max_pages=config.max_pages,
            links_per_page=config.links_per_page,
            page_delay_s=config.page_delay_s,
            element_delay_s=config.element_delay_s,
            navigation_timeout_ms=config.navigation_timeout_ms,
            capture_screenshots=config.screenshots,
        )

        registry = AgentRegistry()
        registry.register(LoginAgent(session))
        registry.register(CrawlerAgent(session, crawl_config, capturer=capturer))
        registry.register(ScreenshotAgent(session, cache, capturer))
        registry.register(AnalysisAgent(router))
        registry.register(ContentAgent())
        registry.register(GeneratorAgent(
            config.output_dir, config.output_formats, session=session, storage=storage,
        ))

        credentials = resolve_credentials(config.username, config.password, config.login_url)
        return cls(config, registry, session=session, credentials=credentials)

    # ── Run ───────────────────────────────────────────────────────

    async def run(self) -> PipelineExecution:
        execution = PipelineExecution()
        self.execution = execution
        self._finalized = False
        self._current_phase = None
        logger.info(f"[PIPELINE] Starting {execution.execution_id} for {self.config.url}")

        try:
            await self._start_agents()
            await self._run_phases(execution)
            execution.status = "success"
        except PipelinePhaseFailure as exc:
            execution.status = "failed"
            execution.errors.append({"phase": exc.phase, "message": exc.message})
            logger.error(f"[PIPELINE] {exc}")
        except BaseException as exc:
            phase = self._current_phase or "interrupted"
            execution.status = "failed"
            execution.errors.append({"phase": phase, "message": str(exc) or type(exc).__name__})
            logger.error(f"[PIPELINE] Aborted during {phase}: {exc!r}")
            raise
        finally:
            self._finalize(execution)
            await self.shutdown()
        return execution

    async def _start_agents(self) -> None:
        try:
            self._current_phase = "initialize"
            await self.registry.start_all()
        except Exception as exc:
            raise PipelinePhaseFailure("initialize", str(exc) or type(exc).__name__) from exc

    async def _run_phases(self, execution: PipelineExecution) -> None:
        stats = execution.statistics

        if self.credentials is not None:
            await self._phase(execution, LOGIN, "authenticate", {
                "credentials": self.credentials,
                "loginUrl": self.config.login_url or self.config.url,
            })
        else:
            logger.info("[PIPELINE] No credentials supplied; login phase skipped")
        if self.config.stop_after_phase == LOGIN:
            logger.info("[PIPELINE] Stopping after login as requested")
            return

        # Sweep before the crawl: files this run references must stay on disk.
        await self._housekeeping()
        crawl = await self._phase(execution, CRAWL, "start_crawl", {
            "url": self.config.url,
            "enableScreenshots": self.config.screenshots,
        })
        crawl_stats = crawl.get("stats", {})
        stats["pagesProcessed"] = crawl_stats.get("pages", len(crawl.get("pages", [])))
        stats["totalElements"] = crawl_stats.get("totalElements", 0)
        stats["screenshotsCaptured"] = crawl_stats.get("screenshots", 0)
        if self.config.stop_after_phase == CRAWL:
            logger.info("[PIPELINE] Stopping after crawl as requested")
            return

        analysis = await self._phase(execution, ANALYZE, "analyze_crawl", {
            "crawl": crawl,
            "authenticated": LOGIN in execution.phases_completed,
        })
        stats["elementsAnalyzed"] = analysis.get("elementsAnalyzed", 0)

        manual = await self._phase(execution, CONTENT, "generate_content", {
            "analysis": analysis,
            "url": self.config.url,
        })

        generated = await self._phase(execution, GENERATE, "generate_documents", {
            "manual": manual,
            "formats": self.config.output_formats,
        })
        stats["wordCount"] = generated.get("wordCount", 0)
        execution.document_paths.update(generated.get("documents", {}))
        execution.remote_urls.update(generated.get("remoteUrls", {}))

    async def _phase(self, execution: PipelineExecution, phase: str, task_type: str, payload: Dict[str, Any]) -> Any:
        agent = self.PHASE_AGENTS[phase]
        self._current_phase = phase
        logger.info(f"[PIPELINE] Phase {phase} → {agent}")
        result = await self.registry.execute(agent, task_type, payload)
        execution.per_phase_reports[agent] = result.rendered_report
        if not result.success:
            raise PipelinePhaseFailure(phase, result.error or "unknown error", execution.statistics)
        execution.phases_completed.append(phase)
        logger.info(f"[PIPELINE] Phase {phase} done in {result.processing_time_ms:.0f} ms")
        return result.data if result.data is not None else {}

    async def _housekeeping(self) -> None:
        if "ScreenshotAgent" not in self.registry:
            return
        result = await self.registry.execute("ScreenshotAgent", "optimize_cache")
        if not result.success:
            logger.warning(f"[PIPELINE] Screenshot cache optimization failed: {result.error}")

    # ── Finalize / cleanup ────────────────────────────────────────

    def _finalize(self, execution: PipelineExecution) -> None:
        if self._finalized:
            return
        self._finalized = True
        execution.ended_at = time.time()
        try:
            execution.report_paths = self._write_reports(execution)
        except OSError as exc:
            logger.error(f"[PIPELINE] Could not write pipeline report: {exc}")

        logger.info("=" * 60)
        logger.info(f"PIPELINE {execution.status.upper()}: {execution.execution_id}")
        logger.info("=" * 60)
        for key, value in execution.statistics.items():
            logger.info(f"  {key:<22}{value}")
        for fmt, path in execution.document_paths.items():
            logger.info(f"  {fmt:<22}{path}")
        for err in execution.errors:
            logger.info(f"  error[{err['phase']}]: {err['message']}")
        logger.info(f"  Duration:             {execution.duration_s}s")
        logger.info("=" * 60)

    def _write_reports(self, execution: PipelineExecution) -> Dict[str, str]:
        reports_dir = Path(self.config.output_dir) / "reports"
        reports_dir.mkdir(parents=True, exist_ok=True)
        stem = reports_dir / f"pipeline_{execution.execution_id}"

        json_path = stem.with_suffix(".json")
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(execution.to_dict(), f, indent=2, ensure_ascii=False)
        md_path = stem.with_suffix(".md")
        md_path.write_text(execution.to_markdown(), encoding="utf-8")
        logger.info(f"[PIPELINE] Report written to {json_path}")
        return {"json": str(json_path), "markdown": str(md_path)}

    async def shutdown(self) -> None:
        """Stop every worker and close the browser; safe to call twice."""
        if self._closed:
            return
        self._closed = True
        await self.registry.stop_all()
        if self.session is not None:
            await self.session.close()

"""
Agent Runtime
=============
Generic task envelope, per-worker execution wrapper and the routing bus.

A worker subclasses ``BaseAgent`` and declares:

    - ``initialize()`` / ``cleanup()``  lifecycle hooks
    - ``task_handlers()``               task type → coroutine table
    - ``render_report(result)``         human-readable report text

``BaseAgent.execute_task`` is the only entry point callers use.  It
refuses work unless the agent is active, times the call, turns any
exception raised by the handler into a failed ``TaskResult`` and
attaches the rendered report.  Workers never see the timing or the
report plumbing.

``AgentRegistry`` maps worker name → instance.  Workers hand work to
the next stage through ``route_task`` without holding a reference to
the target, and every finished task lands in the registry's history.
"""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from ..errors import NotActiveError, UnknownAgentError

logger = logging.getLogger(__name__)

_HISTORY_LIMIT = 1000

Handler = Callable[["Task"], Awaitable[Any]]


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Task:
    """Immutable unit of work addressed to one worker."""
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    sender: str = "orchestrator"
    priority: int = 0
    id: str = field(default_factory=lambda: _new_id("task"))
    created_at: float = field(default_factory=time.time)


@dataclass
class TaskResult:
    """Outcome of one ``execute_task`` call."""
    task_id: str
    success: bool
    data: Any = None
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    processing_time_ms: float = 0.0
    rendered_report: str = ""
    id: str = field(default_factory=lambda: _new_id("result"))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TaskRecord:
    """One line of the registry's audit history."""
    agent: str
    task_id: str
    task_type: str
    sender: str
    success: bool
    error: Optional[str]
    processing_time_ms: float
    timestamp: float


# ---------------------------------------------------------------------------
# Worker base class
# ---------------------------------------------------------------------------

class BaseAgent(ABC):
    """Base class for every pipeline worker."""

    description: str = ""
    capabilities: List[str] = []

    def __init__(self, name: str):
        self.name = name
        self.registry: Optional["AgentRegistry"] = None
        self._active = False
        self._tasks_processed = 0
        self._tasks_failed = 0
        self._handlers: Dict[str, Handler] = {}
        self.log = logging.getLogger(f"{__name__}.{name}")

    # ── Worker contract ───────────────────────────────────────────

    async def initialize(self) -> None:
        """Acquire resources.  Called once by ``start``."""

    async def cleanup(self) -> None:
        """Release resources.  Called once by ``stop``."""

    @abstractmethod
    def task_handlers(self) -> Dict[str, Handler]:
        """Return the task-type → handler table for this worker."""
        ...

    def render_report(self, result: TaskResult) -> str:
        """Render *result* as Markdown.  Workers override for detail."""
        status = "SUCCESS" if result.success else "FAILED"
        lines = [
            f"# {self.name} Report",
            "",
            f"- **Task:** {result.task_id}",
            f"- **Status:** {status}",
            f"- **Processing time:** {result.processing_time_ms:.0f} ms",
        ]
        if result.error:
            lines.append(f"- **Error:** {result.error}")
        return "\n".join(lines) + "\n"

    async def process_task(self, task: Task) -> TaskResult:
        """Dispatch *task* to its handler and wrap the returned data."""
        handler = self._handlers.get(task.type)
        if handler is None:
            return TaskResult(
                task_id=task.id,
                success=False,
                error=f"{self.name} does not handle task type '{task.type}'",
            )
        data = await handler(task)
        return TaskResult(task_id=task.id, success=True, data=data)

    # ── Lifecycle ─────────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self._active

    async def start(self) -> None:
        if self._active:
            return
        self._handlers = dict(self.task_handlers())
        await self.initialize()
        self._active = True
        self.log.info(f"[AGENT:{self.name}] started")

    async def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        try:
            await self.cleanup()
        finally:
            self.log.info(f"[AGENT:{self.name}] stopped")

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "active": self._active,
            "capabilities": list(self.capabilities),
            "taskTypes": sorted(self._handlers or self.task_handlers()),
            "tasksProcessed": self._tasks_processed,
            "tasksFailed": self._tasks_failed,
        }

    # ── Execution wrapper ─────────────────────────────────────────

    async def execute_task(self, task: Task) -> TaskResult:
        """Run *task* with timing, error capture and report rendering.

        Raises:
            NotActiveError: the worker was not started or already stopped.
        """
        if not self._active:
            raise NotActiveError(self.name)

        started = time.perf_counter()
        self.log.debug(f"[AGENT:{self.name}] processing {task.type} ({task.id})")
        try:
            result = await self.process_task(task)
        except Exception as exc:
            self.log.error(f"[AGENT:{self.name}] {task.type} failed: {exc}")
            result = TaskResult(task_id=task.id, success=False, error=str(exc) or type(exc).__name__)

        result.processing_time_ms = (time.perf_counter() - started) * 1000
        try:
            result.rendered_report = self.render_report(result)
        except Exception as exc:
            self.log.warning(f"[AGENT:{self.name}] report rendering failed: {exc}")
            result.rendered_report = BaseAgent.render_report(self, result)

        self._tasks_processed += 1
        if not result.success:
            self._tasks_failed += 1
        if self.registry is not None:
            self.registry.record(self.name, task, result)
        return result

    async def route_task(self, target: str, task_type: str, payload: Dict[str, Any]) -> TaskResult:
        """Hand work to another registered worker."""
        if self.registry is None:
            raise UnknownAgentError(target)
        return await self.registry.route_task(
            target, Task(type=task_type, payload=payload, sender=self.name)
        )


# ---------------------------------------------------------------------------
# Registry / routing bus
# ---------------------------------------------------------------------------

class AgentRegistry:
    """Maps worker names to instances and records every finished task."""

    def __init__(self, history_limit: int = _HISTORY_LIMIT):
        self._agents: Dict[str, BaseAgent] = {}
        self._history: Deque[TaskRecord] = deque(maxlen=history_limit)
        self._started_at: Optional[float] = None

    def register(self, agent: BaseAgent) -> BaseAgent:
        if agent.name in self._agents:
            logger.warning(f"[REGISTRY] Replacing agent '{agent.name}'")
        agent.registry = self
        self._agents[agent.name] = agent
        logger.debug(f"[REGISTRY] Registered {agent.name}")
        return agent

    def get(self, name: str) -> BaseAgent:
        try:
            return self._agents[name]
        except KeyError:
            raise UnknownAgentError(name) from None

    def __contains__(self, name: str) -> bool:
        return name in self._agents

    @property
    def agent_names(self) -> List[str]:
        return list(self._agents)

    async def route_task(self, target: str, task: Task) -> TaskResult:
        """Deliver *task* to the worker registered as *target*."""
        return await self.get(target).execute_task(task)

    async def execute(
        self,
        target: str,
        task_type: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        sender: str = "orchestrator",
        priority: int = 0,
    ) -> TaskResult:
        """Build a ``Task`` and route it."""
        task = Task(type=task_type, payload=payload or {}, sender=sender, priority=priority)
        return await self.route_task(target, task)

    def record(self, agent_name: str, task: Task, result: TaskResult) -> None:
        self._history.append(TaskRecord(
            agent=agent_name,
            task_id=task.id,
            task_type=task.type,
            sender=task.sender,
            success=result.success,
            error=result.error,
            processing_time_ms=result.processing_time_ms,
            timestamp=result.timestamp,
        ))

    @property
    def task_history(self) -> List[TaskRecord]:
        return list(self._history)

    # ── Lifecycle ─────────────────────────────────────────────────

    async def start_all(self) -> None:
        self._started_at = time.time()
        for agent in self._agents.values():
            await agent.start()
        logger.info(f"[REGISTRY] {len(self._agents)} agents started")

    async def stop_all(self) -> None:
        """Stop every worker, continuing past individual failures."""
        for agent in reversed(list(self._agents.values())):
            try:
                await agent.stop()
            except Exception as exc:
                logger.warning(f"[REGISTRY] Failed to stop {agent.name}: {exc}")

    def system_status(self) -> Dict[str, Any]:
        history = self.task_history
        failed = sum(1 for r in history if not r.success)
        return {
            "agents": {name: a.get_status() for name, a in self._agents.items()},
            "activeAgents": sum(1 for a in self._agents.values() if a.is_active),
            "totalTasks": len(history),
            "failedTasks": failed,
            "uptimeSeconds": round(time.time() - self._started_at, 1) if self._started_at else 0.0,
        }

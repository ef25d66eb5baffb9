"""
Tests for the agent runtime: execution wrapper, routing and history.
"""

import asyncio

import pytest

from manualgen.agents.runtime import AgentRegistry, BaseAgent, Task
from manualgen.errors import NotActiveError, UnknownAgentError


class EchoAgent(BaseAgent):
    def __init__(self, name="Echo"):
        super().__init__(name)
        self.initialized = 0
        self.cleaned = 0

    async def initialize(self):
        self.initialized += 1

    async def cleanup(self):
        self.cleaned += 1

    def task_handlers(self):
        return {"echo": self._echo, "boom": self._boom, "forward": self._forward}

    async def _echo(self, task):
        return {"echo": task.payload.get("value")}

    async def _boom(self, task):
        raise RuntimeError("handler exploded")

    async def _forward(self, task):
        result = await self.route_task(task.payload["to"], "echo", {"value": "via " + self.name})
        return result.data


class BrokenStopAgent(EchoAgent):
    async def cleanup(self):
        raise RuntimeError("cannot stop")


# ====================================================================
# Execution wrapper
# ====================================================================

class TestExecuteTask:

    def test_inactive_agent_refuses_work(self):
        """Calling an agent that was never started raises NotActiveError."""
        agent = EchoAgent()
        with pytest.raises(NotActiveError):
            asyncio.run(agent.execute_task(Task(type="echo")))

    def test_stopped_agent_refuses_work(self):
        agent = EchoAgent()

        async def scenario():
            await agent.start()
            await agent.stop()
            await agent.execute_task(Task(type="echo"))

        with pytest.raises(NotActiveError):
            asyncio.run(scenario())
        assert agent.initialized == 1 and agent.cleaned == 1

    def test_success_carries_data_timing_and_report(self):
        agent = EchoAgent()

        async def scenario():
            await agent.start()
            return await agent.execute_task(Task(type="echo", payload={"value": 42}))

        result = asyncio.run(scenario())
        assert result.success
        assert result.data == {"echo": 42}
        assert result.processing_time_ms >= 0
        assert "Echo Report" in result.rendered_report
        assert "SUCCESS" in result.rendered_report

    def test_handler_exception_becomes_failed_result(self):
        """Exceptions never escape execute_task; they become failed results."""
        agent = EchoAgent()

        async def scenario():
            await agent.start()
            return await agent.execute_task(Task(type="boom"))

        result = asyncio.run(scenario())
        assert not result.success
        assert "handler exploded" in result.error
        assert "FAILED" in result.rendered_report
        assert agent.get_status()["tasksFailed"] == 1

    def test_unknown_task_type_is_failed_result(self):
        agent = EchoAgent()

        async def scenario():
            await agent.start()
            return await agent.execute_task(Task(type="nope"))

        result = asyncio.run(scenario())
        assert not result.success
        assert "nope" in result.error

    def test_start_is_idempotent(self):
        agent = EchoAgent()

        async def scenario():
            await agent.start()
            await agent.start()

        asyncio.run(scenario())
        assert agent.initialized == 1
        assert agent.is_active


# ====================================================================
# Registry
# ====================================================================

class TestRegistry:

    def test_route_between_agents_and_history(self):
        """An agent hands work to another by name; both tasks are recorded."""
        registry = AgentRegistry()
        registry.register(EchoAgent("A"))
        registry.register(EchoAgent("B"))

        async def scenario():
            await registry.start_all()
            return await registry.execute("A", "forward", {"to": "B"})

        result = asyncio.run(scenario())
        assert result.success
        assert result.data == {"echo": "via A"}

        history = registry.task_history
        assert [(r.agent, r.task_type) for r in history] == [("B", "echo"), ("A", "forward")]
        assert history[0].sender == "A"
        assert history[1].sender == "orchestrator"

    def test_failed_tasks_are_recorded(self):
        registry = AgentRegistry()
        registry.register(EchoAgent())

        async def scenario():
            await registry.start_all()
            await registry.execute("Echo", "boom")

        asyncio.run(scenario())
        status = registry.system_status()
        assert status["totalTasks"] == 1
        assert status["failedTasks"] == 1
        assert status["activeAgents"] == 1

    def test_unknown_target(self):
        registry = AgentRegistry()
        with pytest.raises(UnknownAgentError):
            asyncio.run(registry.execute("Ghost", "echo"))

    def test_history_is_bounded(self):
        registry = AgentRegistry(history_limit=3)
        registry.register(EchoAgent())

        async def scenario():
            await registry.start_all()
            for i in range(5):
                await registry.execute("Echo", "echo", {"value": i})

        asyncio.run(scenario())
        assert len(registry.task_history) == 3

    def test_stop_all_continues_past_failures(self):
        registry = AgentRegistry()
        first = registry.register(EchoAgent("First"))
        registry.register(BrokenStopAgent("Broken"))

        async def scenario():
            await registry.start_all()
            await registry.stop_all()

        asyncio.run(scenario())
        assert not first.is_active
        assert first.cleaned == 1

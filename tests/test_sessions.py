import asyncio

from codepilot.api.sessions import SessionManager
from codepilot.api.types import StartTaskRequest
from codepilot.tools.registry import ToolRegistry


def _manager(workspace, retention_s):
    return SessionManager(lambda: ToolRegistry(workspace), retention_s=retention_s)


def test_finished_sessions_are_evicted_after_retention(workspace) -> None:
    async def run_test() -> None:
        manager = _manager(workspace, retention_s=0)
        session = manager.start(StartTaskRequest(goal="hello", model_id="mock"))

        # still running: never evicted
        assert manager.get(session.id) is session

        await session.runner
        assert session.status == "done"
        assert session.finished_at is not None
        assert manager.get(session.id) is None

    asyncio.run(run_test())


def test_finished_sessions_kept_within_retention(workspace) -> None:
    async def run_test() -> None:
        manager = _manager(workspace, retention_s=3600)
        session = manager.start(StartTaskRequest(goal="hello", model_id="mock"))
        await session.runner

        assert manager.get(session.id) is session
        assert manager.get(session.id).final_output == "Mock response: hello"

    asyncio.run(run_test())


def test_starting_a_task_evicts_expired_ones(workspace) -> None:
    async def run_test() -> None:
        manager = _manager(workspace, retention_s=0)
        first = manager.start(StartTaskRequest(goal="one", model_id="mock"))
        await first.runner

        second = manager.start(StartTaskRequest(goal="two", model_id="mock"))

        assert first.id not in manager._sessions
        assert second.id in manager._sessions
        await second.runner

    asyncio.run(run_test())

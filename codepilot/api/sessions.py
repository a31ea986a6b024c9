"""
In-memory task sessions for the HTTP surface.

Each session owns one Orchestrator running in a background asyncio task. The
HTTP layer reads snapshots from it and feeds approval decisions back through
Orchestrator.resolve_approval(). Nothing is persisted; finished sessions are
evicted once they are older than SESSION_RETENTION_S.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from codepilot.agent.orchestrator import Orchestrator
from codepilot.api.types import StartTaskRequest, TaskStatusResponse
from codepilot.core.config import settings
from codepilot.core.ids import new_id
from codepilot.core.logging import get_logger
from codepilot.llm.schemas import Step
from codepilot.tools.registry import ToolRegistry

log = get_logger("api.sessions")


@dataclass
class TaskSession:
    id: str
    goal: str
    orchestrator: Orchestrator
    status: str = "running"
    steps: List[Step] = field(default_factory=list)
    tokens: List[str] = field(default_factory=list)
    final_output: Optional[str] = None
    runner: Optional[asyncio.Task] = None
    finished_at: Optional[float] = None

    def on_progress(self, steps: List[Step]) -> None:
        self.steps = steps

    def on_token(self, token: str) -> None:
        self.tokens.append(token)

    def view(self) -> TaskStatusResponse:
        return TaskStatusResponse(
            task_id=self.id,
            goal=self.goal,
            status=self.status,
            steps=self.steps,
            narration="".join(self.tokens),
            awaiting_approval=self.orchestrator.pending_approval,
            final_output=self.final_output,
        )


class SessionManager:
    def __init__(self, registry_factory: Callable[[], ToolRegistry], retention_s: Optional[float] = None):
        self._registry_factory = registry_factory
        self._retention_s = retention_s if retention_s is not None else settings.SESSION_RETENTION_S
        self._sessions: Dict[str, TaskSession] = {}

    def get(self, task_id: str) -> Optional[TaskSession]:
        self._evict()
        return self._sessions.get(task_id)

    def _evict(self) -> None:
        cutoff = time.monotonic() - self._retention_s
        expired = [sid for sid, s in self._sessions.items() if s.finished_at is not None and s.finished_at <= cutoff]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            log.info(f"Evicted {len(expired)} finished task(s)")

    def start(self, req: StartTaskRequest) -> TaskSession:
        self._evict()
        session = TaskSession(
            id=new_id("task"),
            goal=req.goal,
            orchestrator=Orchestrator(self._registry_factory()),
        )
        self._sessions[session.id] = session
        session.runner = asyncio.create_task(self._run(session, req))
        return session

    async def _run(self, session: TaskSession, req: StartTaskRequest) -> None:
        try:
            await self._execute(session, req)
        finally:
            session.finished_at = time.monotonic()

    async def _execute(self, session: TaskSession, req: StartTaskRequest) -> None:
        try:
            result = await session.orchestrator.execute_task(
                req.goal,
                req.allowed_tools,
                session.on_progress,
                None,  # decisions arrive via the approvals endpoint
                req.model_id,
                req.custom_models,
                req.api_key,
                session.on_token,
                req.history,
            )
        except Exception as e:
            log.exception(f"Task {session.id} crashed")
            session.status = "error"
            session.final_output = f"Internal error: {e}"
            return

        session.steps = result.plan.steps
        session.final_output = result.final_output
        session.status = "cancelled" if session.status == "cancelling" else "done"

    def cancel(self, task_id: str) -> bool:
        session = self._sessions.get(task_id)
        if session is None or session.status != "running":
            return False
        session.status = "cancelling"
        session.orchestrator.cancel()
        return True

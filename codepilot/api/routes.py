from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException

from codepilot.api.sessions import SessionManager
from codepilot.api.types import ApprovalRequest, StartTaskRequest, TaskStatusResponse
from codepilot.core.config import settings
from codepilot.tools.registry import ToolRegistry
from codepilot.tools.workspace import Workspace


"""
FastAPI routes for interacting with the agent.
What it provides:
- Start task endpoint (runs in the background)
- Task status endpoint (steps, narration, pending approval)
- Approval decision endpoint
- Cancel endpoint
- Tool listing

And, the main purpose:
Expose agent functionality over HTTP.
"""

router = APIRouter()


@lru_cache
def get_sessions() -> SessionManager:
    workspace = Workspace.from_path(settings.WORKSPACE_ROOT)
    return SessionManager(lambda: ToolRegistry(workspace))


def _session_or_404(sessions: SessionManager, task_id: str):
    session = sessions.get(task_id)
    if not session:
        raise HTTPException(404, "task not found")
    return session


@router.post("/tasks")
async def api_start_task(req: StartTaskRequest, sessions: SessionManager = Depends(get_sessions)):
    session = sessions.start(req)
    return {"task_id": session.id, "goal": session.goal, "status": session.status}


@router.get("/tasks/{task_id}", response_model=TaskStatusResponse)
async def api_get_task(task_id: str, sessions: SessionManager = Depends(get_sessions)):
    return _session_or_404(sessions, task_id).view()


@router.post("/tasks/{task_id}/approvals/{step_id}")
async def api_approve(
    task_id: str,
    step_id: str,
    req: ApprovalRequest,
    sessions: SessionManager = Depends(get_sessions),
):
    session = _session_or_404(sessions, task_id)
    accepted = session.orchestrator.resolve_approval(step_id, req.approved)
    return {"task_id": task_id, "step_id": step_id, "accepted": accepted}


@router.post("/tasks/{task_id}/cancel")
async def api_cancel(task_id: str, sessions: SessionManager = Depends(get_sessions)):
    _session_or_404(sessions, task_id)
    return {"task_id": task_id, "cancelled": sessions.cancel(task_id)}


@router.get("/tools")
async def api_tools():
    registry = ToolRegistry(Workspace.from_path(settings.WORKSPACE_ROOT))
    return [
        {"name": t.name, "description": t.description, "risk_tier": t.risk_tier.value}
        for t in (registry.get(n) for n in registry.names())
    ]

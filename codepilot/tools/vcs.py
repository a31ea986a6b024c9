import asyncio
import os
from typing import Dict, List, Optional

from pydantic import Field

from codepilot.core.config import settings
from codepilot.core.errors import ToolExecutionError
from codepilot.llm.schemas import ToolResult
from codepilot.tools.registry import ToolParams, register
from codepilot.tools.workspace import Workspace

FALLBACK_IDENTITY = ["-c", "user.name=codepilot", "-c", "user.email=codepilot@localhost"]


class RepoParams(ToolParams):
    path: str = Field(".", description="Repository folder (default: project root)")


class CommitParams(ToolParams):
    message: str = Field(..., min_length=1, description="Commit message")
    path: str = Field(".", description="Repository folder (default: project root)")


class LogParams(ToolParams):
    limit: int = Field(10, ge=1, le=200, description="Number of commits to show")
    path: str = Field(".", description="Repository folder (default: project root)")


class DiffParams(ToolParams):
    path: str = Field(".", description="Repository folder (default: project root)")
    file: Optional[str] = Field(None, description="Limit the diff to one file")


def _git_env(ws: Workspace) -> Dict[str, str]:
    # Repository discovery must stop at the workspace root, never reach a parent repo.
    env = {k: v for k, v in os.environ.items() if k not in ("GIT_DIR", "GIT_WORK_TREE")}
    env["GIT_CEILING_DIRECTORIES"] = str(ws.root.parent)
    return env


async def _git(ws: Workspace, repo: str, args: List[str], prefix: Optional[List[str]] = None):
    cwd = ws.resolve(repo)
    argv = ["git", *(prefix or []), "-C", str(cwd), *args]
    res = await ws.run(argv, timeout_s=settings.COMMAND_TIMEOUT_S, env=_git_env(ws))
    if res.returncode != 0:
        raise ToolExecutionError(f"git {args[0]} failed: {(res.stderr or res.stdout).strip()}")
    return res.stdout


@register("git_init", "Initialize a git repository", RepoParams)
async def git_init(ws: Workspace, params: RepoParams) -> ToolResult:
    await asyncio.to_thread(ws.resolve(params.path).mkdir, parents=True, exist_ok=True)
    out = await _git(ws, params.path, ["init"])
    return ToolResult(success=True, output=out.strip())


@register("git_status", "Show the working tree status", RepoParams)
async def git_status(ws: Workspace, params: RepoParams) -> ToolResult:
    out = await _git(ws, params.path, ["status", "--porcelain=v1", "--branch"])
    lines = out.splitlines()
    changes = [ln for ln in lines if not ln.startswith("##")]
    branch = lines[0][3:] if lines and lines[0].startswith("##") else ""
    return ToolResult(
        success=True,
        output=out.strip() or "Clean working tree",
        data={"branch": branch, "changes": changes},
    )


@register("git_commit", "Stage all changes and commit them", CommitParams)
async def git_commit(ws: Workspace, params: CommitParams) -> ToolResult:
    await _git(ws, params.path, ["add", "-A"])
    identity = await ws.run(["git", "-C", str(ws.resolve(params.path)), "config", "user.email"], env=_git_env(ws))
    prefix = FALLBACK_IDENTITY if not identity.stdout.strip() else None
    out = await _git(ws, params.path, ["commit", "-m", params.message], prefix=prefix)
    sha = (await _git(ws, params.path, ["rev-parse", "HEAD"])).strip()
    return ToolResult(success=True, output=out.strip(), data={"commit": sha})


@register("git_log", "Show recent commits", LogParams)
async def git_log(ws: Workspace, params: LogParams) -> ToolResult:
    out = await _git(ws, params.path, ["log", f"-{params.limit}", "--pretty=format:%h %s"])
    commits = [ln for ln in out.splitlines() if ln.strip()]
    return ToolResult(success=True, output=out.strip() or "No commits", data={"commits": commits})


@register("git_diff", "Show uncommitted changes", DiffParams)
async def git_diff(ws: Workspace, params: DiffParams) -> ToolResult:
    args = ["diff"]
    if params.file:
        args += ["--", str(ws.resolve(params.file))]
    out = await _git(ws, params.path, args)
    return ToolResult(success=True, output=out or "No changes")

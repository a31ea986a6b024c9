"""
Sandboxed project environment backing the tool handlers.

Every path a tool touches is resolved under the workspace root; anything that
would land outside it is rejected. Commands run as argv lists (no shell) with
the root as working directory.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import httpx

from codepilot.core.errors import ToolExecutionError, ToolValidationError


class WorkspaceViolation(ToolValidationError):
    pass


@dataclass(frozen=True)
class ExecResult:
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True)
class Workspace:
    root: Path
    http_transport: Optional[httpx.AsyncBaseTransport] = None

    @classmethod
    def from_path(cls, root: str | Path, **kwargs) -> "Workspace":
        p = Path(root).expanduser()
        try:
            p = p.resolve()
        except OSError:
            p = p.absolute()
        return cls(root=p, **kwargs)

    def resolve(self, rel: str | Path = ".") -> Path:
        """Resolve a tool-supplied path within the workspace."""
        rp = Path(rel or ".")
        candidate = (rp if rp.is_absolute() else self.root / rp).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as e:
            raise WorkspaceViolation(f"Path escapes workspace: {rel}") from e
        return candidate

    def display(self, path: Path) -> str:
        rel = path.relative_to(self.root).as_posix()
        return rel or "."

    def iter_files(self, rel: str | Path = ".", include_hidden: bool = False):
        base = self.resolve(rel)
        for p in sorted(base.rglob("*")):
            parts = p.relative_to(self.root).parts
            if not include_hidden and any(part.startswith(".") for part in parts):
                continue
            if "node_modules" in parts:
                continue
            if p.is_file():
                yield p

    def http_client(self, timeout: float = 20.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.http_transport)

    async def run(
        self,
        argv: Sequence[str],
        *,
        timeout_s: float = 60.0,
        env: Optional[Dict[str, str]] = None,
    ) -> ExecResult:
        argv_list = [str(a) for a in argv]
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv_list,
                cwd=str(self.root),
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolExecutionError(f"Command not found: {argv_list[0]}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout_s)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise ToolExecutionError(f"Command timed out after {timeout_s:.0f}s: {' '.join(argv_list)}") from e

        return ExecResult(
            argv=argv_list,
            returncode=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

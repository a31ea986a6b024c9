import shlex
from typing import List

from pydantic import Field

from codepilot.core.config import settings
from codepilot.core.errors import ToolValidationError
from codepilot.llm.schemas import ToolResult
from codepilot.tools.registry import ToolParams, register
from codepilot.tools.workspace import Workspace


class CommandParams(ToolParams):
    command: str = Field(..., min_length=1, description="Command to execute (e.g. ls, mkdir, npm)")
    args: List[str] = Field(default_factory=list, description="Command arguments")


def build_argv(command: str, args: List[str]) -> List[str]:
    # Models often send "ls -la" as the command itself.
    argv = shlex.split(command) if not args else [command.strip()]
    argv.extend(args)
    if not argv:
        raise ToolValidationError("Empty command")
    if argv[0] not in settings.ALLOWED_COMMANDS:
        supported = ", ".join(settings.ALLOWED_COMMANDS)
        raise ToolValidationError(f'Command "{argv[0]}" not supported. Supported: {supported}')
    return argv


def confine_args(ws: Workspace, argv: List[str]) -> None:
    """Reject any argument that would point outside the workspace root.

    Raises WorkspaceViolation. echo text and the grep pattern are not paths.
    """
    command, args = argv[0], argv[1:]
    if command == "echo":
        return
    skip = 1 if command == "grep" else 0
    options_done = False
    for arg in args:
        if not options_done and arg == "--":
            options_done = True
            continue
        if not options_done and arg.startswith("-"):
            # --opt=value may still carry a path
            if "=" in arg:
                ws.resolve(arg.split("=", 1)[1])
            continue
        if skip:
            skip -= 1
            continue
        ws.resolve(arg)


@register("run_command", "Execute a terminal command in the project root", CommandParams)
async def run_command(ws: Workspace, params: CommandParams) -> ToolResult:
    argv = build_argv(params.command, params.args)
    confine_args(ws, argv)
    res = await ws.run(argv, timeout_s=settings.COMMAND_TIMEOUT_S)

    output = res.stdout
    if res.stderr.strip():
        output = f"{output}\n[stderr]\n{res.stderr}" if output else res.stderr
    data = {"argv": res.argv, "returncode": res.returncode}

    if res.returncode != 0:
        return ToolResult(
            success=False,
            output=output,
            data=data,
            error=f"Exit code {res.returncode}: {res.stderr.strip() or res.stdout.strip()}"[:500],
        )
    return ToolResult(success=True, output=output.strip() or "(no output)", data=data)

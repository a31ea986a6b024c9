"""
Tool registry and it does:
- Holds one immutable descriptor per tool (name, risk tier, schema, handler)
- Validates parameters against the tool schema before dispatch
- Runs the handler and turns every failure into a ToolResult

And, the main purpose:
Callers never catch exceptions from execute(); failures come back as data.
"""


from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from codepilot.agent.risk import RiskTier, classify
from codepilot.core.config import settings
from codepilot.core.logging import get_logger
from codepilot.llm.schemas import ToolResult
from codepilot.tools.workspace import Workspace

log = get_logger("tools.registry")

Handler = Callable[[Workspace, Any], Awaitable[ToolResult]]


class ToolParams(BaseModel):
    """Base for tool parameter schemas; unknown keys are a validation error."""

    model_config = ConfigDict(extra="forbid")


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    risk_tier: RiskTier
    params: Type[ToolParams]
    handler: Handler

    def describe(self) -> str:
        lines = [f"## {self.name}", self.description, "Parameters:"]
        fields = self.params.model_fields
        if not fields:
            lines.append("  (none)")
        for pname, field in fields.items():
            required = " (required)" if field.is_required() else " (optional)"
            ptype = getattr(field.annotation, "__name__", str(field.annotation))
            lines.append(f"  - {pname}: {ptype}{required} - {field.description or ''}".rstrip(" -"))
        return "\n".join(lines)


TOOLS: Dict[str, ToolDescriptor] = {}


def register(name: str, description: str, params: Type[ToolParams]):
    def deco(fn: Handler):
        TOOLS[name] = ToolDescriptor(
            name=name,
            description=description,
            risk_tier=classify(name),
            params=params,
            handler=fn,
        )
        return fn
    return deco


def builtin_tools() -> List[ToolDescriptor]:
    # Importing the modules runs their @register decorators.
    import codepilot.tools.files  # noqa: F401
    import codepilot.tools.packages  # noqa: F401
    import codepilot.tools.shell  # noqa: F401
    import codepilot.tools.vcs  # noqa: F401

    return list(TOOLS.values())


def _format_validation(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(x) for x in e.get("loc", ())) or "parameters"
        parts.append(f"{loc}: {e.get('msg')}")
    return "; ".join(parts)


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [truncated {len(text) - limit} chars]"


class ToolRegistry:
    def __init__(self, workspace: Workspace, tools: Optional[Iterable[ToolDescriptor]] = None):
        self.workspace = workspace
        self._tools: Dict[str, ToolDescriptor] = {}
        for descriptor in builtin_tools() if tools is None else tools:
            self.add(descriptor)

    def add(self, descriptor: ToolDescriptor) -> None:
        if descriptor.name in self._tools:
            raise ValueError(f"Tool already registered: {descriptor.name}")
        self._tools[descriptor.name] = descriptor

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def describe(self, names: Optional[Iterable[str]] = None) -> str:
        wanted = self._tools.keys() if names is None else [n for n in names if n in self._tools]
        return "\n\n".join(self._tools[n].describe() for n in wanted)

    async def execute(self, name: str, parameters: Optional[Dict[str, Any]]) -> ToolResult:
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(success=False, error=f'Tool "{name}" not found')

        try:
            params = tool.params.model_validate(parameters or {})
        except ValidationError as e:
            return ToolResult(success=False, error=f"Invalid parameters for {name}: {_format_validation(e)}")

        try:
            result = await tool.handler(self.workspace, params)
        except Exception as e:
            log.warning(f"Tool {name} failed: {type(e).__name__}: {e}")
            return ToolResult(success=False, error=str(e) or type(e).__name__)

        if result.output:
            result.output = _clip(result.output, settings.MAX_TOOL_OUTPUT_CHARS)
        return result

"""
Orchestrates full task execution.
What it does:
- Asks the planner for a plan, round after round
- Runs each round's steps one at a time through the executor
- Reports a full snapshot of all steps after every transition
- Folds step results back into the next round's context
- Stops on a final answer, the round cap, a planner failure or cancel()

And, the main purpose:
Drive planning -> approval -> execution -> completion flow.
"""


import inspect
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from codepilot.agent.approval import ApprovalCallback, ApprovalGate
from codepilot.agent.executor import run_step
from codepilot.agent.planner import PlannerBridge
from codepilot.core.config import settings
from codepilot.core.errors import PlannerError
from codepilot.core.logging import get_logger
from codepilot.llm.prompts import RESULTS_FOOTER, STEP_RESULTS_HEADER
from codepilot.llm.schemas import ChatMessage, ModelEntry, Plan, Step, StepStatus, TaskResult
from codepilot.tools.registry import ToolRegistry
from codepilot.tools.workspace import Workspace

log = get_logger("agent.orchestrator")

ProgressCallback = Callable[[List[Step]], Union[None, Awaitable[None]]]

FALLBACK_OUTPUT = "Done. No further output was produced."
CANCELLED_OUTPUT = "Task cancelled."


def _discard(_: str) -> None:
    return None


def _clip(text: str, limit: int) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[:limit] + " ..."


def fold_round(plan: Plan, limit: Optional[int] = None) -> List[ChatMessage]:
    """Summarize one executed round as an assistant/user message pair."""
    limit = limit or settings.MAX_HISTORY_RESULT_CHARS
    planned = "\n".join(f"{i}. {s.description} ({s.tool})" for i, s in enumerate(plan.steps, start=1))

    lines = [STEP_RESULTS_HEADER]
    for i, s in enumerate(plan.steps, start=1):
        lines.append(f"{i}. [{s.status.value}] {s.description}")
        if s.error:
            lines.append(f"   error: {_clip(s.error, limit)}")
        elif s.result and s.result.output:
            lines.append(f"   output: {_clip(s.result.output, limit)}")

    return [
        ChatMessage(role="assistant", content=f"Plan: {plan.goal}\n{planned}"),
        ChatMessage(role="user", content="\n".join(lines) + "\n" + RESULTS_FOOTER),
    ]


def summarize(steps: Sequence[Step]) -> str:
    completed = sum(1 for s in steps if s.status == StepStatus.COMPLETED)
    failed = sum(1 for s in steps if s.status == StepStatus.FAILED)
    return f"Completed {completed} steps, {failed} failed"


class Orchestrator:
    """Runs one task at a time; approvals are scoped to the running task."""

    def __init__(
        self,
        registry: ToolRegistry,
        planner: Optional[PlannerBridge] = None,
        max_rounds: Optional[int] = None,
        approval_timeout_s: Optional[float] = None,
    ):
        self._registry = registry
        self._planner = planner or PlannerBridge(registry)
        self.max_rounds = max_rounds if max_rounds is not None else settings.MAX_ROUNDS
        self._approval_timeout_s = approval_timeout_s if approval_timeout_s is not None else settings.APPROVAL_TIMEOUT_S
        self._gate: Optional[ApprovalGate] = None
        self._running = False
        self._cancelled = False

    @property
    def pending_approval(self) -> Optional[str]:
        return self._gate.pending_step_id if self._gate else None

    def resolve_approval(self, step_id: str, approved: bool) -> bool:
        if self._gate is None:
            return False
        return self._gate.resolve(step_id, approved)

    def cancel(self) -> None:
        self._cancelled = True
        if self._gate is not None:
            self._gate.cancel()

    async def execute_task(
        self,
        goal: str,
        allowed_tools: Optional[Sequence[str]],
        on_progress: Optional[ProgressCallback],
        on_approval_required: Optional[ApprovalCallback],
        model_id: str,
        custom_models: Sequence[ModelEntry] = (),
        api_key: Optional[str] = None,
        on_token: Optional[Callable[[str], None]] = None,
        history: Sequence[ChatMessage] = (),
    ) -> TaskResult:
        if self._running:
            raise RuntimeError("Orchestrator is already running a task")
        self._running = True
        self._cancelled = False
        self._gate = ApprovalGate(on_approval_required, self._approval_timeout_s)

        all_steps: List[Step] = []
        step_history: List[ChatMessage] = []
        last_response: Optional[str] = None
        final_output: Optional[str] = None
        rounds = 0

        async def notify() -> None:
            await self._report(on_progress, all_steps)

        log.info(f"=== TASK START === goal={goal[:200]!r} model={model_id}")
        try:
            while rounds < self.max_rounds and not self._cancelled:
                rounds += 1
                log.info(f"=== ROUND {rounds}/{self.max_rounds} ===")
                try:
                    plan = await self._planner.generate(
                        goal,
                        history,
                        allowed_tools,
                        model_id,
                        custom_models,
                        api_key,
                        on_token or _discard,
                        step_history=step_history,
                    )
                except PlannerError as e:
                    log.error(f"Planner failed in round {rounds}: {e}")
                    final_output = str(e)
                    break

                if not plan.steps:
                    last_response = plan.conversational_response
                    final_output = last_response or FALLBACK_OUTPUT
                    break

                all_steps.extend(plan.steps)
                await notify()

                for step in plan.steps:
                    if self._cancelled:
                        break
                    await run_step(
                        step,
                        registry=self._registry,
                        gate=self._gate,
                        allowed_tools=allowed_tools,
                        notify=notify,
                    )

                step_history.extend(fold_round(plan))

            if final_output is None:
                if self._cancelled:
                    final_output = CANCELLED_OUTPUT
                else:
                    log.warning(f"Round cap ({self.max_rounds}) reached")
                    final_output = summarize(all_steps)
        finally:
            self._running = False

        result = TaskResult(
            plan=Plan(goal=goal, steps=all_steps, conversational_response=last_response),
            final_output=final_output,
            steps_completed=sum(1 for s in all_steps if s.status == StepStatus.COMPLETED),
            steps_failed=sum(1 for s in all_steps if s.status == StepStatus.FAILED),
            rounds=rounds,
        )
        log.info(
            f"=== TASK COMPLETE === rounds={rounds} completed={result.steps_completed} failed={result.steps_failed}"
        )
        return result

    async def _report(self, on_progress: Optional[ProgressCallback], steps: List[Step]) -> None:
        if on_progress is None:
            return
        snapshot = [s.model_copy(deep=True) for s in steps]
        try:
            maybe = on_progress(snapshot)
            if inspect.isawaitable(maybe):
                await maybe
        except Exception:
            log.exception("Progress callback failed")


async def execute_task(
    goal: str,
    allowed_tools: Optional[Sequence[str]],
    on_progress: Optional[ProgressCallback],
    on_approval_required: Optional[ApprovalCallback],
    model_id: str,
    custom_models: Sequence[ModelEntry] = (),
    api_key: Optional[str] = None,
    on_token: Optional[Callable[[str], None]] = None,
    history: Sequence[ChatMessage] = (),
    workspace_root: Optional[str] = None,
) -> TaskResult:
    """One-shot entry point: builds a workspace, registry and orchestrator and runs the goal."""
    workspace = Workspace.from_path(workspace_root or settings.WORKSPACE_ROOT)
    orchestrator = Orchestrator(ToolRegistry(workspace))
    return await orchestrator.execute_task(
        goal,
        allowed_tools,
        on_progress,
        on_approval_required,
        model_id,
        custom_models,
        api_key,
        on_token,
        history,
    )

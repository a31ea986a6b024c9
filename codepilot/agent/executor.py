"""
Runs ONE step of a plan safely.
What it does:
- Rejects tools outside the task's allow-list (handler never runs)
- Classifies risk and waits for approval on medium/high risk tools
- Walks the step through approved -> executing -> completed/failed
- Reports every transition to the orchestrator

And, the main purpose:
Execute planned steps reliably; every failure ends up on the Step as text.
"""


from typing import Awaitable, Callable, Optional, Sequence

from codepilot.agent.approval import ApprovalGate, ApprovalOutcome
from codepilot.agent.risk import classify, needs_approval
from codepilot.core.errors import AgentError, ApprovalDenied, ToolExecutionError, ToolValidationError
from codepilot.core.logging import get_logger
from codepilot.llm.schemas import Step, StepResult, StepStatus
from codepilot.tools.registry import ToolRegistry

log = get_logger("agent.executor")

DENIAL_REASONS = {
    ApprovalOutcome.DENIED: ApprovalDenied.DEFAULT_REASON,
    ApprovalOutcome.TIMED_OUT: "approval timed out",
    ApprovalOutcome.CANCELLED: "task cancelled",
}


async def _fail(step: Step, err: AgentError, notify: Callable[[], Awaitable[None]]) -> None:
    step.error = str(err)
    step.advance(StepStatus.FAILED)
    log.info(f"Step {step.id} failed: {step.error}")
    await notify()


async def run_step(
    step: Step,
    *,
    registry: ToolRegistry,
    gate: ApprovalGate,
    allowed_tools: Optional[Sequence[str]],
    notify: Callable[[], Awaitable[None]],
) -> None:
    log.info(f"--- Executing step {step.id}: {step.description} | tool={step.tool}")

    if allowed_tools is not None and step.tool not in allowed_tools:
        await _fail(step, ToolValidationError(f'Tool "{step.tool}" is not allowed for this task'), notify)
        return

    tier = classify(step.tool)
    if needs_approval(tier):
        log.info(f"Waiting for approval ({tier.value} risk) for step {step.id}")
        outcome = await gate.request(step)
        log.info(f"Approval outcome for step {step.id}: {outcome.value}")
        if outcome is not ApprovalOutcome.APPROVED:
            await _fail(step, ApprovalDenied(DENIAL_REASONS[outcome]), notify)
            return

    step.advance(StepStatus.APPROVED)
    await notify()

    step.advance(StepStatus.EXECUTING)
    await notify()

    result = await registry.execute(step.tool, step.parameters)
    step.result = StepResult(output=result.output, data=result.data)
    if result.success:
        step.advance(StepStatus.COMPLETED)
        await notify()
        return

    await _fail(step, ToolExecutionError(result.error or "Tool failed without an error message"), notify)

"""
Approval gate for medium/high risk steps.

Each request opens a one-shot slot keyed by step id. The first decision for that
id wins, whether it comes from the approval callback or from resolve(); any later
decision is a no-op. Only one request may be open at a time.
"""

import asyncio
import inspect
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Union

from codepilot.core.logging import get_logger
from codepilot.llm.schemas import Step

log = get_logger("agent.approval")

ApprovalCallback = Callable[[Step], Union[bool, Awaitable[bool]]]


class ApprovalOutcome(str, Enum):
    APPROVED = "approved"
    DENIED = "denied"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class ApprovalGate:
    def __init__(self, callback: Optional[ApprovalCallback] = None, timeout_s: Optional[float] = None):
        self._callback = callback
        self._timeout_s = timeout_s
        self._pending: Dict[str, asyncio.Future] = {}

    @property
    def pending_step_id(self) -> Optional[str]:
        return next(iter(self._pending), None)

    async def request(self, step: Step) -> ApprovalOutcome:
        if self._pending:
            raise RuntimeError(f"Approval already outstanding for step {self.pending_step_id}")

        future = asyncio.get_running_loop().create_future()
        self._pending[step.id] = future
        asker = None
        if self._callback is not None:
            asker = asyncio.ensure_future(self._ask(step))

        try:
            if self._timeout_s is None:
                return await future
            return await asyncio.wait_for(asyncio.shield(future), self._timeout_s)
        except asyncio.TimeoutError:
            log.warning(f"Approval for step {step.id} timed out after {self._timeout_s}s; denying")
            return ApprovalOutcome.TIMED_OUT
        finally:
            self._pending.pop(step.id, None)
            if asker is not None and not asker.done():
                asker.cancel()

    def resolve(self, step_id: str, approved: bool) -> bool:
        """Deliver a decision. Returns False if nothing was waiting on step_id."""
        return self._settle(step_id, ApprovalOutcome.APPROVED if approved else ApprovalOutcome.DENIED)

    def cancel(self) -> None:
        for step_id in list(self._pending):
            self._settle(step_id, ApprovalOutcome.CANCELLED)

    def _settle(self, step_id: str, outcome: ApprovalOutcome) -> bool:
        future = self._pending.get(step_id)
        if future is None or future.done():
            return False
        future.set_result(outcome)
        return True

    async def _ask(self, step: Step) -> None:
        try:
            decision = self._callback(step.model_copy(deep=True))
            if inspect.isawaitable(decision):
                decision = await decision
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception(f"Approval callback failed for step {step.id}; treating as denial")
            decision = False
        self.resolve(step.id, bool(decision))

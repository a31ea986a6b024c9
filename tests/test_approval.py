import asyncio

import pytest

from codepilot.agent.approval import ApprovalGate, ApprovalOutcome
from codepilot.llm.schemas import Step


def _step(step_id="s1", tool="delete_file") -> Step:
    return Step(id=step_id, description="remove temp", tool=tool, parameters={"path": "temp.txt"})


def test_external_decision_resolves_request() -> None:
    async def run_test() -> None:
        gate = ApprovalGate()
        waiter = asyncio.create_task(gate.request(_step()))
        await asyncio.sleep(0)

        assert gate.pending_step_id == "s1"
        assert gate.resolve("s1", True) is True
        assert await waiter is ApprovalOutcome.APPROVED
        assert gate.pending_step_id is None

    asyncio.run(run_test())


def test_second_decision_is_a_noop() -> None:
    async def run_test() -> None:
        gate = ApprovalGate()
        waiter = asyncio.create_task(gate.request(_step()))
        await asyncio.sleep(0)

        assert gate.resolve("s1", False) is True
        assert gate.resolve("s1", True) is False
        assert await waiter is ApprovalOutcome.DENIED
        # after completion, late decisions are still ignored
        assert gate.resolve("s1", True) is False

    asyncio.run(run_test())


def test_decision_for_unknown_id_is_a_noop() -> None:
    gate = ApprovalGate()
    assert gate.resolve("never-requested", True) is False


def test_async_callback_decides() -> None:
    seen = []

    async def ask(step: Step) -> bool:
        seen.append(step.id)
        await asyncio.sleep(0)
        return False

    async def run_test() -> ApprovalOutcome:
        return await ApprovalGate(ask).request(_step())

    assert asyncio.run(run_test()) is ApprovalOutcome.DENIED
    assert seen == ["s1"]


def test_sync_callback_decides() -> None:
    async def run_test() -> ApprovalOutcome:
        return await ApprovalGate(lambda step: True).request(_step())

    assert asyncio.run(run_test()) is ApprovalOutcome.APPROVED


def test_callback_error_denies() -> None:
    def broken(step: Step) -> bool:
        raise RuntimeError("ui went away")

    async def run_test() -> ApprovalOutcome:
        return await ApprovalGate(broken).request(_step())

    assert asyncio.run(run_test()) is ApprovalOutcome.DENIED


def test_callback_receives_a_copy() -> None:
    async def tamper(step: Step) -> bool:
        step.tool = "read_file"
        return True

    async def run_test():
        step = _step()
        await ApprovalGate(tamper).request(step)
        return step

    assert asyncio.run(run_test()).tool == "delete_file"


def test_timeout_denies_and_late_decision_ignored() -> None:
    async def run_test() -> None:
        gate = ApprovalGate(timeout_s=0.01)
        outcome = await gate.request(_step())
        assert outcome is ApprovalOutcome.TIMED_OUT
        assert gate.resolve("s1", True) is False

    asyncio.run(run_test())


def test_cancel_settles_pending_request() -> None:
    async def run_test() -> None:
        gate = ApprovalGate()
        waiter = asyncio.create_task(gate.request(_step()))
        await asyncio.sleep(0)
        gate.cancel()
        assert await waiter is ApprovalOutcome.CANCELLED

    asyncio.run(run_test())


def test_only_one_outstanding_request() -> None:
    async def run_test() -> None:
        gate = ApprovalGate()
        first = asyncio.create_task(gate.request(_step("a")))
        await asyncio.sleep(0)

        with pytest.raises(RuntimeError, match="already outstanding"):
            await gate.request(_step("b"))

        gate.resolve("a", True)
        assert await first is ApprovalOutcome.APPROVED

    asyncio.run(run_test())

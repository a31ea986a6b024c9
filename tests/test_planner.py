import asyncio
import json

import pytest

from codepilot.agent.planner import PlannerBridge, sanitize_history
from codepilot.core.errors import PlannerError
from codepilot.llm.router import LLMError
from codepilot.llm.schemas import ChatMessage, StepStatus


def _generate(planner, goal="do it", allowed=None, history=(), step_history=()):
    tokens = []

    async def run():
        return await planner.generate(
            goal, list(history), allowed, "gpt-4o", [], "key", tokens.append, step_history=step_history
        )

    return asyncio.run(run()), tokens


def test_plain_text_is_a_conversational_round(registry, scripted_router) -> None:
    text = "Hi! I can help you build and edit your project."
    planner = PlannerBridge(registry, router=scripted_router([text]))

    plan, tokens = _generate(planner, goal="hello")

    assert plan.steps == []
    assert plan.conversational_response == text
    assert "".join(tokens) == text


def test_json_plan_becomes_pending_steps(registry, scripted_router, plan_text) -> None:
    raw = plan_text(
        {"id": "x", "description": "List files", "tool": "list_directory", "parameters": {"path": "."}},
        {"description": "Read it", "tool": "read_file", "parameters": {"path": "a.txt"}, "requiresApproval": False},
        goal="inspect",
    )
    planner = PlannerBridge(registry, router=scripted_router([raw]))

    plan, tokens = _generate(planner)

    assert plan.goal == "inspect"
    assert [s.tool for s in plan.steps] == ["list_directory", "read_file"]
    assert all(s.status is StepStatus.PENDING for s in plan.steps)
    assert len({s.id for s in plan.steps}) == 2
    assert plan.steps[0].parameters == {"path": "."}
    assert plan.conversational_response is None
    # no part of the structured plan leaks into the narration
    assert tokens == []


def test_narration_before_plan_is_streamed(registry, scripted_router, plan_text) -> None:
    raw = "Let me look around first.\n```json\n" + plan_text({"description": "ls", "tool": "list_directory", "parameters": {}}) + "\n```"
    planner = PlannerBridge(registry, router=scripted_router([raw]))

    plan, tokens = _generate(planner)

    assert "".join(tokens) == "Let me look around first.\n"
    assert len(plan.steps) == 1


def test_truncated_plan_raises_planner_error(registry, scripted_router) -> None:
    raw = '{"goal": "big", "steps": [{"description": "write", "tool": "write_file", "parameters": {"path": "a", "content": "...'
    planner = PlannerBridge(registry, router=scripted_router([raw]))

    with pytest.raises(PlannerError, match="cut off"):
        _generate(planner)


def test_malformed_step_raises_planner_error(registry, scripted_router) -> None:
    raw = json.dumps({"steps": [{"description": "no tool here"}]})
    planner = PlannerBridge(registry, router=scripted_router([raw]))

    with pytest.raises(PlannerError):
        _generate(planner)


def test_provider_failure_becomes_planner_error(registry, scripted_router) -> None:
    planner = PlannerBridge(registry, router=scripted_router([LLMError("Authentication failed (401)")]))

    with pytest.raises(PlannerError, match="Authentication failed"):
        _generate(planner)


def test_json_reply_field_is_used_as_answer(registry, scripted_router) -> None:
    planner = PlannerBridge(registry, router=scripted_router(['{"response": "All set, nothing to do."}']))

    plan, tokens = _generate(planner)

    assert plan.steps == []
    assert plan.conversational_response == "All set, nothing to do."
    assert "".join(tokens) == "All set, nothing to do."


def test_brace_in_prose_is_released(registry, scripted_router) -> None:
    text = "In JS an object literal looks like {a: 1} and that's it."
    planner = PlannerBridge(registry, router=scripted_router([text]))

    plan, tokens = _generate(planner)

    assert "".join(tokens) == text
    assert plan.conversational_response == text


def test_disallowed_tool_is_kept_for_the_executor_to_reject(registry, scripted_router, plan_text) -> None:
    raw = plan_text({"description": "rm", "tool": "delete_file", "parameters": {"path": "x"}})
    planner = PlannerBridge(registry, router=scripted_router([raw]))

    plan, _ = _generate(planner, allowed=["list_directory"])

    assert [s.tool for s in plan.steps] == ["delete_file"]


def test_prompt_lists_only_allowed_tools(registry, scripted_router) -> None:
    router = scripted_router(["ok"])
    planner = PlannerBridge(registry, router=router)

    _generate(planner, allowed=["list_directory", "read_file"])

    system = router.calls[0][0]
    assert system.role == "system"
    assert "## list_directory" in system.content
    assert "## read_file" in system.content
    assert "## delete_file" not in system.content


def test_messages_order_history_goal_then_step_results(registry, scripted_router) -> None:
    router = scripted_router(["ok"])
    planner = PlannerBridge(registry, router=router)
    history = [
        ChatMessage(role="user", content="earlier"),
        ChatMessage(role="assistant", content="   "),
        ChatMessage(role="system", content="ignored"),
    ]
    step_history = [
        ChatMessage(role="assistant", content="Plan: x"),
        ChatMessage(role="user", content="Results ..."),
    ]

    _generate(planner, goal="the goal", history=history, step_history=step_history)

    sent = [(m.role, m.content) for m in router.calls[0][1:]]
    assert sent == [
        ("user", "earlier"),
        ("user", "the goal"),
        ("assistant", "Plan: x"),
        ("user", "Results ..."),
    ]


def test_sanitize_history_drops_system_and_blank() -> None:
    history = [
        ChatMessage(role="system", content="s"),
        ChatMessage(role="user", content=""),
        ChatMessage(role="assistant", content="kept"),
    ]
    assert [m.content for m in sanitize_history(history)] == ["kept"]


def test_unbalanced_brackets_inside_strings_still_parse(registry, scripted_router, plan_text) -> None:
    raw = plan_text(
        {"description": "close block", "tool": "append_file", "parameters": {"path": "a.js", "content": "}"}},
        {"description": "find words", "tool": "search_files", "parameters": {"query": "[a-z"}},
    )
    planner = PlannerBridge(registry, router=scripted_router([raw]))

    plan, _ = _generate(planner)

    assert [s.tool for s in plan.steps] == ["append_file", "search_files"]
    assert plan.steps[0].parameters["content"] == "}"
    assert plan.steps[1].parameters["query"] == "[a-z"


def test_prose_after_a_complete_plan_is_ignored(registry, scripted_router, plan_text) -> None:
    raw = plan_text({"description": "ls", "tool": "list_directory", "parameters": {}}) + "\nThen I'll edit {config} next."
    planner = PlannerBridge(registry, router=scripted_router([raw]))

    plan, tokens = _generate(planner)

    assert [s.tool for s in plan.steps] == ["list_directory"]
    assert tokens == []


def test_unparseable_plan_without_truncation_is_an_error(registry, scripted_router) -> None:
    raw = '{"steps": [{"tool": "list_directory", parameters: {}}]}'
    planner = PlannerBridge(registry, router=scripted_router([raw]))

    with pytest.raises(PlannerError, match="Could not parse plan"):
        _generate(planner)

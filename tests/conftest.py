import asyncio
import json
from typing import List

import pytest

from codepilot.core.ids import new_id
from codepilot.llm.schemas import Plan, Step
from codepilot.tools.registry import ToolRegistry
from codepilot.tools.workspace import Workspace


class ScriptedRouter:
    """Replays canned model outputs (one per call), streamed in fixed-size chunks."""

    def __init__(self, responses, chunk: int = 7):
        self.responses = list(responses)
        self.chunk = chunk
        self.calls: List[list] = []

    async def stream_chat(self, messages, model_id, custom_models, api_key, on_token):
        self.calls.append(list(messages))
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        for i in range(0, len(resp), self.chunk):
            on_token(resp[i : i + self.chunk])
            await asyncio.sleep(0)
        return resp


class StubPlanner:
    """Returns prepared plans round by round; an exception entry is raised."""

    def __init__(self, rounds):
        self.rounds = list(rounds)
        self.calls = []

    async def generate(self, goal, history, allowed_tools, model_id, custom_models, api_key, on_token, step_history=()):
        self.calls.append({"goal": goal, "step_history": list(step_history)})
        item = self.rounds.pop(0) if self.rounds else Plan(goal=goal, conversational_response="done")
        if isinstance(item, Exception):
            raise item
        return item


def make_plan(*steps, goal="goal") -> Plan:
    return Plan(
        goal=goal,
        steps=[Step(id=new_id("step"), description=s.get("description", s["tool"]), tool=s["tool"], parameters=s.get("parameters", {})) for s in steps],
    )


def plan_json(*steps, goal="goal") -> str:
    return json.dumps({"goal": goal, "steps": list(steps)})


@pytest.fixture
def workspace(tmp_path) -> Workspace:
    return Workspace.from_path(tmp_path)


@pytest.fixture
def registry(workspace) -> ToolRegistry:
    return ToolRegistry(workspace)


@pytest.fixture
def scripted_router():
    return ScriptedRouter


@pytest.fixture
def stub_planner():
    return StubPlanner


@pytest.fixture
def plan_factory():
    return make_plan


@pytest.fixture
def plan_text():
    return plan_json

"""
Creates the plan for one round.
What it does:
- Sends the goal, conversation and prior step results to the model
- Streams the model's narration to the caller token by token
- Holds back structured output until it is complete, then parses it
- Turns the response into either a list of steps or a final answer

And, the main purpose:
Convert a goal (plus what has happened so far) into executable steps.
"""


from typing import Callable, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from codepilot.agent.streaming import NarrationStream
from codepilot.core.errors import PlannerError
from codepilot.core.ids import new_id
from codepilot.core.logging import get_logger
from codepilot.llm.json_parse import extract_json, looks_truncated
from codepilot.llm.prompts import planner_system
from codepilot.llm.router import LLMError, LLMRouter
from codepilot.llm.schemas import ChatMessage, ModelEntry, Plan, PlanDraft, Step
from codepilot.tools.registry import ToolRegistry

log = get_logger("agent.planner")

REPLY_FIELDS = ("response", "message", "content", "text", "answer")

TRUNCATED_MESSAGE = (
    "The model's plan was cut off before it was complete (output limit reached). "
    "Try breaking the task into smaller parts."
)


def sanitize_history(history: Iterable[ChatMessage]) -> List[ChatMessage]:
    return [m for m in history or [] if m.role in ("user", "assistant") and m.content and m.content.strip()]


def _reply_field(parsed: object) -> Optional[str]:
    if not isinstance(parsed, dict):
        return None
    for key in REPLY_FIELDS:
        value = parsed.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


class PlannerBridge:
    def __init__(self, registry: ToolRegistry, router: Optional[LLMRouter] = None):
        self._registry = registry
        self._router = router or LLMRouter()

    def build_messages(
        self,
        goal: str,
        history: Sequence[ChatMessage],
        allowed_tools: Optional[Sequence[str]],
        step_history: Sequence[ChatMessage] = (),
    ) -> List[ChatMessage]:
        tools = self._registry.describe(allowed_tools)
        return [
            ChatMessage(role="system", content=planner_system(tools)),
            *sanitize_history(history),
            ChatMessage(role="user", content=goal),
            *step_history,
        ]

    async def generate(
        self,
        goal: str,
        history: Sequence[ChatMessage],
        allowed_tools: Optional[Sequence[str]],
        model_id: str,
        custom_models: Sequence[ModelEntry],
        api_key: Optional[str],
        on_token: Callable[[str], None],
        step_history: Sequence[ChatMessage] = (),
    ) -> Plan:
        messages = self.build_messages(goal, history, allowed_tools, step_history)
        stream = NarrationStream(on_token)

        log.info(f"Planning model={model_id} history={len(messages) - 2} tools={len(allowed_tools or [])}")
        try:
            await self._router.stream_chat(messages, model_id, custom_models, api_key, stream.feed)
        except LLMError as e:
            raise PlannerError(str(e)) from e
        stream.finish()

        plan = self._interpret(goal, stream)
        if plan.steps:
            log.info(f"Plan created with {len(plan.steps)} steps")
            for i, s in enumerate(plan.steps, start=1):
                log.info(f"  Step {i}: {s.description} | tool={s.tool}")
        else:
            log.info("Conversational response (no tools)")
        return plan

    def _interpret(self, goal: str, stream: NarrationStream) -> Plan:
        if not stream.holding:
            return Plan(goal=goal, conversational_response=stream.narration.strip() or None)

        held = stream.held
        looks_like_plan = '"steps"' in held

        try:
            parsed = extract_json(held)
        except ValueError as e:
            if looks_like_plan and looks_truncated(held):
                raise PlannerError(TRUNCATED_MESSAGE) from e
            if looks_like_plan:
                raise PlannerError(f"Could not parse plan from model output: {e}") from e
            # A brace in ordinary prose.
            stream.release()
            return Plan(goal=goal, conversational_response=stream.narration.strip() or None)

        if isinstance(parsed, dict) and "steps" in parsed:
            try:
                draft = PlanDraft.model_validate(parsed)
            except ValidationError as e:
                raise PlannerError(f"Malformed plan from model: {e.errors()[0].get('msg')}") from e
            steps = [
                Step(id=new_id("step"), description=s.description or s.tool, tool=s.tool, parameters=s.parameters)
                for s in draft.steps
            ]
            if steps:
                return Plan(goal=draft.goal or goal, steps=steps)
            return Plan(goal=goal, conversational_response=stream.narration.strip() or None)

        reply = _reply_field(parsed)
        stream.release(reply)
        return Plan(goal=goal, conversational_response=stream.narration.strip() or None)

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class StepStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


# Allowed forward moves. pending -> failed covers denial, rejection and cancel.
_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.APPROVED, StepStatus.FAILED},
    StepStatus.APPROVED: {StepStatus.EXECUTING},
    StepStatus.EXECUTING: {StepStatus.COMPLETED, StepStatus.FAILED},
    StepStatus.COMPLETED: set(),
    StepStatus.FAILED: set(),
}


class ToolResult(BaseModel):
    success: bool
    output: str = ""
    data: Any = None
    error: Optional[str] = None


class StepResult(BaseModel):
    output: str = ""
    data: Any = None


class Step(BaseModel):
    id: str
    description: str = ""
    tool: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    status: StepStatus = StepStatus.PENDING
    result: Optional[StepResult] = None
    error: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.status in (StepStatus.COMPLETED, StepStatus.FAILED)

    def advance(self, status: StepStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Illegal step transition {self.status.value} -> {status.value} ({self.id})")
        self.status = status


class Plan(BaseModel):
    model_config = ConfigDict(frozen=True)

    goal: str
    steps: List[Step] = Field(default_factory=list)
    conversational_response: Optional[str] = None


class PlannedStep(BaseModel):
    """One step as written by the model, before it gets an id and a status."""

    tool: str = Field(..., min_length=1)
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)


class PlanDraft(BaseModel):
    goal: Optional[str] = None
    steps: List[PlannedStep]


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ModelEntry(BaseModel):
    """A user-supplied OpenAI-compatible model."""

    id: str
    name: str = ""
    endpoint: str
    api_key: str = ""


class TaskResult(BaseModel):
    plan: Plan
    final_output: str
    steps_completed: int = 0
    steps_failed: int = 0
    rounds: int = 0

    @property
    def success(self) -> bool:
        return self.steps_failed == 0

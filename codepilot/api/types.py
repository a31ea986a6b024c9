"""
API request and response schemas.
What it defines:
- Task start payload
- Approval decision payload
- Task status response

And, the main purpose:
Ensure structured communication between client and server.
"""


from typing import List, Optional

from pydantic import BaseModel, Field

from codepilot.core.config import settings
from codepilot.llm.schemas import ChatMessage, ModelEntry, Step


class StartTaskRequest(BaseModel):
    goal: str = Field(..., min_length=1)
    allowed_tools: Optional[List[str]] = Field(None, description="Omit to allow every registered tool")
    model_id: str = settings.DEFAULT_MODEL
    custom_models: List[ModelEntry] = []
    api_key: Optional[str] = None
    history: List[ChatMessage] = []


class ApprovalRequest(BaseModel):
    approved: bool


class TaskStatusResponse(BaseModel):
    task_id: str
    goal: str
    status: str  # running|done|cancelled|error
    steps: List[Step]
    narration: str
    awaiting_approval: Optional[str] = None
    final_output: Optional[str] = None

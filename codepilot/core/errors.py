"""
Error taxonomy for the agent.

Only PlannerError aborts a task. The other three fail a single step and are
recorded on the Step as text, never raised past the executor.
"""


class AgentError(Exception):
    """Base class for every agent-level failure."""


class PlannerError(AgentError):
    """Network, auth or model-output failure while planning a round."""


class ToolValidationError(AgentError):
    """Unknown, disallowed or malformed tool call."""


class ToolExecutionError(AgentError):
    """A tool handler failed while running."""


class ApprovalDenied(AgentError):
    DEFAULT_REASON = "denied by user"

    def __init__(self, reason: str = DEFAULT_REASON):
        super().__init__(reason)

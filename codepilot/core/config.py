"""
Application configuration loader and it handles:
- Environment variables
- Model provider endpoints
- Agent loop budgets
- Workspace sandbox settings

And, the main purpose:
Central place for system configuration.
"""


from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # LLM providers
    DEFAULT_MODEL: str = "claude-3.5-sonnet"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    ANTHROPIC_BASE_URL: str = "https://api.anthropic.com/v1"
    ANTHROPIC_VERSION: str = "2023-06-01"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    LLM_TIMEOUT_S: float = 120.0
    LLM_MAX_RETRIES: int = 3

    # Agent loop
    MAX_ROUNDS: int = 8
    APPROVAL_TIMEOUT_S: Optional[float] = None  # None = wait forever
    MAX_HISTORY_RESULT_CHARS: int = 2000

    # Workspace / tools
    WORKSPACE_ROOT: str = "."
    COMMAND_TIMEOUT_S: float = 60.0
    ALLOWED_COMMANDS: List[str] = [
        "ls", "pwd", "mkdir", "touch", "cat", "rm", "grep",
        "head", "tail", "wc", "cp", "mv", "echo",
    ]
    NPM_REGISTRY_URL: str = "https://registry.npmjs.org"
    MAX_TOOL_OUTPUT_CHARS: int = 20000

    # HTTP sessions
    SESSION_RETENTION_S: float = 3600.0  # finished tasks are dropped after this

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()

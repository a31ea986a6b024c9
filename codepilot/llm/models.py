"""
Model catalog and provider routing rules.

Model ids picked in the UI are short names ("claude-3.5-sonnet"); providers want
their own ids. Custom models are OpenAI-compatible endpoints supplied by the user.
"""

import re
from typing import Iterable, Optional

from codepilot.llm.schemas import ModelEntry


AI_MODELS = [
    {"id": "claude-3.5-sonnet", "name": "Claude 3.5 Sonnet", "provider": "anthropic"},
    {"id": "claude-3-haiku", "name": "Claude 3 Haiku", "provider": "anthropic"},
    {"id": "gpt-4o", "name": "GPT-4o", "provider": "openai"},
    {"id": "gpt-4o-mini", "name": "GPT-4o Mini", "provider": "openai"},
]

PROVIDER_MODEL_IDS = {
    "claude-3.5-sonnet": "claude-3-5-sonnet-20241022",
    "claude-3-haiku": "claude-3-5-haiku-20241022",
}

# Output token ceilings per provider model.
MAX_TOKENS = {
    "gpt-4o": 4096,
    "gpt-4o-mini": 16384,
}
ANTHROPIC_MAX_TOKENS = 8192

MOCK_MODEL_ID = "mock"


def provider_for(model_id: str) -> Optional[str]:
    if model_id == MOCK_MODEL_ID:
        return "mock"
    if model_id.startswith("gpt") or re.match(r"^o\d", model_id):
        return "openai"
    if model_id.startswith("claude") or model_id.startswith("anthropic"):
        return "anthropic"
    if model_id.startswith("gemini"):
        return "gemini"
    if model_id.startswith("openrouter/"):
        return "openrouter"
    return None


def provider_model_id(model_id: str) -> str:
    if model_id.startswith("openrouter/"):
        return model_id[len("openrouter/"):]
    return PROVIDER_MODEL_IDS.get(model_id, model_id)


def find_custom_model(model_id: str, catalog: Iterable[ModelEntry]) -> Optional[ModelEntry]:
    for entry in catalog or []:
        if entry.id == model_id:
            return entry
    return None


def normalize_endpoint(endpoint: str) -> str:
    """Turn a base URL into a full chat-completions URL.

    "https://host/v1" -> "https://host/v1/chat/completions"
    "https://host"    -> "https://host/v1/chat/completions"
    """
    url = endpoint.strip().rstrip("/")
    if url.endswith("/chat/completions"):
        return url
    if re.search(r"/v\d+$", url):
        return f"{url}/chat/completions"
    return f"{url}/v1/chat/completions"

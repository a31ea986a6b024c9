import logging

from codepilot.core.config import settings


def get_logger(name: str) -> logging.Logger:
    # every module logs under the "codepilot" parent so one level applies to all
    root = logging.getLogger("codepilot")
    if not root.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(fmt)
        root.addHandler(handler)
        root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    return root.getChild(name)


"""
Logging setup and it configures:
- Log format
- Log level (LOG_LEVEL, default INFO)
- One stderr handler on the "codepilot" parent logger

The main purpose:
Standardized logging for planner, executor, tools and API.
"""

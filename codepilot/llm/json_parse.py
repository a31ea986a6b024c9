import json
import re
from typing import Any

_DECODER = json.JSONDecoder()


def _strip_code_fences(s: str) -> str:
    s = s.strip()
    # remove ```json ... ``` or ``` ... ```
    if s.startswith("```"):
        s = re.sub(r"^```[a-zA-Z0-9]*\s*", "", s)
        s = re.sub(r"\s*```$", "", s)
    return s.strip()


def extract_json(text: str) -> Any:
    """
    Parse the first JSON object in text.
    Decoding starts at the first brace and stops where the object ends, so
    anything after it (a closing fence, trailing prose) is ignored.
    """
    candidate = _strip_code_fences(text or "")
    start = candidate.find("{")
    if start == -1:
        raise ValueError("No JSON object found in text")
    obj, _ = _DECODER.raw_decode(candidate, start)
    return obj


def looks_truncated(text: str) -> bool:
    """True when braces or brackets do not balance (output hit a token limit).

    Only meaningful for text that already failed to parse: string values may
    hold unbalanced brackets on their own.
    """
    s = text or ""
    return s.count("{") != s.count("}") or s.count("[") != s.count("]")

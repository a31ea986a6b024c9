"""
Splits a model's token stream into narration and structured output.

Narration is forwarded to on_token as it arrives. From the first "{" or code
fence onward everything is held back, so a half-written plan never reaches the
user. Whatever is held can be released later if it turns out not to be a plan.
Forwarded text + held text always equals the raw stream.
"""

from typing import Callable, List

FENCE = "```"


class NarrationStream:
    def __init__(self, on_token: Callable[[str], None]):
        self._on_token = on_token
        self._emitted: List[str] = []
        self._held: List[str] = []
        self._carry = ""
        self._holding = False

    @property
    def holding(self) -> bool:
        return self._holding

    @property
    def narration(self) -> str:
        return "".join(self._emitted)

    @property
    def held(self) -> str:
        return "".join(self._held) + self._carry

    def feed(self, chunk: str) -> None:
        if not chunk:
            return
        if self._holding:
            self._held.append(chunk)
            return

        text = self._carry + chunk
        self._carry = ""
        cut = _structured_start(text)
        if cut != -1:
            self._emit(text[:cut])
            self._held.append(text[cut:])
            self._holding = True
            return

        # A fence may be split across chunks; keep trailing backticks back.
        tail = len(text) - len(text.rstrip("`"))
        if tail:
            self._carry = text[-tail:]
            text = text[:-tail]
        self._emit(text)

    def finish(self) -> None:
        """End of stream: trailing backticks that never became a fence are narration."""
        if not self._holding and self._carry:
            self._emit(self._carry)
            self._carry = ""

    def release(self, text: str | None = None) -> None:
        """Forward held text (or a replacement for it) and stop holding."""
        payload = self.held if text is None else text
        self._held = []
        self._carry = ""
        self._holding = False
        self._emit(payload)

    def _emit(self, text: str) -> None:
        if text:
            self._emitted.append(text)
            self._on_token(text)


def _structured_start(text: str) -> int:
    positions = [p for p in (text.find("{"), text.find(FENCE)) if p != -1]
    return min(positions) if positions else -1

"""Optional LLM advisory layer.

The advisor comments on what the controller does; it never drives devices.
Every method returns an :class:`AdvisoryResult` and never raises, so the
controller can treat a failing advisor the same as no advisor.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from hag.config import HvacOptions
from hag.exceptions import AdvisoryError
from hag.integrations.llm import (
    EFFICIENCY_PROMPT,
    SUMMARY_PROMPT,
    LLMProvider,
    build_system_prompt,
    format_status_context,
    override_prompt,
)

logger = logging.getLogger(__name__)

ContextSource = Callable[[], Mapping[str, Any]]

_MAX_HISTORY = 20
_SUMMARY_HISTORY = 6
_MAX_RECOMMENDATIONS = 5

_BULLET_RE = re.compile(r"^\s*[•\-*]\s*(.+)$", re.MULTILINE)
_NUMBERED_RE = re.compile(r"^\s*\d+\.\s*(.+)$", re.MULTILINE)
_KEYWORD_RE = re.compile(r"\b(recommend|suggest|should|consider|optimi[sz]e|improve)\b", re.I)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+")


@dataclass(frozen=True, slots=True)
class AdvisoryResult:
    success: bool
    text: str = ""
    recommendations: list[str] = field(default_factory=list)
    error: str | None = None


@runtime_checkable
class Advisor(Protocol):
    def bind(self, context_source: ContextSource) -> None: ...

    async def summarize(self) -> AdvisoryResult: ...

    async def override(self, action: str, options: Mapping[str, Any]) -> AdvisoryResult: ...

    async def evaluate_efficiency(self) -> AdvisoryResult: ...


def extract_recommendations(text: str) -> list[str]:
    """Pull bullet or numbered items out of *text*, else keyword sentences."""
    found = [m.strip() for m in _BULLET_RE.findall(text)]
    found += [m.strip() for m in _NUMBERED_RE.findall(text)]
    if not found:
        found = [
            sentence.strip()
            for sentence in _SENTENCE_SPLIT_RE.split(text)
            if _KEYWORD_RE.search(sentence)
        ]
    return found[:_MAX_RECOMMENDATIONS]


class LLMAdvisor:
    """Advisor backed by an :class:`LLMProvider`."""

    def __init__(self, provider: LLMProvider, options: HvacOptions) -> None:
        self._provider = provider
        self._system_prompt = build_system_prompt(options)
        self._context_source: ContextSource | None = None
        self._history: deque[dict[str, str]] = deque(maxlen=_MAX_HISTORY)

    def bind(self, context_source: ContextSource) -> None:
        """Attach the callable that supplies the live controller snapshot."""
        self._context_source = context_source

    @property
    def history_length(self) -> int:
        return len(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    def _context(self) -> str:
        if self._context_source is None:
            return format_status_context(None)
        try:
            return format_status_context(self._context_source())
        except Exception:
            logger.exception("Advisor context source failed")
            return format_status_context(None)

    async def _ask(self, label: str, prompt: str, *, history: int = _MAX_HISTORY) -> AdvisoryResult:
        messages = list(self._history)[-history:] if history else []
        messages.append({"role": "user", "content": f"{self._context()}\n\n{prompt}"})
        try:
            reply = await self._provider.chat(messages, system=self._system_prompt)
            content = str(reply.get("content") or "").strip()
            if not content:
                raise AdvisoryError(f"Empty reply from {reply.get('provider', 'advisor')}")
        except Exception as exc:
            logger.warning("Advisor %s failed: %s", label, exc)
            return AdvisoryResult(success=False, error=str(exc))

        self._history.append({"role": "user", "content": prompt})
        self._history.append({"role": "assistant", "content": content})
        logger.info("Advisor %s completed (%d chars)", label, len(content))
        return AdvisoryResult(
            success=True, text=content, recommendations=extract_recommendations(content)
        )

    async def summarize(self) -> AdvisoryResult:
        return await self._ask("status summary", SUMMARY_PROMPT, history=_SUMMARY_HISTORY)

    async def override(self, action: str, options: Mapping[str, Any]) -> AdvisoryResult:
        temperature = options.get("temperature")
        return await self._ask(
            f"override {action}",
            override_prompt(action, float(temperature) if temperature is not None else None),
        )

    async def evaluate_efficiency(self) -> AdvisoryResult:
        return await self._ask("efficiency evaluation", EFFICIENCY_PROMPT)


__all__ = ["Advisor", "AdvisoryResult", "LLMAdvisor", "extract_recommendations"]

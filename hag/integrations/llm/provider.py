"""litellm-backed chat client for the HVAC advisor.

A provider answers with its own model first; when that call raises, the
configured fallbacks are tried in order and the first reply wins.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


def _require_litellm() -> Any:
    try:
        import litellm
    except Exception as e:  # pragma: no cover
        raise RuntimeError("AI advisory needs litellm: pip install litellm") from e
    return litellm


class LLMProvider:
    """Chat completions against one vendor, with optional fallbacks.

    Usage::

        advisor_llm = LLMProvider("openai", api_key="sk-...", model="gpt-4o-mini")
        reply = await advisor_llm.chat(
            [{"role": "user", "content": "Status: ..."}], system="You watch over a heat pump."
        )
        reply["content"]
    """

    DEFAULT_MODELS: ClassVar[dict[str, str]] = {
        "openai": "gpt-4o-mini",
        "anthropic": "claude-sonnet-4-20250514",
    }
    # litellm routes non-OpenAI models by a "<vendor>/" prefix
    PREFIXED: ClassVar[frozenset[str]] = frozenset({"anthropic"})

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str | None = None,
        *,
        temperature: float = 0.1,
        max_tokens: int = 1024,
        timeout: float = 30.0,
        fallbacks: list[LLMProvider] | None = None,
    ) -> None:
        self.provider = provider
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODELS.get(provider, self.DEFAULT_MODELS["openai"])
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.fallbacks: list[LLMProvider] = list(fallbacks or [])

    def __repr__(self) -> str:
        return f"<LLMProvider {self.model_string} fallbacks={len(self.fallbacks)}>"

    @property
    def model_string(self) -> str:
        if self.provider in self.PREFIXED:
            return f"{self.provider}/{self.model}"
        return self.model

    async def chat(
        self,
        messages: list[dict[str, Any]],
        system: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Complete *messages*, walking the fallback chain on failure.

        Returns ``{"content": ..., "provider": ...}`` naming whoever answered.
        The first provider's error is re-raised once the chain is exhausted.
        """
        first_error: Exception | None = None
        for candidate in (self, *self.fallbacks):
            try:
                reply = await candidate._complete(messages, system, **kwargs)
            except Exception as exc:
                logger.warning("LLM call via %s failed: %s", candidate.provider, exc)
                first_error = first_error or exc
                continue
            if candidate is not self:
                logger.info("LLM answer came from fallback %s", candidate.provider)
            return reply

        logger.error("No LLM provider answered (%d tried)", 1 + len(self.fallbacks))
        assert first_error is not None  # noqa: S101 - the loop ran at least once
        raise first_error

    async def _complete(
        self, messages: list[dict[str, Any]], system: str | None, **kwargs: Any
    ) -> dict[str, Any]:
        litellm = _require_litellm()
        prompt = [{"role": "system", "content": system}] if system else []
        response = await litellm.acompletion(
            model=self.model_string,
            messages=[*prompt, *messages],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
            api_key=self.api_key,
            **kwargs,
        )
        return {"content": response.choices[0].message.content or "", "provider": self.provider}


__all__ = ["LLMProvider"]

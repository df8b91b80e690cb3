"""HAG LLM integration package.

This package provides:
- LLMProvider: litellm-backed chat client with a fallback chain
- Prompt templates for the HVAC advisor
"""

from .prompts import (
    EFFICIENCY_PROMPT,
    SUMMARY_PROMPT,
    build_system_prompt,
    format_status_context,
    override_prompt,
)
from .provider import LLMProvider

__all__ = [
    "EFFICIENCY_PROMPT",
    "SUMMARY_PROMPT",
    "LLMProvider",
    "build_system_prompt",
    "format_status_context",
    "override_prompt",
]

"""Prompt templates for the HVAC advisor.

Keep prompts short and structured to reduce tokens.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from hag.config import HvacOptions


def build_system_prompt(options: HvacOptions) -> str:
    heating = options.heating.temperature_thresholds
    cooling = options.cooling.temperature_thresholds
    return (
        "You are an HVAC automation advisor for a home automation system. "
        "You analyse readings and decisions; you never control devices yourself. "
        "Be concise, practical, and energy-aware. Do not invent readings.\n\n"
        "CONFIG:\n"
        f"- system_mode={options.system_mode}\n"
        f"- temp_sensor={options.temp_sensor} outdoor_sensor={options.outdoor_sensor}\n"
        f"- heating target={_fmt_num(options.heating.temperature)}C "
        f"range={_fmt_num(heating.indoor_min)}-{_fmt_num(heating.indoor_max)}C "
        f"outdoor={_fmt_num(heating.outdoor_min)}..{_fmt_num(heating.outdoor_max)}C\n"
        f"- cooling target={_fmt_num(options.cooling.temperature)}C "
        f"range={_fmt_num(cooling.indoor_min)}-{_fmt_num(cooling.indoor_max)}C "
        f"outdoor={_fmt_num(cooling.outdoor_min)}..{_fmt_num(cooling.outdoor_max)}C"
    )


def format_status_context(status: Mapping[str, Any] | None) -> str:
    """Compact one-line-per-field view of the controller snapshot."""
    if not status:
        return "STATUS: unavailable"
    lines = ["STATUS:"]
    for key, value in status.items():
        if isinstance(value, Mapping):
            inner = ", ".join(f"{k}={_fmt_value(v)}" for k, v in value.items())
            lines.append(f"- {key}: {inner}")
        else:
            lines.append(f"- {key}: {_fmt_value(value)}")
    return "\n".join(lines)


SUMMARY_PROMPT = (
    "Give a brief status summary of the HVAC system in 2-3 sentences covering "
    "the current state, the temperature conditions and any immediate recommendation."
)

EFFICIENCY_PROMPT = (
    "Analyse the HVAC system efficiency: the indoor/outdoor differential, the "
    "current state and mode, and how well targets are held. Finish with a "
    "bulleted list of specific recommendations."
)


def override_prompt(action: str, temperature: float | None) -> str:
    requested = f'action="{action}"'
    if temperature is not None:
        requested += f", temperature={_fmt_num(temperature)}C"
    return (
        f"The user requested a manual HVAC override: {requested}. "
        "Assess whether it makes sense given current conditions and thresholds, "
        "and give short feedback with any recommendation."
    )


def _fmt_value(value: Any) -> str:
    if isinstance(value, float):
        return _fmt_num(value)
    return "?" if value is None else str(value)


def _fmt_num(v: Any) -> str:
    if v is None:
        return "?"
    try:
        f = float(v)
    except Exception:
        return str(v)
    if abs(f - round(f)) < 1e-9:
        return str(int(round(f)))
    return f"{f:.1f}"


__all__ = [
    "EFFICIENCY_PROMPT",
    "SUMMARY_PROMPT",
    "build_system_prompt",
    "format_status_context",
    "override_prompt",
]

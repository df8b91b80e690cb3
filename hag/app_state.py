"""Application state: the one place where collaborators are wired together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from hag.config import HagConfig, Settings, get_settings
from hag.core.advisor import Advisor, LLMAdvisor
from hag.core.controller import HVACController
from hag.integrations.gateway import DeviceGateway, HomeAssistantGateway
from hag.integrations.llm import LLMProvider

logger = logging.getLogger(__name__)


def build_advisor(config: HagConfig, settings: Settings | None = None) -> Advisor | None:
    """Return an LLM advisor when AI is enabled and a key is available."""
    app = config.app_options
    if not app.use_ai:
        return None

    settings = settings or get_settings()
    openai_key = app.openai_api_key or settings.openai_api_key
    anthropic_key = settings.anthropic_api_key

    providers: list[LLMProvider] = []
    if openai_key:
        providers.append(
            LLMProvider("openai", openai_key, model=app.ai_model, temperature=app.ai_temperature)
        )
    if anthropic_key:
        providers.append(
            LLMProvider("anthropic", anthropic_key, temperature=app.ai_temperature)
        )

    if not providers:
        logger.warning("AI advisory enabled but no API key configured; continuing without it")
        return None

    primary, *fallbacks = providers
    primary.fallbacks = fallbacks
    logger.info(
        "AI advisory enabled (provider=%s, model=%s, fallbacks=%d)",
        primary.provider,
        primary.model,
        len(fallbacks),
    )
    return LLMAdvisor(primary, config.hvac_options)


@dataclass
class AppState:
    """Centralized application state container."""

    config: HagConfig
    gateway: DeviceGateway
    controller: HVACController
    startup_time: datetime | None = None
    is_healthy: bool = False

    @classmethod
    def build(
        cls,
        config: HagConfig,
        *,
        settings: Settings | None = None,
        gateway: DeviceGateway | None = None,
        advisor: Advisor | None = None,
        monitor_interval: float | None = None,
    ) -> AppState:
        gateway = gateway or HomeAssistantGateway(config.hass_options)
        if advisor is None:
            advisor = build_advisor(config, settings)
        interval = (
            monitor_interval
            if monitor_interval is not None
            else config.hass_options.state_check_interval / 1000
        )
        controller = HVACController(
            config.hvac_options,
            gateway,
            advisor=advisor,
            dry_run=config.app_options.dry_run,
            monitor_interval=interval,
        )
        return cls(config=config, gateway=gateway, controller=controller)

    async def start(self) -> None:
        await self.controller.start()
        self.startup_time = datetime.now(UTC)
        self.is_healthy = True

    async def close(self) -> None:
        self.is_healthy = False
        await self.controller.stop()


__all__ = ["AppState", "build_advisor"]

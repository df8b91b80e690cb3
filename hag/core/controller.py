"""HVAC controller: wires sensors, timers and the state machine to devices.

The controller owns the periodic monitor job, reacts to indoor sensor
changes, runs evaluate-and-execute and fans actuation out to every enabled
device.  Public entry points report failures as :class:`OperationResult`
instead of raising, except :meth:`HVACController.start`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]

from hag.config import HvacEntity, HvacOptions
from hag.core.advisor import Advisor, AdvisoryResult
from hag.core.context import is_reading
from hag.core.state_machine import HVACStateMachine, TransitionRecord
from hag.exceptions import HAGError, HVACOperationError, StateError, ValidationError
from hag.integrations.gateway import DeviceGateway, GatewayError, Reading
from hag.models.enums import HVACMode, MachineState
from hag.models.schemas import ControllerInfo, HVACStatus, OperationResult, StateMachineInfo

logger = logging.getLogger(__name__)

DEFAULT_OUTDOOR_TEMP = 20.0
DEFAULT_MONITOR_INTERVAL = 300.0

_EFFICIENCY_RECOMMENDATIONS = ["Monitor temperature trends", "Check for optimal scheduling"]


def resolve_hvac_mode(state: MachineState | None) -> HVACMode | None:
    """Map a machine state onto the device mode it implies."""
    if state in (MachineState.heating, MachineState.defrosting):
        return HVACMode.heat
    if state == MachineState.cooling:
        return HVACMode.cool
    if state == MachineState.idle:
        return HVACMode.off
    return None


def parse_hvac_mode(action: str) -> HVACMode:
    """Parse an operator action (``heat``/``cool``/``off``, any case).

    Raises:
        ValidationError: For anything else.
    """
    try:
        return HVACMode(str(action).strip().lower())
    except ValueError as exc:
        raise ValidationError(
            f"Invalid HVAC action: {action!r} (expected heat, cool or off)",
            field="action",
            value=action,
        ) from exc


class HVACController:
    """Orchestrates one building's HVAC devices.

    Usage::

        controller = HVACController(options, gateway, dry_run=True)
        await controller.start()
        result = await controller.manual_override("heat", temperature=23)
        await controller.stop()
    """

    def __init__(
        self,
        options: HvacOptions,
        gateway: DeviceGateway,
        *,
        state_machine: HVACStateMachine | None = None,
        advisor: Advisor | None = None,
        dry_run: bool = False,
        monitor_interval: float = DEFAULT_MONITOR_INTERVAL,
        outdoor_fallback: float = DEFAULT_OUTDOOR_TEMP,
    ) -> None:
        self._options = options
        self._gateway = gateway
        self._machine = state_machine or HVACStateMachine(options)
        self._advisor = advisor
        self._dry_run = dry_run
        self._monitor_interval = monitor_interval
        self._outdoor_fallback = outdoor_fallback
        self._running = False
        self._scheduler: AsyncIOScheduler | None = None

        self._machine.add_listener(self._on_transition)
        if advisor is not None:
            advisor.bind(self._advisor_context)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    @property
    def ai_enabled(self) -> bool:
        return self._advisor is not None

    @property
    def state_machine(self) -> HVACStateMachine:
        return self._machine

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect, start the machine, subscribe, start monitoring, evaluate once.

        Raises:
            StateError: If already running or if any startup step fails.
        """
        if self._running:
            raise StateError("HVAC controller is already running")

        logger.info(
            "Starting HVAC controller (sensor=%s, mode=%s, entities=%d, dry_run=%s, ai=%s)",
            self._options.temp_sensor,
            self._options.system_mode,
            len(self._options.enabled_entities),
            self._dry_run,
            self.ai_enabled,
        )
        try:
            await self._gateway.connect()
            self._machine.start()
            self._gateway.subscribe(self._options.temp_sensor, self._on_sensor_change)
            self._scheduler = self._init_scheduler()
            self._scheduler.start()
            await self._perform_evaluation()
        except Exception as exc:
            logger.error("HVAC controller failed to start: %s", exc)
            await self.stop()
            raise StateError(f"Failed to start HVAC controller: {exc}") from exc

        self._running = True
        logger.info("HVAC controller started")

    async def stop(self) -> None:
        """Stop monitoring, stop the machine and disconnect. Never raises."""
        was_running = self._running
        self._running = False

        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)

        self._machine.stop()

        try:
            await self._gateway.disconnect()
        except Exception as exc:
            logger.warning("Error while disconnecting gateway: %s", exc)

        if was_running:
            logger.info("HVAC controller stopped")

    # ------------------------------------------------------------------
    # Sensor readings
    # ------------------------------------------------------------------

    async def _read_indoor(self) -> float:
        """Read the indoor sensor.

        Raises:
            GatewayError: If the read fails.
            ValidationError: If the value is not numeric.
        """
        reading = await self._gateway.get_reading(self._options.temp_sensor)
        if not is_reading(reading.value):
            raise ValidationError(
                f"Invalid indoor temperature from {reading.entity_id}: {reading.raw!r}",
                field=reading.entity_id,
                value=reading.raw,
            )
        assert reading.value is not None  # noqa: S101 - narrowed above
        return reading.value

    async def _read_outdoor(self) -> float:
        try:
            reading = await self._gateway.get_reading(self._options.outdoor_sensor)
        except Exception as exc:
            logger.warning(
                "Outdoor sensor %s unavailable (%s), using %.1f",
                self._options.outdoor_sensor,
                exc,
                self._outdoor_fallback,
            )
            return self._outdoor_fallback
        if not is_reading(reading.value):
            logger.warning(
                "Outdoor sensor %s reported %r, using %.1f",
                self._options.outdoor_sensor,
                reading.raw,
                self._outdoor_fallback,
            )
            return self._outdoor_fallback
        assert reading.value is not None  # noqa: S101 - narrowed above
        return reading.value

    async def _on_sensor_change(self, entity_id: str, reading: Reading | None) -> None:
        if not self._running:
            logger.debug("Ignoring %s change: controller not running", entity_id)
            return
        if entity_id != self._options.temp_sensor:
            return

        value = reading.value if reading is not None else None
        if not is_reading(value):
            logger.warning(
                "Ignoring invalid reading from %s: %r",
                entity_id,
                reading.raw if reading is not None else None,
            )
            return
        assert value is not None  # noqa: S101 - narrowed above

        outdoor = await self._read_outdoor()
        logger.debug("Indoor %s changed to %.1f (outdoor %.1f)", entity_id, value, outdoor)
        try:
            await self._machine.update_temperatures(value, outdoor)
            await self._evaluate_and_execute()
        except StateError:
            logger.debug("State machine stopped while handling %s change", entity_id)

    # ------------------------------------------------------------------
    # Monitoring and evaluation
    # ------------------------------------------------------------------

    def _init_scheduler(self) -> AsyncIOScheduler:
        scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
        )
        scheduler.add_job(
            self._monitor_tick,
            IntervalTrigger(seconds=self._monitor_interval),
            id="hvac_monitor",
            name="HVAC Monitor",
            replace_existing=True,
        )
        return scheduler

    @property
    def monitor_job(self) -> Any:
        """The scheduled monitor job, or ``None`` while stopped."""
        if self._scheduler is None:
            return None
        return self._scheduler.get_job("hvac_monitor")

    async def _monitor_tick(self) -> None:
        if not self._machine.running:
            return
        try:
            await self._perform_evaluation()
        except StateError:
            logger.debug("State machine stopped during monitoring run")
        except Exception:
            logger.exception("HVAC monitoring iteration failed")

    async def _perform_evaluation(self) -> bool:
        """Read both sensors, update the machine and evaluate.

        Returns ``False`` when the indoor read failed and the cycle was skipped.
        """
        try:
            indoor = await self._read_indoor()
        except (GatewayError, ValidationError) as exc:
            logger.warning("Skipping evaluation, indoor sensor unavailable: %s", exc)
            return False

        outdoor = await self._read_outdoor()
        await self._machine.update_temperatures(indoor, outdoor)
        await self._evaluate_and_execute()
        return True

    async def _evaluate_and_execute(self) -> None:
        before = self._machine.current_state
        after = await self._machine.evaluate_conditions()
        mode = resolve_hvac_mode(after)

        if mode is not None and (after != before or after == MachineState.manual_override):
            logger.info("Executing HVAC mode change %s -> %s (mode=%s)", before, after, mode)
            await self._execute_hvac_mode(mode)
        else:
            logger.debug("No action required (state=%s, mode=%s)", after, mode)

    async def _on_transition(self, record: TransitionRecord) -> None:
        # Transitions driven by events already go through evaluate-and-execute
        # or manual_override; only timer-driven ones need actuating here.
        if not record.timed or not self._running or record.previous == record.current:
            return
        mode = resolve_hvac_mode(record.current)
        if mode is None:
            return
        logger.info(
            "Timed transition %s -> %s, applying mode %s",
            record.previous,
            record.current,
            mode,
        )
        await self._execute_hvac_mode(mode)

    # ------------------------------------------------------------------
    # Actuation
    # ------------------------------------------------------------------

    async def _execute_hvac_mode(self, mode: HVACMode, target_temp: float | None = None) -> None:
        entities = self._options.enabled_entities
        if not entities:
            logger.warning("No enabled HVAC entities configured")
            return

        results = await asyncio.gather(
            *(self._control_entity(entity, mode, target_temp) for entity in entities)
        )
        if not self._machine.running:
            logger.debug("Discarding actuation results received after stop")
            return
        succeeded = sum(1 for ok in results if ok)
        logger.info("Applied mode %s to %d/%d entities", mode, succeeded, len(entities))

    async def _control_entity(
        self, entity: HvacEntity, mode: HVACMode, target_temp: float | None
    ) -> bool:
        temperature = target_temp if target_temp is not None else self._options.target_temperature(mode)
        preset = self._options.preset_for(mode)

        if self._dry_run:
            if mode == HVACMode.off:
                logger.info("[DRY RUN] Would set %s to %s", entity.entity_id, mode)
            else:
                logger.info(
                    "[DRY RUN] Would set %s to %s at %.1f (preset %s)",
                    entity.entity_id,
                    mode,
                    temperature,
                    preset,
                )
            return True

        try:
            await self._device_call("set_mode", entity.entity_id, self._gateway.set_mode, mode.value)
            if mode != HVACMode.off:
                await self._device_call(
                    "set_temperature", entity.entity_id, self._gateway.set_temperature, temperature
                )
                await self._device_call(
                    "set_preset", entity.entity_id, self._gateway.set_preset, preset
                )
        except HVACOperationError as exc:
            logger.error("Failed to control %s (mode=%s): %s", entity.entity_id, mode, exc.message)
            return False

        logger.debug("Controlled %s: mode=%s", entity.entity_id, mode)
        return True

    @staticmethod
    async def _device_call(
        operation: str, entity_id: str, call: Callable[[str, Any], Awaitable[None]], value: Any
    ) -> None:
        """Run one gateway write.

        Raises:
            HVACOperationError: Wrapping whatever the gateway raised.
        """
        try:
            await call(entity_id, value)
        except Exception as exc:
            raise HVACOperationError(
                f"{operation}({value!r}) failed on {entity_id}: {exc}",
                operation=operation,
                entity_id=entity_id,
            ) from exc

    # ------------------------------------------------------------------
    # Operator entry points
    # ------------------------------------------------------------------

    async def manual_override(
        self, action: str, *, temperature: float | None = None
    ) -> OperationResult:
        """Force *action* (heat/cool/off) until the override expires."""
        try:
            mode = parse_hvac_mode(action)
            if not self._running:
                raise StateError("HVAC controller is not running")

            await self._machine.manual_override(mode, temperature)
            await self._execute_hvac_mode(mode, temperature)
        except HAGError as exc:
            logger.warning("Manual override %r rejected: %s", action, exc.message)
            return OperationResult.fail(exc.message)
        except Exception as exc:
            logger.exception("Manual override %r failed", action)
            return OperationResult.fail(str(exc))

        data: dict[str, Any] = {"action": mode.value, "mode": mode.value}
        if temperature is not None:
            data["temperature"] = temperature

        if self._advisor is not None:
            advisor = self._advisor
            advice = await self._consult(
                "override", lambda: advisor.override(mode.value, {"temperature": temperature})
            )
            if advice is not None:
                data["advice"] = advice.text

        logger.info("Manual override applied: %s", data)
        return OperationResult.ok(data)

    async def trigger_evaluation(self) -> OperationResult:
        """Run one monitoring cycle now."""
        if not self._running:
            return OperationResult.fail("HVAC controller is not running")
        try:
            evaluated = await self._perform_evaluation()
        except Exception as exc:
            logger.exception("Manual evaluation failed")
            return OperationResult.fail(str(exc))
        if not evaluated:
            return OperationResult.fail("Indoor temperature unavailable")
        state = self._machine.current_state
        return OperationResult.ok(
            {"state": state, "hvac_mode": resolve_hvac_mode(state)},
        )

    def _advisor_context(self) -> dict[str, Any]:
        state = self._machine.current_state
        data: dict[str, Any] = {"state": state, "hvac_mode": resolve_hvac_mode(state)}
        if self._machine.running:
            data["conditions"] = self._machine.context.as_dict()
        return data

    async def _consult(
        self, label: str, ask: Callable[[], Awaitable[AdvisoryResult]]
    ) -> AdvisoryResult | None:
        """Ask the advisor; ``None`` when it fails or declines."""
        try:
            result = await ask()
        except Exception as exc:
            logger.warning("Advisor %s raised, continuing without it: %s", label, exc)
            return None
        if not result.success:
            logger.info("Advisor %s unsuccessful: %s", label, result.error)
            return None
        return result

    async def get_status(self) -> HVACStatus:
        state = self._machine.current_state
        conditions: dict[str, Any] | None = None
        override: dict[str, Any] | None = None
        if self._machine.running:
            machine_status = self._machine.get_status()
            conditions = machine_status.context.as_dict()
            if machine_status.override is not None:
                override = {
                    "mode": machine_status.override.mode,
                    "temperature": machine_status.override.temperature,
                    "started_at": machine_status.override.started_at.isoformat(),
                }
            system_mode = machine_status.system_mode
        else:
            system_mode = self._options.system_mode

        try:
            ha_connected = self._gateway.is_connected()
        except Exception:
            ha_connected = False

        status = HVACStatus(
            controller=ControllerInfo(
                running=self._running,
                ha_connected=ha_connected,
                temp_sensor=self._options.temp_sensor,
                system_mode=system_mode,
                ai_enabled=self.ai_enabled,
                dry_run=self._dry_run,
            ),
            state_machine=StateMachineInfo(
                current_state=state,
                hvac_mode=resolve_hvac_mode(state),
                conditions=conditions,
                override=override,
            ),
        )

        if self._advisor is not None:
            summary = await self._consult("status summary", self._advisor.summarize)
            if summary is not None:
                status.ai_analysis = summary.text

        return status

    async def evaluate_efficiency(self) -> OperationResult:
        if not self._running:
            return OperationResult.fail("HVAC controller is not running")

        if self._advisor is not None:
            result = await self._consult("efficiency evaluation", self._advisor.evaluate_efficiency)
            if result is not None:
                return OperationResult.ok(
                    {
                        "analysis": result.text,
                        "recommendations": result.recommendations,
                        "source": "ai",
                    }
                )
            logger.info("AI efficiency evaluation failed, using direct analysis")

        state = self._machine.current_state
        return OperationResult.ok(
            {
                "analysis": f"State machine mode: {state}",
                "recommendations": list(_EFFICIENCY_RECOMMENDATIONS),
                "source": "direct",
            }
        )


__all__ = [
    "DEFAULT_MONITOR_INTERVAL",
    "DEFAULT_OUTDOOR_TEMP",
    "HVACController",
    "parse_hvac_mode",
    "resolve_hvac_mode",
]

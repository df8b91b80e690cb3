"""Finite-state machine that owns the HVAC operating mode.

The machine is a declarative table of :class:`Transition` rows interpreted by
a small dispatcher.  Every mutation goes through :meth:`HVACStateMachine.send`,
which is serialized by an ``asyncio.Lock`` so guards always read a complete
context.  The transient ``evaluating`` state is resolved inside the same
critical section, so callers never observe it as the current state.

Timed transitions (periodic re-evaluation, defrost completion, override
expiry) are :class:`TimedTransition` rows.  Entering their source state
schedules a cancellable asyncio task; when it fires, the transition runs
under the same lock, unless the machine left the state in the meantime.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from hag.config import HvacOptions
from hag.core.context import HVACEvent, OperatingContext, OverrideInfo, is_weekday
from hag.core.strategies import Clock, CoolingStrategy, HeatingStrategy, local_now
from hag.exceptions import StateError, ValidationError
from hag.models.enums import EventType, HVACMode, MachineState, SystemMode

logger = logging.getLogger(__name__)

Guard = Callable[[OperatingContext], bool]
Action = Callable[[OperatingContext, HVACEvent], OperatingContext]

_DEFAULT_DEFROST_SECONDS = 300.0
_HISTORY_SIZE = 50


@dataclass(frozen=True, slots=True)
class Transition:
    """One row of the transition table. ``target=None`` means stay put."""

    source: MachineState
    event: EventType
    target: MachineState | None
    guard: Guard | None = None
    action: Action | None = None


@dataclass(frozen=True, slots=True)
class TimedTransition:
    """Transition taken when *source* has been held for *delay* seconds."""

    source: MachineState
    delay: float
    event: EventType
    target: MachineState
    action: Action | None = None


@dataclass(frozen=True, slots=True)
class MachineTimeouts:
    reevaluate: float = 300.0
    manual_override: float = 1800.0
    defrost: float | None = None  # None: policy duration_seconds


@dataclass(frozen=True, slots=True)
class TransitionRecord:
    previous: MachineState
    current: MachineState
    event: EventType
    timed: bool
    at: datetime


@dataclass(frozen=True, slots=True)
class MachineStatus:
    current_state: MachineState
    context: OperatingContext
    can_heat: bool
    can_cool: bool
    system_mode: SystemMode
    override: OverrideInfo | None = None


TransitionListener = Callable[[TransitionRecord], Awaitable[None] | None]


class HVACStateMachine:
    """Serialized HVAC mode state machine.

    Usage::

        machine = HVACStateMachine(options)
        machine.start()
        await machine.update_temperatures(19.5, 5.0)
        await machine.evaluate_conditions()
        machine.current_state  # MachineState.heating
        machine.stop()
    """

    def __init__(
        self,
        options: HvacOptions,
        *,
        heating_strategy: HeatingStrategy | None = None,
        cooling_strategy: CoolingStrategy | None = None,
        timeouts: MachineTimeouts | None = None,
        clock: Clock = local_now,
    ) -> None:
        self._options = options
        self._clock = clock
        self._heating = heating_strategy or HeatingStrategy(options, clock=clock)
        self._cooling = cooling_strategy or CoolingStrategy(options)
        self._timeouts = timeouts or MachineTimeouts()

        self._lock = asyncio.Lock()
        self._running = False
        self._state = MachineState.idle
        self._context = OperatingContext.initial(options.system_mode, clock())
        self._override: OverrideInfo | None = None
        self._timer: tuple[TimedTransition, asyncio.Task[None]] | None = None
        self._timer_epoch = 0
        self._history: deque[TransitionRecord] = deque(maxlen=_HISTORY_SIZE)
        self._listeners: list[TransitionListener] = []

        self._table = self._index(self._build_table())
        self._timed = {row.source: row for row in self._build_timed()}

    # ------------------------------------------------------------------
    # Transition table
    # ------------------------------------------------------------------

    def _build_table(self) -> list[Transition]:
        S, E = MachineState, EventType
        merge_rows = [
            Transition(state, event, None, action=action)
            for state in (S.idle, S.heating, S.cooling, S.manual_override)
            for event, action in (
                (E.update_temperatures, self._merge_temperatures),
                (E.update_conditions, self._merge_conditions),
            )
        ]
        return [
            Transition(S.idle, E.heat, S.heating, guard=self._can_heat),
            Transition(S.idle, E.cool, S.cooling, guard=self._can_cool),
            Transition(S.idle, E.auto_evaluate, S.evaluating),
            Transition(S.idle, E.manual_override, S.manual_override),
            Transition(S.heating, E.off, S.idle),
            Transition(S.heating, E.cool, S.cooling, guard=self._can_cool),
            Transition(S.heating, E.defrost_needed, S.defrosting, guard=self._can_defrost),
            Transition(S.heating, E.auto_evaluate, S.evaluating),
            Transition(S.heating, E.manual_override, S.manual_override),
            Transition(S.cooling, E.off, S.idle),
            Transition(S.cooling, E.heat, S.heating, guard=self._can_heat),
            Transition(S.cooling, E.auto_evaluate, S.evaluating),
            Transition(S.cooling, E.manual_override, S.manual_override),
            Transition(S.defrosting, E.off, S.idle),
            Transition(S.defrosting, E.defrost_complete, S.heating, action=self._complete_defrost),
            Transition(S.defrosting, E.manual_override, S.manual_override),
            Transition(S.manual_override, E.manual_override, S.manual_override),
            *merge_rows,
        ]

    def _build_timed(self) -> list[TimedTransition]:
        S, E = MachineState, EventType
        return [
            TimedTransition(S.heating, self._timeouts.reevaluate, E.auto_evaluate, S.evaluating),
            TimedTransition(S.cooling, self._timeouts.reevaluate, E.auto_evaluate, S.evaluating),
            TimedTransition(
                S.defrosting,
                self._defrost_duration(),
                E.defrost_complete,
                S.heating,
                action=self._complete_defrost,
            ),
            TimedTransition(
                S.manual_override, self._timeouts.manual_override, E.auto_evaluate, S.evaluating
            ),
        ]

    @staticmethod
    def _index(rows: Iterable[Transition]) -> dict[tuple[MachineState, EventType], list[Transition]]:
        table: dict[tuple[MachineState, EventType], list[Transition]] = {}
        for row in rows:
            table.setdefault((row.source, row.event), []).append(row)
        return table

    def _defrost_duration(self) -> float:
        if self._timeouts.defrost is not None:
            return self._timeouts.defrost
        defrost = self._options.heating.defrost
        return float(defrost.duration_seconds) if defrost else _DEFAULT_DEFROST_SECONDS

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _can_heat(self, ctx: OperatingContext) -> bool:
        if ctx.system_mode in (SystemMode.cool_only, SystemMode.off):
            return False
        if not ctx.has_temperatures:
            return False
        return self._heating.should_heat(ctx.conditions())

    def _can_cool(self, ctx: OperatingContext) -> bool:
        if ctx.system_mode in (SystemMode.heat_only, SystemMode.off):
            return False
        if not ctx.has_temperatures:
            return False
        return self._cooling.should_cool(ctx.conditions())

    # Automatic evaluation only acts in AUTO mode, unlike explicit HEAT/COOL
    # events which heat_only/cool_only also accept.
    def _should_auto_heat(self, ctx: OperatingContext) -> bool:
        if ctx.system_mode != SystemMode.auto or not ctx.has_temperatures:
            return False
        decision = self._heating.evaluate_heating(ctx.conditions())
        logger.debug("Auto-heat check: %s (%s)", decision.approved, decision.reason)
        return decision.approved

    def _should_auto_cool(self, ctx: OperatingContext) -> bool:
        if ctx.system_mode != SystemMode.auto or not ctx.has_temperatures:
            return False
        decision = self._cooling.evaluate_cooling(ctx.conditions())
        logger.debug("Auto-cool check: %s (%s)", decision.approved, decision.reason)
        return decision.approved

    def _can_defrost(self, ctx: OperatingContext) -> bool:
        if not ctx.has_temperatures:
            return False
        return self._heating.needs_defrost(ctx.conditions())

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _merge_temperatures(self, ctx: OperatingContext, event: HVACEvent) -> OperatingContext:
        now = self._clock()
        return ctx.merge(
            indoor_temp=event.indoor,
            outdoor_temp=event.outdoor,
            current_hour=now.hour,
            is_weekday=is_weekday(now),
        )

    def _merge_conditions(self, ctx: OperatingContext, event: HVACEvent) -> OperatingContext:
        try:
            return ctx.merge(**OperatingContext.coerce(**event.data))
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc), field="data", value=event.data) from exc

    def _complete_defrost(self, ctx: OperatingContext, event: HVACEvent) -> OperatingContext:
        logger.info("Defrost cycle completed")
        return ctx

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            raise StateError("State machine is already running", state=self._state)
        self._state = MachineState.idle
        self._context = OperatingContext.initial(self._options.system_mode, self._clock())
        self._override = None
        self._history.clear()
        self._running = True
        logger.info("HVAC state machine started (system_mode=%s)", self._context.system_mode)

    def stop(self) -> None:
        """Stop the machine and cancel any pending timed transition. Idempotent."""
        self._cancel_timer()
        if self._running:
            self._running = False
            logger.info("HVAC state machine stopped in state %s", self._state)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: TransitionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self, records: list[TransitionRecord]) -> None:
        """Report one step to listeners, collapsing the transient ``evaluating`` hop."""
        if not records:
            return
        first, last = records[0], records[-1]
        step = TransitionRecord(first.previous, last.current, last.event, last.timed, last.at)
        for listener in list(self._listeners):
            try:
                result = listener(step)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("State machine listener raised an exception")

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def send(self, event: HVACEvent) -> MachineState:
        """Process *event* and return the resulting state.

        Raises:
            StateError: If the machine is not running.
            ValidationError: If an ``UPDATE_CONDITIONS`` payload is invalid.
        """
        async with self._lock:
            if not self._running:
                raise StateError("State machine is not running")
            records = self._dispatch(event)
            state = self._state
        logger.debug("Event %s processed, state=%s", event.type, state)
        if records:
            await self._notify(records)
        return state

    def _dispatch(self, event: HVACEvent) -> list[TransitionRecord]:
        for row in self._table.get((self._state, event.type), ()):
            if row.guard is None or row.guard(self._context):
                break
        else:
            logger.debug("Event %s ignored in state %s", event.type, self._state)
            return []

        if row.action is not None:
            self._context = row.action(self._context, event)
        if row.target is None:
            return []

        records: list[TransitionRecord] = []
        self._enter(row.target, event, timed=False, records=records)
        return records

    def _enter(
        self,
        target: MachineState,
        event: HVACEvent,
        *,
        timed: bool,
        records: list[TransitionRecord],
    ) -> None:
        previous = self._state
        # Guards run before anything is committed; a failing guard leaves the
        # machine in its previous state.
        resolved = self._resolve_evaluation() if target == MachineState.evaluating else None
        self._cancel_timer()
        if previous == MachineState.manual_override:
            self._override = None

        self._state = target
        record = TransitionRecord(previous, target, event.type, timed, self._clock())
        self._history.append(record)
        records.append(record)
        logger.info(
            "HVAC state %s -> %s on %s (indoor=%s, outdoor=%s, system_mode=%s)",
            previous,
            target,
            event.type,
            self._context.indoor_temp,
            self._context.outdoor_temp,
            self._context.system_mode,
        )

        if resolved is not None:
            self._enter(resolved, event, timed=timed, records=records)
            return

        if target == MachineState.heating:
            logger.info(
                "Starting heating (target=%.1f, indoor=%s)",
                self._options.heating.temperature,
                self._context.indoor_temp,
            )
        elif target == MachineState.cooling:
            logger.info(
                "Starting cooling (target=%.1f, indoor=%s)",
                self._options.cooling.temperature,
                self._context.indoor_temp,
            )
        elif target == MachineState.defrosting:
            started = self._heating.start_defrost()
            self._context = self._context.merge(last_defrost_at=started)
        elif target == MachineState.manual_override and event.mode is not None:
            self._override = OverrideInfo(event.mode, event.temperature, self._clock())
            logger.info(
                "Manual override activated: mode=%s temperature=%s",
                event.mode,
                event.temperature,
            )

        self._schedule_timer(target)

    def _resolve_evaluation(self) -> MachineState:
        if self._should_auto_heat(self._context):
            return MachineState.heating
        if self._should_auto_cool(self._context):
            return MachineState.cooling
        return MachineState.idle

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _schedule_timer(self, state: MachineState) -> None:
        row = self._timed.get(state)
        if row is None:
            return
        self._timer_epoch += 1
        task = asyncio.get_running_loop().create_task(
            self._fire_after(row, self._timer_epoch), name=f"hvac-timer-{state}"
        )
        self._timer = (row, task)
        logger.debug("Scheduled %s -> %s in %.0fs", row.source, row.target, row.delay)

    def _cancel_timer(self) -> None:
        self._timer_epoch += 1
        timer, self._timer = self._timer, None
        if timer is None:
            return
        _, task = timer
        if not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _fire_after(self, row: TimedTransition, epoch: int) -> None:
        await asyncio.sleep(row.delay)
        async with self._lock:
            if not self._running or epoch != self._timer_epoch or self._state != row.source:
                logger.debug("Discarding stale timer for %s", row.source)
                return
            logger.info("Timed transition after %.0fs in %s", row.delay, row.source)
            event = HVACEvent(row.event)
            if row.action is not None:
                self._context = row.action(self._context, event)
            records: list[TransitionRecord] = []
            self._enter(row.target, event, timed=True, records=records)
        await self._notify(records)

    @property
    def pending_timer(self) -> TimedTransition | None:
        """The timed transition currently armed, if any."""
        if self._timer is None:
            return None
        row, task = self._timer
        return None if task.done() else row

    # ------------------------------------------------------------------
    # Queries and convenience senders
    # ------------------------------------------------------------------

    @property
    def current_state(self) -> MachineState | None:
        """Current state, or ``None`` while stopped."""
        return self._state if self._running else None

    @property
    def context(self) -> OperatingContext:
        if not self._running:
            raise StateError("State machine is not running")
        return self._context

    @property
    def override(self) -> OverrideInfo | None:
        return self._override

    @property
    def history(self) -> list[TransitionRecord]:
        return list(self._history)

    async def update_temperatures(self, indoor: float, outdoor: float) -> MachineState:
        return await self.send(HVACEvent.update_temperatures(indoor, outdoor))

    async def evaluate_conditions(self) -> MachineState:
        return await self.send(HVACEvent.auto_evaluate())

    async def manual_override(
        self, mode: HVACMode | str, temperature: float | None = None
    ) -> MachineState:
        return await self.send(HVACEvent.manual_override(HVACMode(mode), temperature))

    def get_status(self) -> MachineStatus:
        ctx = self.context
        return MachineStatus(
            current_state=self._state,
            context=ctx,
            can_heat=ctx.system_mode not in (SystemMode.cool_only, SystemMode.off),
            can_cool=ctx.system_mode not in (SystemMode.heat_only, SystemMode.off),
            system_mode=ctx.system_mode,
            override=self._override,
        )


__all__ = [
    "HVACStateMachine",
    "MachineStatus",
    "MachineTimeouts",
    "TimedTransition",
    "Transition",
    "TransitionListener",
    "TransitionRecord",
]

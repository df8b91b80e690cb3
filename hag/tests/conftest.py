import sys
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

BASE_DIR = Path(__file__).resolve().parents[2]
if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))

from hag.api.main import create_app  # noqa: E402
from hag.app_state import AppState  # noqa: E402
from hag.config import HagConfig, HvacOptions  # noqa: E402
from hag.core.controller import HVACController  # noqa: E402
from hag.core.state_machine import HVACStateMachine, MachineTimeouts  # noqa: E402
from hag.tests.fakes import (  # noqa: E402
    INDOOR,
    MONDAY_10AM,
    OUTDOOR,
    FakeGateway,
    make_hvac_options,
)


@pytest.fixture
def hvac_options() -> HvacOptions:
    return make_hvac_options()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: MONDAY_10AM


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway({INDOOR: 19.5, OUTDOOR: 5.0})


@pytest.fixture
def fast_timeouts() -> MachineTimeouts:
    return MachineTimeouts(reevaluate=0.05, manual_override=0.05, defrost=0.05)


@pytest.fixture
async def machine(
    hvac_options: HvacOptions, clock: Callable[[], datetime]
) -> AsyncGenerator[HVACStateMachine]:
    machine = HVACStateMachine(hvac_options, clock=clock)
    yield machine
    machine.stop()


@pytest.fixture
async def fast_machine(
    hvac_options: HvacOptions, clock: Callable[[], datetime], fast_timeouts: MachineTimeouts
) -> AsyncGenerator[HVACStateMachine]:
    machine = HVACStateMachine(hvac_options, timeouts=fast_timeouts, clock=clock)
    yield machine
    machine.stop()


@pytest.fixture
async def controller(
    hvac_options: HvacOptions, gateway: FakeGateway, machine: HVACStateMachine
) -> AsyncGenerator[HVACController]:
    ctrl = HVACController(hvac_options, gateway, state_machine=machine, monitor_interval=3600)
    yield ctrl
    await ctrl.stop()


@pytest.fixture
def hag_config(hvac_options: HvacOptions) -> HagConfig:
    return HagConfig(hvac_options=hvac_options)


@pytest.fixture
async def app_state(
    hag_config: HagConfig, gateway: FakeGateway, machine: HVACStateMachine
) -> AsyncGenerator[AppState]:
    ctrl = HVACController(
        hag_config.hvac_options, gateway, state_machine=machine, monitor_interval=3600
    )
    state = AppState(config=hag_config, gateway=gateway, controller=ctrl)
    yield state
    await state.close()


@pytest.fixture
async def client(app_state: AppState) -> AsyncGenerator[AsyncClient]:
    app = create_app(app_state)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

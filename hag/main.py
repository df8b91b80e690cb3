"""Command-line entry point for HAG.

Commands::

    hag run [--api]                  run the controller until SIGINT/SIGTERM
    hag validate                     check the configuration file
    hag status                       start briefly and print the status
    hag override ACTION [-t TEMP]    force heat/cool/off
    hag evaluate                     print an efficiency evaluation
    hag env                          show interpreter, settings and config path
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import platform
import signal
import sys
from collections.abc import Awaitable, Callable, Sequence

from hag.app_state import AppState
from hag.config import (
    HagConfig,
    Settings,
    find_config_file,
    get_settings,
    load_config,
    validate_config_file,
)
from hag.exceptions import HAGError
from hag.models.enums import LogLevel
from hag.models.schemas import HVACStatus, OperationResult

logger = logging.getLogger(__name__)

_NOISY_LOGGERS = ("httpx", "httpcore", "websockets", "LiteLLM", "apscheduler", "uvicorn.access")
_SECRET_FIELDS = frozenset({"home_assistant_token", "openai_api_key", "anthropic_api_key"})


def configure_logging(level: LogLevel | str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hag",
        description="HAG - Home Assistant aGentic HVAC automation",
    )
    parser.add_argument("-c", "--config", help="Configuration file path")
    parser.add_argument(
        "--log-level",
        choices=[level.value for level in LogLevel],
        help="Override the configured log level",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Log device commands instead of sending them",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run HVAC automation")
    run.add_argument("--api", action="store_true", help="Also serve the HTTP control API")

    sub.add_parser("validate", help="Validate the configuration file")
    sub.add_parser("status", help="Print the system status")

    override = sub.add_parser("override", help="Manual HVAC override")
    override.add_argument("action", help="HVAC action (heat, cool, off)")
    override.add_argument("-t", "--temperature", type=float, help="Target temperature")

    sub.add_parser("evaluate", help="Evaluate system efficiency")
    sub.add_parser("env", help="Show environment information")
    return parser


def _load(args: argparse.Namespace, settings: Settings) -> HagConfig:
    config = load_config(find_config_file(args.config, settings), settings)
    if args.dry_run:
        config = config.model_copy(
            update={"app_options": config.app_options.model_copy(update={"dry_run": True})}
        )
    return config


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_validate(args: argparse.Namespace, settings: Settings) -> int:
    path = find_config_file(args.config, settings)
    valid, errors, config = validate_config_file(path, settings)
    if not valid or config is None:
        print(f"Configuration validation failed: {path}")
        for error in errors:
            print(f"   Error: {error}")
        return 1

    hvac = config.hvac_options
    print(f"Configuration is valid: {path}")
    print(f"   Log level: {config.app_options.log_level}")
    print(f"   AI enabled: {config.app_options.use_ai}")
    print(f"   Temperature sensor: {hvac.temp_sensor}")
    print(f"   System mode: {hvac.system_mode}")
    print(f"   HVAC entities: {len(hvac.hvac_entities)}")
    return 0


def cmd_env(args: argparse.Namespace, settings: Settings) -> int:
    path = find_config_file(args.config, settings)
    print("\nEnvironment Information")
    print("=" * 27)
    print(f"Python: {platform.python_version()} ({sys.executable})")
    print(f"Platform: {platform.system()} {platform.release()} ({platform.machine()})")
    print(f"Config file: {path}{'' if path.is_file() else ' (not found)'}")
    print("Settings:")
    for name, value in settings.model_dump().items():
        if name in _SECRET_FIELDS and value:
            value = "***"
        print(f"   {name}: {value}")
    return 0


async def _run(state: AppState, *, api: bool, settings: Settings) -> None:
    if api:
        import uvicorn

        from hag.api.main import create_app

        server = uvicorn.Server(
            uvicorn.Config(
                create_app(state),
                host=settings.host,
                port=settings.port,
                log_config=None,
            )
        )
        await server.serve()
        return

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await state.start()
    logger.info("HAG is running, press Ctrl+C to stop")
    try:
        await stop.wait()
    finally:
        logger.info("Shutdown signal received")
        await state.close()


async def _with_controller[T](
    state: AppState, action: Callable[[AppState], Awaitable[T]]
) -> T:
    await state.start()
    try:
        return await action(state)
    finally:
        await state.close()


def print_status(status: HVACStatus) -> None:
    controller, machine = status.controller, status.state_machine
    print("\nHAG System Status")
    print("=" * 30)
    print(f"Controller Running: {controller.running}")
    print(f"HA Connected: {controller.ha_connected}")
    print(f"Temperature Sensor: {controller.temp_sensor}")
    print(f"System Mode: {controller.system_mode}")
    print(f"AI Enabled: {controller.ai_enabled}")
    print(f"\nState Machine: {machine.current_state}")
    if machine.hvac_mode is not None:
        print(f"HVAC Mode: {machine.hvac_mode}")
    conditions = machine.conditions or {}
    if conditions.get("indoor_temp") is not None:
        print(f"Indoor Temp: {conditions['indoor_temp']}°C")
    if conditions.get("outdoor_temp") is not None:
        print(f"Outdoor Temp: {conditions['outdoor_temp']}°C")
    if status.ai_analysis:
        print(f"\nAI Analysis:\n{status.ai_analysis}")


def print_result(title: str, result: OperationResult) -> int:
    if not result.success:
        print(f"{title} failed: {result.error}")
        return 1
    print(f"{title} successful")
    for key, value in (result.data or {}).items():
        if isinstance(value, list):
            print(f"   {key}:")
            for item in value:
                print(f"     - {item}")
        else:
            print(f"   {key}: {value}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    configure_logging(args.log_level or settings.log_level or LogLevel.info)

    if args.command == "validate":
        return cmd_validate(args, settings)
    if args.command == "env":
        return cmd_env(args, settings)

    try:
        config = _load(args, settings)
    except HAGError as exc:
        logger.error("%s", exc.message)
        return 1

    if not args.log_level and not settings.log_level:
        configure_logging(config.app_options.log_level)

    state = AppState.build(config, settings=settings)

    try:
        if args.command == "run":
            asyncio.run(_run(state, api=args.api, settings=settings))
            return 0
        if args.command == "status":
            status = asyncio.run(_with_controller(state, lambda s: s.controller.get_status()))
            print_status(status)
            return 0
        if args.command == "override":
            result = asyncio.run(
                _with_controller(
                    state,
                    lambda s: s.controller.manual_override(
                        args.action, temperature=args.temperature
                    ),
                )
            )
            return print_result(f"Manual override {args.action}", result)
        if args.command == "evaluate":
            result = asyncio.run(
                _with_controller(state, lambda s: s.controller.evaluate_efficiency())
            )
            return print_result("Efficiency evaluation", result)
    except HAGError as exc:
        logger.error("%s", exc.message)
        return 1
    except KeyboardInterrupt:
        return 130

    return 2


if __name__ == "__main__":
    sys.exit(main())

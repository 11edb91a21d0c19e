import argparse
import asyncio
import logging
import signal
import sys

from live_transcriber.config import TranscriberConfig, load_env_file
from live_transcriber.domain.controller import SessionController
from live_transcriber.log_format import ColoredFormatter
from live_transcriber.ports.control import ControlCommand

CLIENT_COMMANDS = ("toggle", "start", "stop", "status", "settings")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stream live audio to a transcription server")
    parser.add_argument("--server-url", help="WebSocket URL of the transcription server")
    parser.add_argument("--language", help="Language code sent to the server")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("toggle", help="Toggle transcription on/off")
    subparsers.add_parser("start", help="Start transcription")
    subparsers.add_parser("stop", help="Stop transcription")
    subparsers.add_parser("status", help="Query daemon status")

    # Separate dests so subcommand defaults don't overwrite the global options.
    settings_parser = subparsers.add_parser("settings", help="Update settings for the next session")
    settings_parser.add_argument("--server-url", dest="settings_server_url", help="New server URL")
    settings_parser.add_argument("--language", dest="settings_language", help="New language code")
    settings_parser.add_argument("--auto-start", action=argparse.BooleanOptionalAction, default=None)

    probe_parser = subparsers.add_parser("probe", help="Test the connection to the server")
    probe_parser.add_argument("url", nargs="?", help="Server URL (defaults to configured one)")

    return parser


def settings_payload(args: argparse.Namespace) -> dict:
    server_url = args.settings_server_url if args.settings_server_url is not None else args.server_url
    language = args.settings_language if args.settings_language is not None else args.language
    return {
        key: value
        for key, value in (
            ("server_url", server_url),
            ("language", language),
            ("auto_start", args.auto_start),
        )
        if value is not None
    }


def main() -> None:
    load_env_file()
    args = build_parser().parse_args()

    _configure_logging(args.verbose)

    config = TranscriberConfig()
    if args.server_url and args.command != "settings":
        config.server_url = args.server_url
    if args.language is not None and args.command != "settings":
        config.language = args.language

    if args.command in CLIENT_COMMANDS:
        asyncio.run(_run_client_command(args, config))
    elif args.command == "probe":
        sys.exit(asyncio.run(_run_probe(args, config)))
    else:
        asyncio.run(_run_daemon(config))


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler()
    if sys.stderr.isatty():
        handler.setFormatter(ColoredFormatter(datefmt="%H:%M:%S"))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s", datefmt="%H:%M:%S")
        )
    logging.basicConfig(level=log_level, handlers=[handler])
    logging.getLogger("websockets").setLevel(logging.INFO if verbose else logging.WARNING)


def _add_file_logging(log_file: str) -> None:
    if not log_file:
        return
    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    logging.getLogger().addHandler(file_handler)


async def _run_client_command(args: argparse.Namespace, config: TranscriberConfig) -> None:
    from live_transcriber.adapters.unix_control import UnixSocketControlClient

    client = UnixSocketControlClient(socket_path=config.socket_path)

    payload = settings_payload(args) if args.command == "settings" else None

    try:
        result = await client.send_command(args.command, payload)
        print(f"{result}")
    except ConnectionRefusedError:
        print("live-transcriber is not running", file=sys.stderr)
        sys.exit(1)
    except FileNotFoundError:
        print("live-transcriber is not running", file=sys.stderr)
        sys.exit(1)


async def _run_probe(args: argparse.Namespace, config: TranscriberConfig) -> int:
    from live_transcriber.adapters.websocket_connection import probe_connection
    from live_transcriber.domain.settings import normalize_server_url

    url = normalize_server_url(args.url or config.server_url)
    print(f"Connecting to {url}...")
    if await probe_connection(url, timeout=config.probe_timeout_s):
        print("Connected successfully")
        return 0
    print("Connection failed", file=sys.stderr)
    return 1


async def handle_command(controller: SessionController, command: ControlCommand) -> dict:
    if command.action == "toggle":
        await controller.toggle()
    elif command.action == "start":
        await controller.start()
    elif command.action == "stop":
        await controller.stop()
    elif command.action == "settings":
        payload = command.payload or {}
        controller.update_settings(
            controller.settings.with_updates(
                server_url=payload.get("server_url"),
                language=payload.get("language"),
                auto_start=payload.get("auto_start"),
            )
        )
    elif command.action != "status":
        return {"error": f"unknown action '{command.action}'"}

    return {
        "state": controller.state.name,
        "connected": controller.get_connection_state()["connected"],
        "server_url": controller.settings.server_url,
        "language": controller.settings.language,
    }


async def _run_daemon(config: TranscriberConfig) -> None:
    from live_transcriber.adapters.console_view import ConsoleTranscriptView
    from live_transcriber.factory import create_app
    from live_transcriber.health import has_critical_failures, run_startup_checks

    _add_file_logging(config.log_file)

    results = await run_startup_checks(config)
    if has_critical_failures(results):
        logging.error("Critical health check failures, aborting startup")
        sys.exit(1)

    controller, control = create_app(config)
    view = ConsoleTranscriptView()
    view.attach(controller.sink)

    shutdown_event = asyncio.Event()
    shutdown_triggered = False

    def handle_signal() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            logging.warning("Forced exit")
            sys.exit(1)
        shutdown_triggered = True
        logging.info("Shutting down...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    await control.start()

    async def serve(cmd: ControlCommand) -> None:
        try:
            cmd.respond(await handle_command(controller, cmd))
        except Exception as exc:
            logging.exception("Control command %s failed", cmd.action)
            cmd.respond({"error": str(exc)})

    # A start waiting on a permission prompt must not block a later stop.
    pending: set[asyncio.Task] = set()

    async def control_loop() -> None:
        async for cmd in control.commands():
            task = asyncio.create_task(serve(cmd))
            pending.add(task)
            task.add_done_callback(pending.discard)

    control_task = asyncio.create_task(control_loop())

    if controller.settings.auto_start:
        logging.info("Auto-start enabled, starting transcription")
        await controller.start()

    try:
        await shutdown_event.wait()
    finally:
        control_task.cancel()
        try:
            await asyncio.wait_for(control_task, timeout=1.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
        await controller.stop()
        view.detach()
        await control.stop()


if __name__ == "__main__":
    main()

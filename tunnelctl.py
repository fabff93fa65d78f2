"""
One-shot tunnel commands.

`tunnelctl cycle` is the scheduled-task mode: it asks the running daemon to
evaluate and runs a single cycle locally only when no daemon answers. The
other commands hand off the same way.

Exit codes: 0 success, 1 failure, 2 service not installed, 3 elevation declined.
"""

import argparse
import json
import sys
from typing import Callable, Optional

import httpx

from api.client import DaemonClient, DaemonResponse, DaemonUnavailableError
from core.config import Config, get_config
from core.context import AppContext, build_context
from core.logger import get_logger, setup_logging
from modules.tunnel.exceptions import ElevationDeclinedError, ServiceNotInstalledError, TunnelError

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_INSTALLED = 2
EXIT_ELEVATION_DECLINED = 3

ERROR_CODE_EXITS = {
    "service_not_installed": EXIT_NOT_INSTALLED,
    "elevation_declined": EXIT_ELEVATION_DECLINED,
}


def exit_code_for_error(exc: TunnelError) -> int:
    if isinstance(exc, ServiceNotInstalledError):
        return EXIT_NOT_INSTALLED
    if isinstance(exc, ElevationDeclinedError):
        return EXIT_ELEVATION_DECLINED
    return EXIT_FAILED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tunnelctl", description="Control the auto-managed VPN tunnel")
    parser.add_argument("--local", action="store_true", help="Do not hand off to a running daemon")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("cycle", help="Run one evaluation cycle (scheduled-task mode)")
    subparsers.add_parser("status", help="Show tunnel and network status")
    subparsers.add_parser("start", help="Start the tunnel and clear the manual override")
    subparsers.add_parser("stop", help="Stop the tunnel and disable auto-start")
    install = subparsers.add_parser("install", help="Install the tunnel service")
    install.add_argument("--config", dest="config_path", help="WireGuard config (defaults to TUNNEL_CONFIG_PATH)")
    subparsers.add_parser("uninstall", help="Remove the tunnel service")
    return parser


def _print(data: dict, as_json: bool):
    if as_json:
        print(json.dumps(data, indent=2, default=str))
        return
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, default=str)
        print(f"{key:22} {value}")


def run_remote(client: DaemonClient, args) -> int:
    """
    Run the command on the daemon.

    Raises:
        DaemonUnavailableError: If the daemon did not answer
    """
    if args.command == "cycle":
        response = client.evaluate("task")
    elif args.command == "status":
        response = client.status()
    elif args.command == "start":
        response = client.start()
    elif args.command == "stop":
        response = client.stop()
    elif args.command == "install":
        response = client.install(args.config_path)
    else:
        response = client.uninstall()

    return _report_response(response, args)


def _report_response(response: DaemonResponse, args) -> int:
    if response.ok:
        if args.command == "cycle" and not response.body.get("evaluated"):
            print("A cycle is already running in the daemon; nothing to do.")
            return EXIT_OK
        _print(response.body, args.json)
        return EXIT_OK

    print(f"❌ {response.error_message}", file=sys.stderr)
    return ERROR_CODE_EXITS.get(response.error_code, EXIT_FAILED)


def run_local(context: AppContext, args) -> int:
    """Run the command in this process."""
    engine = context.engine

    if args.command == "cycle":
        engine.ensure_status_record()
        outcome = engine.evaluate("task")
        if outcome is None:
            print("❌ Evaluation cycle failed; see the log for details.", file=sys.stderr)
            return EXIT_FAILED
        _print(outcome.to_dict(), args.json)
        return EXIT_OK

    if args.command == "status":
        _print(engine.status_report(), args.json)
        return EXIT_OK

    try:
        if args.command == "start":
            result = engine.manual_start(interactive=True)
        elif args.command == "stop":
            result = engine.manual_stop(interactive=True)
        elif args.command == "install":
            result = engine.install(args.config_path, interactive=True)
        else:
            result = engine.uninstall(interactive=True)
    except TunnelError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return exit_code_for_error(e)

    _print(result.to_dict(), args.json)
    return EXIT_OK


def main(
    argv=None,
    client_factory: Callable[[Config], Optional[DaemonClient]] = DaemonClient.discover,
    context_factory: Callable[..., AppContext] = build_context,
) -> int:
    args = build_parser().parse_args(argv)

    config = get_config()
    setup_logging(
        log_level=config.log_level,
        log_file=config.log_file,
        role="tunnelctl",
        console_stream=sys.stderr
    )

    client = None if args.local else client_factory(config)
    if client is not None:
        try:
            return run_remote(client, args)
        except DaemonUnavailableError:
            logger.info("Daemon unavailable, running locally", command=args.command)
        except httpx.HTTPError as e:
            print(f"❌ Request to daemon failed: {e}", file=sys.stderr)
            return EXIT_FAILED
        finally:
            client.close()

    return run_local(context_factory(get_config, with_scheduler=False), args)


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import yaml

from .api import ProcessingApiClient
from .app_logging import log_with_fields, redacted, setup_logger
from .cancel import CancelToken
from .config import AppConfig, has_minimum_credentials, load_config
from .coordinator import JobCoordinator
from .errors import TransferError
from .models import Done, Failed, Idle, Ready, Running, describe_state
from .remote import TransferTransport

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="transferjob",
        description="Clean the SFTP root, upload one file and wait for remote processing",
    )
    parser.add_argument("--config", required=True, help="Path to transferjob YAML config")
    parser.add_argument("--verbose", action="store_true", help="Log debug output to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Run the full transfer job for one file")
    upload.add_argument("path", help="Local file to transfer")

    subparsers.add_parser("check", help="Test the SFTP connection and login")
    subparsers.add_parser("show-config", help="Print effective settings with secrets redacted")
    return parser


def _build_runtime(config: AppConfig, logger: logging.Logger) -> JobCoordinator:
    transport = TransferTransport(connect_timeout=config.network.connect_timeout_seconds)
    api = ProcessingApiClient(
        request_timeout=config.api.request_timeout_seconds,
        poll_interval=config.poll.interval_seconds,
        max_attempts=config.poll.max_attempts,
    )
    return JobCoordinator(transport, api, logger)


def _print_new_lines(coordinator: JobCoordinator, printed: int) -> int:
    for line in coordinator.status_log[printed:]:
        print(line)
    return len(coordinator.status_log)


def cmd_upload(config: AppConfig, path: Path, logger: logging.Logger) -> int:
    settings = config.snapshot()
    if not has_minimum_credentials(settings):
        print("settings incomplete: host, username, password, API URL and token are required", file=sys.stderr)
        return EXIT_USAGE

    coordinator = _build_runtime(config, logger)
    coordinator.accept_file(path)
    coordinator.start(path, settings)

    printed = 0
    last_percent = -1
    try:
        while coordinator.is_busy:
            coordinator.process_events(block=True, timeout=0.2)
            printed = _print_new_lines(coordinator, printed)
            state = coordinator.state
            if isinstance(state, Running):
                percent = int(state.progress * 100)
                if percent != last_percent:
                    print(f"  {state.phase.value:<10} {percent:3d}%", file=sys.stderr)
                    last_percent = percent
    except KeyboardInterrupt:
        coordinator.cancel()
        coordinator.join(timeout=5)
        log_with_fields(logger, logging.INFO, "shutdown", reason="keyboard_interrupt")

    _print_new_lines(coordinator, printed)
    state = coordinator.state
    if isinstance(state, Done):
        print(state.result_url)
        return EXIT_OK
    if isinstance(state, Failed):
        return EXIT_FAILED
    if isinstance(state, (Idle, Ready)):
        return EXIT_CANCELLED
    print(f"unexpected state: {describe_state(state)}", file=sys.stderr)
    return EXIT_FAILED


def cmd_check(config: AppConfig, logger: logging.Logger) -> int:
    settings = config.snapshot()
    transport = TransferTransport(connect_timeout=config.network.connect_timeout_seconds)
    cancel = CancelToken()
    try:
        transport.test_connection(settings.credentials(), cancel)
    except TransferError as exc:
        log_with_fields(logger, logging.WARNING, "connection_check_failed", error=str(exc))
        print(f"connection failed: {exc}", file=sys.stderr)
        return EXIT_FAILED
    except KeyboardInterrupt:
        cancel.cancel()
        return EXIT_CANCELLED
    print(f"connection ok: {settings.username}@{settings.host}:{settings.port}")
    return EXIT_OK


def cmd_show_config(config: AppConfig) -> int:
    settings = config.snapshot()
    print(f"sftp.host      {settings.host}")
    print(f"sftp.port      {settings.port}")
    print(f"sftp.username  {settings.username}")
    print(f"sftp.password  {redacted('password', settings.password)}")
    print(f"api.base_url   {settings.api_base_url}")
    print(f"api.token      {redacted('token', settings.api_token)}")
    print(f"poll           every {config.poll.interval_seconds}s, max {config.poll.max_attempts} attempts")
    print(f"log            {config.log or '(stderr only)'}")
    print(f"complete       {'yes' if has_minimum_credentials(settings) else 'no'}")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"invalid config: {exc}", file=sys.stderr)
        return EXIT_USAGE

    if args.command == "show-config":
        return cmd_show_config(config)

    logger = setup_logger(config.log, verbose=bool(args.verbose))
    if args.command == "upload":
        return cmd_upload(config, Path(args.path).expanduser(), logger)
    if args.command == "check":
        return cmd_check(config, logger)
    parser.error(f"Unknown command: {args.command}")
    return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

from . import __version__
from .client import ChatClient
from .config import (
    ClientRuntimeConfig,
    ConfigError,
    RelayRuntimeConfig,
    apply_config_data,
    load_toml,
    validate_config,
    write_default_config,
)
from .logging_config import configure_logging
from .paths import default_config_path, ensure_private_dir
from .service import RelayService, RelayStartupError
from .util import expand_path


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chatrelay", description="Run a chat relay server")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (optional; defaults apply if missing)",
    )
    p.add_argument(
        "--init-config",
        action="store_true",
        help="Write a default config file to --config and exit",
    )
    p.add_argument("--host", default=None, help="Address to listen on (default: 0.0.0.0)")
    p.add_argument("--port", type=int, default=None, help="TCP port (default: 8080)")
    p.add_argument(
        "--backlog", type=int, default=None, help="Pending connection queue length"
    )
    p.add_argument(
        "--recv-bufsize",
        type=int,
        default=None,
        help="Maximum bytes per read; each read is relayed as one message",
    )
    p.add_argument(
        "--send-timeout",
        type=float,
        default=None,
        help="Seconds a write may block before the peer is treated as failed (0 waits forever)",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )
    p.add_argument("--version", action="version", version=f"chatrelay {__version__}")

    return p


def _init_config(config_path: str) -> None:
    if os.path.exists(config_path):
        print(f"Config already exists: {config_path}", file=sys.stderr)
        raise SystemExit(1)

    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))
    write_default_config(config_path)
    print(f"Wrote default config: {config_path}", file=sys.stderr)
    raise SystemExit(0)


def build_config(args: argparse.Namespace) -> RelayRuntimeConfig:
    config_path = expand_path(str(args.config))
    cfg = RelayRuntimeConfig(config_path=config_path)

    if config_path and os.path.exists(config_path):
        cfg = apply_config_data(cfg, load_toml(config_path))

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.backlog is not None:
        cfg = replace(cfg, backlog=int(args.backlog))
    if args.recv_bufsize is not None:
        cfg = replace(cfg, recv_bufsize=int(args.recv_bufsize))
    if args.send_timeout is not None:
        cfg = replace(cfg, send_timeout_s=float(args.send_timeout))

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    validate_config(cfg)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    if args.init_config:
        _init_config(expand_path(str(args.config)))

    try:
        cfg = build_config(args)
    except (ConfigError, OSError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        raise SystemExit(2) from e
    except ValueError as e:
        # tomllib.TOMLDecodeError
        print(f"Cannot parse {args.config}: {e}", file=sys.stderr)
        raise SystemExit(2) from e

    configure_logging(cfg)

    svc = RelayService(cfg)
    try:
        svc.start()
    except RelayStartupError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(1) from e
    svc.run_forever()


def _build_client_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="chatrelay-client", description="Connect to a chat relay server"
    )
    p.add_argument("--host", default="127.0.0.1", help="Server address")
    p.add_argument("--port", type=int, default=8080, help="Server TCP port")
    p.add_argument("--name", default=None, help="Display name (prompted if omitted)")
    p.add_argument(
        "--log-level", default="WARNING", help="Logging level (diagnostics go to stderr)"
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Write diagnostics to this file instead of the terminal",
    )
    p.add_argument("--version", action="version", version=f"chatrelay {__version__}")
    return p


def build_client_config(args: argparse.Namespace) -> ClientRuntimeConfig:
    log_file = str(args.log_file) if args.log_file else None
    return ClientRuntimeConfig(
        host=str(args.host),
        port=int(args.port),
        log_level=str(args.log_level),
        # Log lines would tear through the chat display.
        log_console=log_file is None,
        log_file=log_file,
    )


def client_main(argv: list[str] | None = None) -> None:
    args = _build_client_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    ccfg = build_client_config(args)
    configure_logging(ccfg)

    client = ChatClient(ccfg)
    try:
        client.connect()
    except OSError as e:
        print(f"Connection failed! {e}", file=sys.stderr)
        raise SystemExit(1) from e

    if not client.register(args.name):
        client.close()
        return
    client.run()


if __name__ == "__main__":
    main()

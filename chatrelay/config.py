from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any

from .constants import (
    DEFAULT_BACKLOG,
    DEFAULT_HOST,
    DEFAULT_POLL_INTERVAL_S,
    DEFAULT_PORT,
    DEFAULT_SEND_TIMEOUT_S,
    PROMPT_USERNAME,
    QUIT_WORD,
    RECV_BUFSIZE,
)


class ConfigError(ValueError):
    """Raised when a configuration value is out of range."""


@dataclass(frozen=True)
class RelayRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    backlog: int = DEFAULT_BACKLOG
    recv_bufsize: int = RECV_BUFSIZE
    send_timeout_s: float = DEFAULT_SEND_TIMEOUT_S
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    prompt: str = PROMPT_USERNAME
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    log_datefmt: str | None = None


@dataclass(frozen=True)
class ClientRuntimeConfig:
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    recv_bufsize: int = RECV_BUFSIZE
    quit_word: str = QUIT_WORD
    log_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    log_datefmt: str | None = None


_LOGGING_KEYS = {
    "level": "log_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}

_OPTIONAL_STR_KEYS = ("log_file", "log_datefmt")


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: RelayRuntimeConfig, data: dict) -> RelayRuntimeConfig:
    """Overlay a parsed TOML document onto ``base``.

    The ``[relay]`` table is merged into the top level and the ``[logging]``
    table is mapped onto the ``log_*`` fields. Unknown keys are ignored.
    """
    relay = data.get("relay") if isinstance(data, dict) else None
    if isinstance(relay, dict):
        data = {**data, **relay}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped: dict[str, object] = {
            field: log_table.get(key)
            for key, field in _LOGGING_KEYS.items()
            if key in log_table
        }
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the file came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    for key in _OPTIONAL_STR_KEYS:
        if key in updates and updates[key] == "":
            updates[key] = None

    cfg = replace(base, **updates) if updates else base
    validate_config(cfg)
    return cfg


def validate_config(cfg: RelayRuntimeConfig) -> None:
    try:
        port = int(cfg.port)
        backlog = int(cfg.backlog)
        bufsize = int(cfg.recv_bufsize)
        send_timeout = float(cfg.send_timeout_s)
        poll_interval = float(cfg.poll_interval_s)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid numeric setting: {e}") from e

    if not 0 <= port <= 65535:
        raise ConfigError(f"port out of range: {port}")
    if backlog <= 0:
        raise ConfigError(f"backlog must be positive: {backlog}")
    if bufsize <= 0:
        raise ConfigError(f"recv_bufsize must be positive: {bufsize}")
    if send_timeout < 0:
        raise ConfigError(f"send_timeout_s must not be negative: {send_timeout}")
    if poll_interval <= 0:
        raise ConfigError(f"poll_interval_s must be positive: {poll_interval}")
    if not str(cfg.host).strip():
        raise ConfigError("host must not be empty")
    # bool("false") is True, so a quoted TOML value must not slip through.
    if not isinstance(cfg.log_console, bool):
        raise ConfigError(f"log_console must be true or false: {cfg.log_console!r}")
    for key in ("log_level", "log_format", "prompt"):
        if not isinstance(getattr(cfg, key), str):
            raise ConfigError(f"{key} must be a string: {getattr(cfg, key)!r}")


def default_config_document(cfg: RelayRuntimeConfig | None = None) -> Any:
    """Build a commented default config file as a tomlkit document."""
    from tomlkit import comment, document, nl, table

    cfg = cfg or RelayRuntimeConfig()

    doc = document()
    doc.add(comment("chatrelay configuration (TOML)"))
    doc.add(comment(""))
    doc.add(comment("Command line flags override anything set here."))
    doc.add(nl())

    relay = table()
    relay.add(comment("Address and port of the listening endpoint."))
    relay.add("host", cfg.host)
    relay.add("port", cfg.port)
    relay.add(comment("Pending connection queue length passed to listen()."))
    relay.add("backlog", cfg.backlog)
    relay.add(nl())
    relay.add(comment("Maximum bytes per read. Each read is relayed as one message."))
    relay.add("recv_bufsize", cfg.recv_bufsize)
    relay.add(comment("Seconds a single write may block before the peer is treated as failed."))
    relay.add("send_timeout_s", cfg.send_timeout_s)
    relay.add("poll_interval_s", cfg.poll_interval_s)
    relay.add(nl())
    relay.add(comment("Sent to every new connection before its name is read."))
    relay.add("prompt", cfg.prompt)
    doc.add("relay", relay)

    logging_tbl = table()
    logging_tbl.add("level", cfg.log_level)
    logging_tbl.add(comment("Log to stderr."))
    logging_tbl.add("console", cfg.log_console)
    logging_tbl.add(comment("Optional file path for logs (leave empty to disable)."))
    logging_tbl.add("file", cfg.log_file or "")
    logging_tbl.add("format", cfg.log_format)
    logging_tbl.add("datefmt", cfg.log_datefmt or "")
    doc.add("logging", logging_tbl)

    return doc


def write_default_config(path: str, cfg: RelayRuntimeConfig | None = None) -> None:
    from tomlkit import dumps

    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps(default_config_document(cfg)))

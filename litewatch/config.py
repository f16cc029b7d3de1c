"""Server settings and persisted viewer configuration."""

from __future__ import annotations

import logging
from pathlib import Path

import tomllib

from typing import Mapping

from pydantic import BaseModel, Field

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "litewatch" / "viewer.toml"

DEFAULT_PORT = 4000
DEFAULT_CANDIDATE_PORTS = (4000, 4001, 4002, 4003, 4004)


class ServerSettings(BaseModel):
    """Runtime settings for the sync server."""

    db_path: Path = Field(default_factory=lambda: Path.cwd() / "database.sqlite")
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    port_attempts: int = 10
    poll_interval: float = 1.0
    snapshot_limit: int = 100

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> ServerSettings:
        """Build settings from environment variables, ignoring malformed values."""

        data: dict[str, object] = {}
        db_path = environ.get("DB_PATH")
        if db_path:
            data["db_path"] = Path(db_path)
        host = environ.get("LITEWATCH_HOST")
        if host:
            data["host"] = host
        for key, field_name, caster in (
            ("PORT", "port", int),
            ("LITEWATCH_PORT_ATTEMPTS", "port_attempts", int),
            ("LITEWATCH_POLL_INTERVAL", "poll_interval", float),
        ):
            raw = environ.get(key)
            if raw is None:
                continue
            try:
                data[field_name] = caster(raw)
            except ValueError:
                LOG.warning("Ignoring malformed environment value", extra={"variable": key, "value": raw})
        return cls(**data)

    def candidate_ports(self) -> tuple[int, ...]:
        """Ports tried, in order, when binding the listener."""

        attempts = max(1, self.port_attempts)
        return tuple(range(self.port, self.port + attempts))


class ViewerConfig(BaseModel):
    """Shape of the viewer configuration file."""

    host: str = "localhost"
    candidate_ports: list[int] = Field(default_factory=lambda: list(DEFAULT_CANDIDATE_PORTS))
    last_port: int | None = None
    last_path: str | None = None

    def with_last_port(self, port: int) -> ViewerConfig:
        """Return a copy with the discovery seed port updated."""

        return self.model_copy(update={"last_port": port})

    def with_last_path(self, path: str) -> ViewerConfig:
        """Return a copy with the last observed database path updated."""

        return self.model_copy(update={"last_path": path})


def load_viewer_config() -> ViewerConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return ViewerConfig()
    except (tomllib.TOMLDecodeError, OSError):
        LOG.warning("Unreadable viewer config, using defaults", extra={"path": str(CONFIG_FILE)})
        return ViewerConfig()
    return ViewerConfig(**data)


def save_viewer_config(config: ViewerConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    ports = ", ".join(str(port) for port in config.candidate_ports)
    lines: list[str] = [
        f"host = {_toml_string(config.host)}",
        f"candidate_ports = [{ports}]",
    ]
    if config.last_port is not None:
        lines.append(f"last_port = {config.last_port}")
    if config.last_path:
        lines.append(f"last_path = {_toml_string(config.last_path)}")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if not isinstance(raw, dict):
        return data
    for key in ("host", "last_path"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    last_port = raw.get("last_port")
    if isinstance(last_port, int) and not isinstance(last_port, bool):
        data["last_port"] = last_port
    ports = raw.get("candidate_ports")
    if isinstance(ports, list):
        parsed = [port for port in ports if isinstance(port, int) and not isinstance(port, bool)]
        if parsed:
            data["candidate_ports"] = parsed
    return data


def _toml_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


__all__ = [
    "CONFIG_FILE",
    "DEFAULT_CANDIDATE_PORTS",
    "DEFAULT_PORT",
    "ServerSettings",
    "ViewerConfig",
    "load_viewer_config",
    "save_viewer_config",
]

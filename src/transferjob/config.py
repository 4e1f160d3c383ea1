from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

import yaml

from .models import SettingsSnapshot

DEFAULT_PASSWORD_ENV = "TRANSFERJOB_SFTP_PASSWORD"
DEFAULT_TOKEN_ENV = "TRANSFERJOB_UPLOAD_TOKEN"


@dataclass(slots=True)
class SftpConfig:
    host: str
    username: str
    port: int = 22
    password: str = field(default="", repr=False)
    password_env: str = DEFAULT_PASSWORD_ENV


@dataclass(slots=True)
class ApiConfig:
    base_url: str
    token: str = field(default="", repr=False)
    token_env: str = DEFAULT_TOKEN_ENV
    request_timeout_seconds: float = 30.0


@dataclass(slots=True)
class PollConfig:
    interval_seconds: float = 1.0
    max_attempts: int = 600


@dataclass(slots=True)
class NetworkConfig:
    connect_timeout_seconds: float = 15.0


@dataclass(slots=True)
class AppConfig:
    sftp: SftpConfig
    api: ApiConfig
    poll: PollConfig = field(default_factory=PollConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    log: Path | None = None

    def snapshot(self, environ: Mapping[str, str] | None = None) -> SettingsSnapshot:
        """Resolve secrets and freeze the settings for one attempt."""
        env = os.environ if environ is None else environ
        password = self.sftp.password or env.get(self.sftp.password_env, "")
        token = self.api.token or env.get(self.api.token_env, "")
        return SettingsSnapshot(
            host=self.sftp.host,
            port=self.sftp.port,
            username=self.sftp.username,
            password=password,
            api_base_url=self.api.base_url,
            api_token=token,
        )


def has_minimum_credentials(settings: SettingsSnapshot) -> bool:
    return (
        bool(settings.host.strip())
        and settings.port > 0
        and bool(settings.username.strip())
        and bool(settings.password)
        and bool(settings.api_base_url.strip())
        and bool(settings.api_token)
    )


def _require(mapping: dict, key: str, section: str) -> object:
    if key not in mapping:
        raise ValueError(f"Missing `{section}.{key}` in config")
    return mapping[key]


def _section(raw: dict, key: str, required: bool = False) -> dict:
    value = _require(raw, key, "root") if required else raw.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"`{key}` must be a mapping")
    return value


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path).expanduser().resolve()
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a mapping")

    sftp_raw = _section(raw, "sftp", required=True)
    api_raw = _section(raw, "api", required=True)
    poll_raw = _section(raw, "poll")
    network_raw = _section(raw, "network")

    sftp = SftpConfig(
        host=str(_require(sftp_raw, "host", "sftp")),
        username=str(_require(sftp_raw, "username", "sftp")),
        port=int(sftp_raw.get("port", 22)),
        password=str(sftp_raw.get("password", "") or ""),
        password_env=str(sftp_raw.get("password_env", DEFAULT_PASSWORD_ENV)),
    )
    if not 0 < sftp.port < 65536:
        raise ValueError("`sftp.port` must be between 1 and 65535")

    api = ApiConfig(
        base_url=str(_require(api_raw, "base_url", "api")),
        token=str(api_raw.get("token", "") or ""),
        token_env=str(api_raw.get("token_env", DEFAULT_TOKEN_ENV)),
        request_timeout_seconds=float(api_raw.get("request_timeout_seconds", 30)),
    )
    if api.request_timeout_seconds <= 0:
        raise ValueError("`api.request_timeout_seconds` must be > 0")

    poll = PollConfig(
        interval_seconds=float(poll_raw.get("interval_seconds", 1)),
        max_attempts=int(poll_raw.get("max_attempts", 600)),
    )
    if poll.interval_seconds < 0:
        raise ValueError("`poll.interval_seconds` must be >= 0")
    if poll.max_attempts < 1:
        raise ValueError("`poll.max_attempts` must be >= 1")

    network = NetworkConfig(
        connect_timeout_seconds=float(network_raw.get("connect_timeout_seconds", 15)),
    )
    if network.connect_timeout_seconds <= 0:
        raise ValueError("`network.connect_timeout_seconds` must be > 0")

    log_path: Path | None = None
    if raw.get("log"):
        log_path = Path(str(raw["log"])).expanduser()
        if not log_path.is_absolute():
            log_path = config_path.parent / log_path

    return AppConfig(sftp=sftp, api=api, poll=poll, network=network, log=log_path)

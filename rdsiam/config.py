"""Storage configuration loading helpers."""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from pathlib import Path
from typing import Any

import tomllib

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "rdsiam" / "config.toml"
ENV_PREFIX = "RDSIAM_"

# RDS tokens are valid for 15 minutes; refresh a minute early.
DEFAULT_TOKEN_REFRESH_INTERVAL = timedelta(minutes=14)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


class RDSIAMConfig(BaseModel):
    """AWS RDS IAM authentication settings for one database target."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = False
    region: str | None = None
    db_user: str | None = Field(default=None, alias="dbuser")
    token_refresh_interval: timedelta = Field(
        default=DEFAULT_TOKEN_REFRESH_INTERVAL,
        alias="tokenrefreshinterval",
    )

    @field_validator("region", "db_user", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("token_refresh_interval", mode="before")
    @classmethod
    def _parse_duration(cls, value: object) -> object:
        if isinstance(value, str):
            parsed = parse_duration(value)
            if parsed is not None:
                return parsed
        return value

    @field_validator("token_refresh_interval")
    @classmethod
    def _default_when_unset(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            return DEFAULT_TOKEN_REFRESH_INTERVAL
        return value


class SQLConfig(BaseModel):
    """SQL storage settings."""

    model_config = ConfigDict(frozen=True)

    # May contain user:password, so it is kept out of repr().
    connection: str = Field(default="", repr=False)
    rdsiam: RDSIAMConfig = Field(default_factory=RDSIAMConfig)


class StorageConfig(BaseSettings):
    """Shape of the configuration file; ``RDSIAM_*`` environment variables take precedence."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="_",
        frozen=True,
        extra="ignore",
    )

    sql: SQLConfig = Field(default_factory=SQLConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Values read from config.toml arrive as init kwargs.
        return env_settings, init_settings


def parse_duration(value: str) -> timedelta | None:
    """Parse Go-style durations such as ``14m``, ``1h30m`` or ``90s``.

    Returns ``None`` when ``value`` is not in that form so other formats
    (plain seconds, ISO 8601) fall through to pydantic.
    """

    text = value.strip()
    if not text or _DURATION_PART.sub("", text):
        return None
    seconds = sum(float(amount) * _DURATION_UNITS[unit] for amount, unit in _DURATION_PART.findall(text))
    return timedelta(seconds=seconds)


def load_config(path: Path | None = None) -> StorageConfig:
    """Load configuration from disk and the environment; fall back to defaults if missing."""

    config_path = path or CONFIG_FILE
    try:
        data = _read_config_file(config_path)
    except FileNotFoundError:
        data = {}
    except (tomllib.TOMLDecodeError, OSError) as exc:
        LOG.warning("Ignoring unreadable config file %s: %s", config_path, exc)
        data = {}

    return StorageConfig(**data)


def _read_config_file(path: Path) -> dict[str, Any]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, Any] = {}
    sql = raw.get("sql")
    if isinstance(sql, dict):
        parsed: dict[str, Any] = {}
        connection = sql.get("connection")
        if isinstance(connection, str):
            parsed["connection"] = connection
        rdsiam = sql.get("rdsiam")
        if isinstance(rdsiam, dict):
            parsed["rdsiam"] = {
                key: value
                for key, value in rdsiam.items()
                if key in ("enabled", "region", "dbuser", "tokenrefreshinterval")
            }
        data["sql"] = parsed
    return data


__all__ = [
    "CONFIG_FILE",
    "DEFAULT_TOKEN_REFRESH_INTERVAL",
    "ENV_PREFIX",
    "RDSIAMConfig",
    "SQLConfig",
    "StorageConfig",
    "load_config",
    "parse_duration",
]

"""
Client configuration.

Settings come from a named profile in ``configs/profiles.yaml`` with command
line values layered on top, and are validated by :class:`ClientConfig`.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

CONFIG_DIR = Path(__file__).resolve().parent / "configs"
PROFILES_PATH = CONFIG_DIR / "profiles.yaml"

DEFAULT_PROFILE = "default"
DEFAULT_SERVER_URL = "wss://webrtc.nirbheek.in:8443"


def _random_token() -> str:
    return str(random.randint(100000, 999999))


class ClientConfig(BaseModel):
    server_url: str = DEFAULT_SERVER_URL
    peer_id: str
    rtmp_uri: Optional[str] = None
    client_token: str = Field(default_factory=_random_token)
    verify_tls: bool = True
    stun_server: Optional[str] = None
    registration_timeout: float = Field(default=10.0, ge=0)
    answer_timeout: float = Field(default=30.0, ge=0)
    outbound_queue_size: int = Field(default=64, ge=1)
    engine_errors_fatal: bool = True
    incoming_video_width: int = Field(default=160, gt=0)
    incoming_video_height: int = Field(default=120, gt=0)
    log_level: str = "INFO"
    model_config = ConfigDict(extra="forbid")

    @field_validator("server_url")
    @classmethod
    def _check_server_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("ws://", "wss://")):
            raise ValueError("server_url must be a ws:// or wss:// URL")
        return value

    @field_validator("peer_id", "client_token", mode="before")
    @classmethod
    def _check_identifier(cls, value: object) -> str:
        text = str(value).strip() if value is not None else ""
        if not text or any(ch.isspace() for ch in text):
            raise ValueError("must be a non-empty token without whitespace")
        return text

    @field_validator("rtmp_uri", "stun_server", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("log_level", mode="before")
    @classmethod
    def _check_log_level(cls, value: object) -> str:
        level = str(value or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level '{value}'")
        return level


def load_profiles(path: Optional[Path] = None) -> Dict[str, dict]:
    target = Path(path) if path is not None else PROFILES_PATH
    try:
        with target.open("r", encoding="utf-8") as handle:
            profiles = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        if path is not None:
            raise ConfigError(f"profiles file not found: {target}") from None
        profiles = {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid profiles file {target}: {exc}") from exc
    if not isinstance(profiles, dict):
        raise ConfigError(f"profiles file {target} must contain a mapping of profiles")
    return profiles


def resolve_settings(
    profile: str = DEFAULT_PROFILE,
    *,
    path: Optional[Path] = None,
    overrides: Optional[Mapping[str, object]] = None,
) -> Dict[str, object]:
    """
    Merge the named profile with ``overrides``; ``None`` overrides are skipped.
    """

    profiles = load_profiles(path)
    if profile not in profiles and profile != DEFAULT_PROFILE:
        raise ConfigError(f"unknown profile '{profile}' (available: {', '.join(sorted(profiles)) or 'none'})")
    base = profiles.get(profile) or {}
    if not isinstance(base, dict):
        raise ConfigError(f"profile '{profile}' must be a mapping")

    settings: Dict[str, object] = dict(base)
    for key, value in (overrides or {}).items():
        if value is not None:
            settings[key] = value
    return settings


def build_config(settings: Mapping[str, object]) -> ClientConfig:
    try:
        return ClientConfig(**settings)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc


def load_config(
    profile: str = DEFAULT_PROFILE,
    *,
    path: Optional[Path] = None,
    overrides: Optional[Mapping[str, object]] = None,
) -> ClientConfig:
    return build_config(resolve_settings(profile, path=path, overrides=overrides))


__all__ = [
    "ClientConfig",
    "DEFAULT_SERVER_URL",
    "PROFILES_PATH",
    "build_config",
    "load_config",
    "load_profiles",
    "resolve_settings",
]

"""Tests covering profile loading and configuration validation."""

from pathlib import Path

import pytest

from sendrecv.config import ClientConfig, build_config, load_config, load_profiles, resolve_settings
from sendrecv.errors import ConfigError


@pytest.fixture
def profiles(tmp_path: Path) -> Path:
    path = tmp_path / "profiles.yaml"
    path.write_text(
        "default:\n"
        "  server_url: wss://signalling.test:8443\n"
        "lab:\n"
        "  server_url: ws://10.0.0.5:8443\n"
        "  peer_id: '4321'\n"
        "  answer_timeout: 5\n"
        "  rtmp_uri: ''\n",
        encoding="utf-8",
    )
    return path


def test_bundled_profiles_load() -> None:
    profiles = load_profiles()

    assert "default" in profiles
    assert profiles["default"]["server_url"].startswith("wss://")


def test_profile_with_overrides(profiles: Path) -> None:
    config = load_config("lab", path=profiles, overrides={"peer_id": "99", "log_level": None})

    assert config.server_url == "ws://10.0.0.5:8443"
    assert config.peer_id == "99"
    assert config.answer_timeout == 5
    assert config.rtmp_uri is None
    assert config.log_level == "INFO"


def test_defaults() -> None:
    config = ClientConfig(peer_id="1234")

    assert config.registration_timeout == 10.0
    assert config.answer_timeout == 30.0
    assert config.engine_errors_fatal is True
    assert config.client_token.isdigit() and len(config.client_token) == 6


def test_unknown_profile(profiles: Path) -> None:
    with pytest.raises(ConfigError):
        resolve_settings("staging", path=profiles)


def test_missing_profiles_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_profiles(tmp_path / "absent.yaml")


def test_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("default: [unterminated\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_profiles(path)


@pytest.mark.parametrize(
    "settings",
    [
        {"peer_id": "1234", "server_url": "https://signalling.test"},
        {"peer_id": "12 34"},
        {"peer_id": ""},
        {"peer_id": "1234", "answer_timeout": -1},
        {"peer_id": "1234", "log_level": "chatty"},
        {"peer_id": "1234", "colour": "blue"},
    ],
)
def test_invalid_settings(settings) -> None:
    with pytest.raises(ConfigError):
        build_config(settings)

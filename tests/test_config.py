"""Tests for settings and resource loading."""

from pathlib import Path

import pytest
from meterscraper import config
from meterscraper.errors import ConfigError
from meterscraper.models import TrackedResource

REQUIRED = {
    "GLOW_USERNAME": "user@example.com",
    "GLOW_PASSWORD": "secret",
    "INFLUX_HOST": "http://influx:8086",
    "INFLUX_TOKEN": "token",
    "INFLUX_ORG": "home",
    "INFLUX_BUCKET": "home",
}


def test_load_settings_defaults():
    settings = config.load_settings(dict(REQUIRED))

    assert settings.glow_username == "user@example.com"
    assert settings.influx_bucket == "home"
    assert settings.log_level == "INFO"
    assert settings.lookback_days == 8
    assert settings.catchup_grace_seconds == 300
    assert settings.skip_stored is False
    assert settings.resources_path is None


def test_load_settings_overrides():
    env = dict(
        REQUIRED,
        LOG_LEVEL="debug",
        LOOKBACK_DAYS="3",
        CATCHUP_GRACE_SECONDS="60",
        SKIP_STORED_READINGS="yes",
        METER_RESOURCES_PATH="/etc/meters.yaml",
    )

    settings = config.load_settings(env)

    assert settings.log_level == "DEBUG"
    assert settings.lookback_days == 3
    assert settings.catchup_grace_seconds == 60
    assert settings.skip_stored is True
    assert settings.resources_path == Path("/etc/meters.yaml")


def test_missing_required_lists_all():
    """Every missing variable is named, blank values count as missing."""
    env = dict(REQUIRED)
    del env["GLOW_PASSWORD"]
    env["INFLUX_TOKEN"] = "  "

    with pytest.raises(ConfigError, match="GLOW_PASSWORD, INFLUX_TOKEN"):
        config.load_settings(env)


@pytest.mark.parametrize(
    "name,value",
    [
        ("LOOKBACK_DAYS", "eight"),
        ("LOOKBACK_DAYS", "0"),
        ("LOOKBACK_DAYS", "1.5"),
        ("LOOKBACK_DAYS", "9"),
        ("CATCHUP_GRACE_SECONDS", "-1"),
        ("SKIP_STORED_READINGS", "maybe"),
    ],
)
def test_invalid_optional_values(name, value):
    with pytest.raises(ConfigError, match=name):
        config.load_settings(dict(REQUIRED, **{name: value}))


def test_load_settings_reads_environ(monkeypatch):
    for key, value in REQUIRED.items():
        monkeypatch.setenv(key, value)

    assert config.load_settings().influx_org == "home"


def test_load_resources(tmp_path):
    path = tmp_path / "resources.yaml"
    path.write_text(
        "resources:\n"
        "  - name: gas\n"
        "    quantity: Q1\n"
        "    cost: C1\n"
        "  - name: electricity\n"
        "    quantity: Q2\n"
        "    cost: C2\n"
    )

    resources = config.load_resources(path)

    assert resources == [
        TrackedResource("gas", "Q1", "C1"),
        TrackedResource("electricity", "Q2", "C2"),
    ]


def test_shipped_resources_file():
    """The repository's resources.yaml matches the built-in defaults."""
    assert config.load_resources(config.DEFAULT_RESOURCES_PATH) == config.DEFAULT_RESOURCES


def test_default_resources_without_file(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "DEFAULT_RESOURCES_PATH", tmp_path / "missing.yaml")

    assert config.load_resources() == config.DEFAULT_RESOURCES


@pytest.mark.parametrize(
    "content,message",
    [
        ("resources: []\n", "No resources"),
        ("other: 1\n", "No resources"),
        ("resources:\n  - name: gas\n    quantity: Q1\n", "missing"),
        (
            "resources:\n"
            "  - {name: gas, quantity: Q1, cost: C1}\n"
            "  - {name: gas, quantity: Q2, cost: C2}\n",
            "Duplicate",
        ),
        ("resources: [\n", "Invalid YAML"),
    ],
)
def test_invalid_resources(tmp_path, content, message):
    path = tmp_path / "resources.yaml"
    path.write_text(content)

    with pytest.raises(ConfigError, match=message):
        config.load_resources(path)


def test_missing_resources_file(tmp_path):
    with pytest.raises(ConfigError, match="Could not read"):
        config.load_resources(tmp_path / "nope.yaml")


def test_lookback_cap_accepted():
    settings = config.load_settings(dict(REQUIRED, LOOKBACK_DAYS="8"))

    assert settings.lookback_days == 8

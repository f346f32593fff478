"""Process configuration from environment variables and the resources file."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml

from .errors import ConfigError
from .models import TrackedResource
from .reconcile.window import LOOKBACK

DEFAULT_RESOURCES_PATH = Path(__file__).parent.parent.parent / "config" / "resources.yaml"

# Used when no resources file is available (e.g. a wheel install)
DEFAULT_RESOURCES = [
    TrackedResource(
        name="electricity",
        quantity_resource_id="24e7909c-c997-4506-9201-a57bd213148d",
        cost_resource_id="cc4dbeca-e207-4618-95d2-bbddd120aa0b",
    ),
    TrackedResource(
        name="gas",
        quantity_resource_id="5d594c77-f08a-4f6a-aac1-e086a5234b70",
        cost_resource_id="0cb3f9b9-749b-4e7f-a1e0-c1d437b2e057",
    ),
]

REQUIRED_VARS = (
    "GLOW_USERNAME",
    "GLOW_PASSWORD",
    "INFLUX_HOST",
    "INFLUX_TOKEN",
    "INFLUX_ORG",
    "INFLUX_BUCKET",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    glow_username: str
    glow_password: str
    influx_host: str
    influx_token: str
    influx_org: str
    influx_bucket: str
    log_level: str = "INFO"
    resources_path: Path | None = None
    lookback_days: int = 8
    catchup_grace_seconds: float = 300.0
    catchup_jitter_seconds: float = 120.0
    startup_jitter_seconds: float = 15.0
    skip_stored: bool = False


def _read_str(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name)
    if value is None:
        return None
    return value.strip() or None


def _read_number(environ: Mapping[str, str], name: str, default: float, minimum: float = 0) -> float:
    value = _read_str(environ, name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if parsed < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {value!r}")
    return parsed


def _read_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = _read_str(environ, name)
    if value is None:
        return default
    if value.lower() in _TRUE_VALUES:
        return True
    if value.lower() in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be true or false, got {value!r}")


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from the environment.

    Raises ConfigError naming every required variable that is unset.
    """
    if environ is None:
        environ = os.environ

    missing = [name for name in REQUIRED_VARS if _read_str(environ, name) is None]
    if missing:
        raise ConfigError(
            "Missing required environment variable(s): " + ", ".join(missing)
        )

    lookback = _read_number(environ, "LOOKBACK_DAYS", LOOKBACK.days, minimum=1)
    if lookback != int(lookback):
        raise ConfigError(f"LOOKBACK_DAYS must be a whole number of days, got {lookback}")
    if lookback > LOOKBACK.days:
        raise ConfigError(f"LOOKBACK_DAYS must be at most {LOOKBACK.days}, got {int(lookback)}")

    resources_path = _read_str(environ, "METER_RESOURCES_PATH")

    return Settings(
        glow_username=environ["GLOW_USERNAME"].strip(),
        glow_password=environ["GLOW_PASSWORD"].strip(),
        influx_host=environ["INFLUX_HOST"].strip(),
        influx_token=environ["INFLUX_TOKEN"].strip(),
        influx_org=environ["INFLUX_ORG"].strip(),
        influx_bucket=environ["INFLUX_BUCKET"].strip(),
        log_level=(_read_str(environ, "LOG_LEVEL") or "INFO").upper(),
        resources_path=Path(resources_path) if resources_path else None,
        lookback_days=int(lookback),
        catchup_grace_seconds=_read_number(environ, "CATCHUP_GRACE_SECONDS", 300.0),
        catchup_jitter_seconds=_read_number(environ, "CATCHUP_JITTER_SECONDS", 120.0),
        startup_jitter_seconds=_read_number(environ, "STARTUP_JITTER_SECONDS", 15.0),
        skip_stored=_read_bool(environ, "SKIP_STORED_READINGS", False),
    )


def load_resources(config_path: Path | None = None) -> list[TrackedResource]:
    """Load tracked resources from a YAML file.

    Expected format:

        resources:
          - name: gas
            quantity: <resource id>
            cost: <resource id>

    Falls back to DEFAULT_RESOURCES when no path is given and the default
    file does not exist.
    """
    if config_path is None:
        if not DEFAULT_RESOURCES_PATH.exists():
            return list(DEFAULT_RESOURCES)
        config_path = DEFAULT_RESOURCES_PATH

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Could not read resources file {config_path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in resources file {config_path}: {e}")

    entries = data.get("resources") if isinstance(data, dict) else None
    if not entries:
        raise ConfigError(f"No resources defined in {config_path}")

    resources = []
    seen = set()
    for i, entry in enumerate(entries):
        try:
            resource = TrackedResource(
                name=str(entry["name"]),
                quantity_resource_id=str(entry["quantity"]),
                cost_resource_id=str(entry["cost"]),
            )
        except (KeyError, TypeError) as e:
            raise ConfigError(f"Resource #{i} in {config_path} is missing {e}")
        if resource.name in seen:
            raise ConfigError(f"Duplicate resource name {resource.name!r} in {config_path}")
        seen.add(resource.name)
        resources.append(resource)

    return resources

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Optional

import yaml

from neuron_hub.core.periods.burn_periods import Clock, fixed_clock, parse_date_key, system_clock

logger = logging.getLogger(__name__)


DEFAULT_SETTINGS: dict[str, Any] = {
    "snapshot_file": "snapshots.yaml",
    # Pin "today" (YYYY-MM-DD or YYYY-MM); None reads the system clock.
    "now": None,
    "log_level": "WARNING",
}

ENV_OVERRIDES: dict[str, str] = {
    "NEURON_HUB_SNAPSHOT_FILE": "snapshot_file",
    "NEURON_HUB_NOW": "now",
    "NEURON_HUB_LOG_LEVEL": "log_level",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SettingsError(ValueError):
    pass


@dataclass(frozen=True)
class HubSettings:
    snapshot_file: str
    now: Optional[date]
    log_level: str

    def clock(self) -> Clock:
        if self.now is not None:
            return fixed_clock(self.now)
        return system_clock


def parse_now(value: Any) -> Optional[date]:
    """Accept a date, "YYYY-MM-DD" or "YYYY-MM" (first of the month)."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        ym = parse_date_key(value)
        if ym is not None:
            return date(ym[0], ym[1], 1)
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise SettingsError(f"now must be YYYY-MM-DD or YYYY-MM, got {value!r}")


def load_settings_file(path: str | Path) -> dict[str, Any]:
    """Load settings overrides from a YAML file.

    Format:
      snapshot_file: snapshots.yaml
      now: 2026-10-01
      log_level: INFO
    """
    p = Path(path)
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, yaml.YAMLError) as e:
        raise SettingsError(f"settings file {p} is not valid YAML: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise SettingsError("settings file must be a mapping")

    out: dict[str, Any] = {}
    for k, v in raw.items():
        if k not in DEFAULT_SETTINGS:
            raise SettingsError(f"unknown setting '{k}' (choose from: {', '.join(sorted(DEFAULT_SETTINGS))})")
        out[k] = v
    return out


def merged_settings(overrides: dict[str, Any] | None = None) -> HubSettings:
    """Return DEFAULT_SETTINGS merged with optional overrides, validated."""
    merged = dict(DEFAULT_SETTINGS)
    if overrides:
        merged.update(overrides)

    snapshot_file = merged["snapshot_file"]
    if not isinstance(snapshot_file, str) or not snapshot_file.strip():
        raise SettingsError("snapshot_file must be a non-empty string")

    log_level = str(merged["log_level"]).upper()
    if log_level not in LOG_LEVELS:
        raise SettingsError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

    return HubSettings(
        snapshot_file=snapshot_file,
        now=parse_now(merged["now"]),
        log_level=log_level,
    )


def env_overrides(environ: Optional[dict[str, str]] = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    out: dict[str, Any] = {}
    for var, key in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            out[key] = value
    return out


def load_and_merge(settings_file: str | None, environ: Optional[dict[str, str]] = None) -> HubSettings:
    overrides: dict[str, Any] = {}
    if settings_file:
        overrides.update(load_settings_file(settings_file))
    from_env = env_overrides(environ)
    if from_env:
        logger.debug("settings from environment: %s", sorted(from_env))
    overrides.update(from_env)
    return merged_settings(overrides)

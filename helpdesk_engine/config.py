"""Configuration helpers for the helpdesk similarity engine."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


PACKAGE_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_CONFIG_LOCATIONS = (
    PACKAGE_ROOT / "config" / "config.yaml",
    PACKAGE_ROOT / "config" / "config.yml",
    Path("./config/config.yaml"),
    Path("./config/config.yml"),
    Path.home() / ".helpdesk_engine" / "config.yaml",
)

ENGINE_DEFAULTS: Dict[str, Any] = {
    "min_evaluation_size": 10,
    "holdout_fraction": 0.2,
    "seed": None,
    "keyword_sample_size": 50,
    "keyword_top_n": 30,
    "sla_top_n": 8,
    "reuse_solution_score": 60.0,
    "prefetch_complexity": True,
    "oracle_keywords": False,
}


def resolve_path(path_str: str | None, *, base: Path | None = None) -> Path:
    """Resolve a path string that may be relative to an optional base directory."""
    base_path = base or Path.cwd()
    if not path_str:
        return base_path
    path = Path(path_str)
    if not path.is_absolute():
        path = base_path / path
    return path


def load_config(path: str | os.PathLike[str] | None = None) -> Dict[str, Any]:
    """Load configuration from YAML.

    Parameters
    ----------
    path: Optional path to a configuration file. If not provided, default
        locations will be searched.
    """
    if path:
        candidate_paths = [Path(path)]
    else:
        candidate_paths = list(DEFAULT_CONFIG_LOCATIONS)

    for candidate in candidate_paths:
        if candidate.exists():
            with candidate.open("r", encoding="utf-8") as handle:
                try:
                    data = yaml.safe_load(handle) or {}
                except yaml.YAMLError as exc:
                    raise ConfigError(f"Unable to parse configuration file {candidate}") from exc
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration file {candidate} must contain a mapping")
            return data
    raise ConfigError(
        "No configuration file could be located. Provide --config or create "
        "config/config.yaml."
    )


ORACLE_DEFAULTS: Dict[str, Any] = {
    "base_url": None,
    "api_key": None,
    "model": "gemini-2.5-flash",
    "timeout": 30,
    "verify_ssl": True,
    "rate_limit_per_minute": None,
    "min_interval_seconds": None,
    "max_concurrency": 1,
    "max_attempts": 3,
    "backoff_base_seconds": 1.0,
}

INGESTION_DEFAULTS: Dict[str, Any] = {
    "header_mapping": None,
    "categories": ("Software", "Hardware", "Network", "Account Management", "Database"),
    "priorities": ("Low", "Medium", "High", "Critical"),
    "fuzzy_threshold": 85,
}


def _section(config: Dict[str, Any], name: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
    raw = config.get(name) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration section '{name}' must be a mapping")
    unknown = sorted(set(raw) - set(defaults))
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{name}' section: {', '.join(unknown)}")
    settings = dict(defaults)
    settings.update({key: value for key, value in raw.items() if value is not None})
    return settings


def _coerce(
    settings: Dict[str, Any],
    section: str,
    key: str,
    kind: type,
    *,
    minimum: float | None = None,
) -> None:
    value = settings.get(key)
    if value is None:
        return
    try:
        value = kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{section}.{key} must be a {kind.__name__}, got {settings[key]!r}") from exc
    if minimum is not None and value < minimum:
        raise ConfigError(f"{section}.{key} must be at least {minimum}, got {value!r}")
    settings[key] = value


def engine_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    """Return the ``engine`` section merged over the built-in defaults."""
    settings = _section(config, "engine", ENGINE_DEFAULTS)
    for key in ("min_evaluation_size", "keyword_sample_size", "keyword_top_n", "sla_top_n"):
        _coerce(settings, "engine", key, int, minimum=1)
    _coerce(settings, "engine", "seed", int)
    _coerce(settings, "engine", "holdout_fraction", float)
    _coerce(settings, "engine", "reuse_solution_score", float, minimum=0)
    if not 0.0 < settings["holdout_fraction"] < 1.0:
        raise ConfigError(
            f"engine.holdout_fraction must be between 0 and 1, got {settings['holdout_fraction']!r}"
        )
    return settings


def oracle_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    """Return the ``oracle`` section; ``base_url`` and ``api_key`` stay optional."""
    settings = _section(config, "oracle", ORACLE_DEFAULTS)
    _coerce(settings, "oracle", "timeout", int, minimum=1)
    _coerce(settings, "oracle", "max_concurrency", int, minimum=1)
    _coerce(settings, "oracle", "max_attempts", int, minimum=1)
    _coerce(settings, "oracle", "rate_limit_per_minute", int, minimum=1)
    _coerce(settings, "oracle", "min_interval_seconds", float, minimum=0)
    _coerce(settings, "oracle", "backoff_base_seconds", float, minimum=0)
    return settings


def ingestion_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    """Return the ``ingestion`` section with vocabularies as tuples."""
    settings = _section(config, "ingestion", INGESTION_DEFAULTS)
    for key in ("categories", "priorities"):
        values = settings[key]
        if isinstance(values, str) or not values:
            raise ConfigError(f"ingestion.{key} must be a non-empty list")
        settings[key] = tuple(str(value) for value in values)
    mapping = settings["header_mapping"]
    if mapping is not None and not isinstance(mapping, dict):
        raise ConfigError("ingestion.header_mapping must map field names to CSV headers")
    _coerce(settings, "ingestion", "fuzzy_threshold", int, minimum=0)
    return settings


LOGGING_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "console": {"enabled": True, "level": "INFO", "rich_format": False},
    "file": {"enabled": True, "path": "logs/helpdesk_engine.log", "level": "DEBUG"},
}

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def logging_settings(config: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Return the ``console`` and ``file`` sink settings with upper-case levels."""
    raw = config.get("logging") or {}
    if not isinstance(raw, dict):
        raise ConfigError("Configuration section 'logging' must be a mapping")
    unknown = sorted(set(raw) - set(LOGGING_DEFAULTS))
    if unknown:
        raise ConfigError(f"Unknown key(s) in 'logging' section: {', '.join(unknown)}")
    sinks = {}
    for sink, defaults in LOGGING_DEFAULTS.items():
        settings = _section(raw, sink, defaults)
        level = str(settings["level"]).upper()
        if level not in LOG_LEVELS:
            raise ConfigError(
                f"logging.{sink}.level must be one of {', '.join(LOG_LEVELS)}, got {level!r}"
            )
        settings["level"] = level
        sinks[sink] = settings
    return sinks

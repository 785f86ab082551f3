"""Importer options: defaults, an optional JSON config file, env overrides."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from statement_importer.vocabulary import (
    DEBUG_ROW_LIMIT,
    DEFAULT_CURRENCY,
    HEADER_MIN_MATCHES,
    MIN_REFERENCE_RUN,
)

ENV_PREFIX = "STATEMENT_IMPORTER_"
SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ImporterOptions:
    currency: str = DEFAULT_CURRENCY
    debug_row_limit: int = DEBUG_ROW_LIMIT
    header_min_matches: int = HEADER_MIN_MATCHES
    min_reference_run: int = MIN_REFERENCE_RUN
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_OPTIONS = ImporterOptions()


def _coerce(name: str, expected: type, value: Any) -> Any:
    if expected is int:
        if isinstance(value, bool):
            raise ConfigError(f"Option '{name}' must be an integer, got {value!r}")
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"Option '{name}' must be an integer, got {value!r}") from None
        if number < 0:
            raise ConfigError(f"Option '{name}' must not be negative")
        return number
    text = str(value).strip()
    if not text:
        raise ConfigError(f"Option '{name}' must not be empty")
    return text.upper() if name == "currency" else text


def _option_types() -> dict[str, type]:
    return {f.name: (int if f.type in (int, "int") else str) for f in fields(ImporterOptions)}


def options_from_mapping(payload: Mapping[str, Any], base: ImporterOptions = DEFAULT_OPTIONS) -> ImporterOptions:
    types = _option_types()
    unknown = sorted(set(payload) - set(types))
    if unknown:
        raise ConfigError(f"Unknown config keys: {unknown}. Allowed: {sorted(types)}")
    updates = {name: _coerce(name, types[name], value) for name, value in payload.items()}
    return replace(base, **updates)


def read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise ConfigError("YAML configs are not supported yet. Use JSON for now.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    return payload


def env_overrides(env: Mapping[str, str]) -> dict[str, str]:
    overrides = {}
    for name in _option_types():
        raw = env.get(ENV_PREFIX + name.upper())
        if raw is not None and raw.strip():
            overrides[name] = raw
    return overrides


def load_options(
    path: "str | Path | None" = None,
    env: Mapping[str, str] | None = None,
) -> ImporterOptions:
    """Resolve options: defaults < JSON config file < ``STATEMENT_IMPORTER_*`` env vars."""
    options = DEFAULT_OPTIONS
    if path is not None:
        options = options_from_mapping(read_config_file(Path(path)), options)
    overrides = env_overrides(os.environ if env is None else env)
    if overrides:
        options = options_from_mapping(overrides, options)
    return options


def starter_config() -> str:
    return json.dumps(DEFAULT_OPTIONS.to_dict(), indent=2, sort_keys=True) + "\n"

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError


@dataclass(frozen=True)
class Credentials:
    login: str
    api_key: str

    def as_params(self) -> dict[str, str]:
        return {"login": self.login, "api_key": self.api_key}


def load_config(path: str | Path | None) -> AppConfig:
    """
    Load a YAML config file and validate it into a typed AppConfig.

    A missing path (None) yields the defaults. Raises ConfigError with a
    readable validation message on failure.
    """
    if path is None:
        return AppConfig()

    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e


def resolve_credentials(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> Credentials | None:
    """
    Read the optional login/API key pair from the environment.

    Both values must be present and non-empty; otherwise requests stay anonymous.
    """
    env = os.environ if environ is None else environ

    login = (env.get(config.api.login_env) or "").strip()
    api_key = (env.get(config.api.api_key_env) or "").strip()

    if not login or not api_key:
        return None

    return Credentials(login=login, api_key=api_key)


def _format_pydantic_errors(err: ValidationError, path: Path) -> str:
    lines: list[str] = [f"Invalid configuration in {path}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)

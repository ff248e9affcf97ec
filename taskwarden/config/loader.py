"""Locate and parse taskwarden.yaml."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TASKWARDEN_CONFIG"


class ConfigLoadError(ValueError):
    """taskwarden.yaml exists but is not a readable YAML mapping."""


def _describe_yaml_error(path: Path, exc: yaml.YAMLError) -> str:
    mark = getattr(exc, "problem_mark", None)
    where = f"{path}:{mark.line + 1}:{mark.column + 1}" if mark is not None else str(path)
    problem = getattr(exc, "problem", None)
    return f"Invalid YAML at {where}" + (f" ({problem})" if problem else "")


class YAMLConfigLoader:
    """Reads the config file; a missing or blank file means all defaults."""

    DEFAULT_FILENAME = "taskwarden.yaml"
    KNOWN_SECTIONS = frozenset({"scheduler", "executor", "approval", "permissions", "database", "logging"})

    @classmethod
    def resolve_path(cls, cli_path: str | None = None) -> Path:
        """TASKWARDEN_CONFIG wins over the --config path, which wins over ./taskwarden.yaml."""
        for candidate in (os.environ.get(CONFIG_ENV_VAR, ""), cli_path or ""):
            if candidate.strip():
                return Path(candidate.strip()).expanduser()
        return Path.cwd() / cls.DEFAULT_FILENAME

    @classmethod
    def load_dict(cls, path: str | Path | None = None) -> dict[str, Any]:
        """Parse *path* (or the resolved default) into a plain dict.

        Raises:
            ConfigLoadError: The file is not valid YAML or its root is not a mapping.
        """
        target = Path(path).expanduser() if path is not None else cls.resolve_path()
        try:
            text = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No config file at %s; using defaults", target)
            return {}
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigLoadError(_describe_yaml_error(target, exc)) from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigLoadError(f"Config root must be a mapping: {target}")
        unknown = sorted(str(key) for key in data if key not in cls.KNOWN_SECTIONS)
        if unknown:
            logger.warning("Ignoring unknown config section(s) in %s: %s", target, ", ".join(unknown))
        return data

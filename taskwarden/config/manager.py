"""Process-wide configuration holder with hot reload."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, ClassVar

from taskwarden.config.loader import YAMLConfigLoader
from taskwarden.config.models import TaskwardenConfig

logger = logging.getLogger(__name__)

ConfigListener = Callable[[TaskwardenConfig, TaskwardenConfig], None]


def _merge(base: Mapping[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _merge(current, value)
        else:
            merged[key] = value
    return merged


def _flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Map nested dicts to ``{"section.field": value}`` leaves."""
    leaves: dict[str, Any] = {}
    for key, value in data.items():
        path = f"{prefix}{key}"
        if isinstance(value, Mapping) and value:
            leaves.update(_flatten(value, f"{path}."))
        else:
            leaves[path] = value
    return leaves


def _unflatten(leaves: Mapping[str, Any]) -> dict[str, Any]:
    nested: dict[str, Any] = {}
    for path, value in leaves.items():
        *parents, last = path.split(".")
        cursor = nested
        for part in parents:
            cursor = cursor.setdefault(part, {})
        cursor[last] = value
    return nested


def _from_sections(data: Mapping[str, Any]) -> TaskwardenConfig:
    """Validate *data* section by section without consulting the environment again."""
    sections = {
        name: field.annotation.model_validate(data.get(name, {}))  # type: ignore[union-attr]
        for name, field in TaskwardenConfig.model_fields.items()
    }
    return TaskwardenConfig.model_construct(**sections)


def _compose(config_path: str | None, overrides: Mapping[str, Any]) -> TaskwardenConfig:
    """Defaults < YAML file < TASKWARDEN_* environment < runtime overrides."""
    file_data = YAMLConfigLoader.load_dict(YAMLConfigLoader.resolve_path(config_path))
    config = TaskwardenConfig(**file_data)
    if overrides:
        config = _from_sections(_merge(config.model_dump(mode="python"), overrides))
    return config


@dataclass(frozen=True)
class ReloadResult:
    """Changed keys split into those applied live and those needing a restart."""

    applied: dict[str, Any]
    skipped: dict[str, Any]


class ConfigManager:
    """Thread-safe holder of the current :class:`TaskwardenConfig`.

    Listeners registered with :meth:`on_change` are called outside the lock
    with ``(old, new)`` whenever a new config is installed.
    """

    _instance: ClassVar[ConfigManager | None] = None
    _class_lock: ClassVar[Lock] = Lock()
    # Keys a running process can pick up without a restart.
    HOT_RELOADABLE: ClassVar[tuple[str, ...]] = (
        "approval.",
        "executor.",
        "scheduler.retention_days",
        "scheduler.maintenance_interval_seconds",
    )

    def __init__(self) -> None:
        self._lock = Lock()
        self._config = TaskwardenConfig()
        self._listeners: list[ConfigListener] = []
        self._config_path: str | None = None
        self._overrides: dict[str, Any] = {}

    @classmethod
    def instance(cls) -> ConfigManager:
        """Shared manager used by the CLI; library code receives config explicitly."""
        with cls._class_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def _reset_for_tests(cls) -> None:
        with cls._class_lock:
            cls._instance = None

    @classmethod
    def load(
        cls,
        config_path: str | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> ConfigManager:
        """Build config from all sources and install it on the shared manager."""
        manager = cls.instance()
        runtime = dict(overrides or {})
        new_config = _compose(config_path, runtime)
        with manager._lock:
            manager._config_path = config_path
            manager._overrides = runtime
        manager._install(new_config)
        return manager

    def get(self) -> TaskwardenConfig:
        with self._lock:
            return self._config

    def on_change(self, callback: ConfigListener) -> None:
        with self._lock:
            self._listeners.append(callback)

    def reload(self, config_path: str | None = None) -> ReloadResult:
        """Re-read every source and install only the hot-reloadable changes."""
        with self._lock:
            current = self._config
            path = config_path if config_path is not None else self._config_path
            runtime = dict(self._overrides)
        candidate = _compose(path, runtime)

        old_leaves = _flatten(current.model_dump(mode="python"))
        new_leaves = _flatten(candidate.model_dump(mode="python"))
        changed = {
            key: new_leaves.get(key)
            for key in sorted(old_leaves.keys() | new_leaves.keys())
            if old_leaves.get(key) != new_leaves.get(key)
        }
        applied = {k: v for k, v in changed.items() if self._is_hot(k)}
        skipped = {k: v for k, v in changed.items() if k not in applied}

        with self._lock:
            self._config_path = path
        if applied:
            patched = _merge(current.model_dump(mode="python"), _unflatten(applied))
            self._install(_from_sections(patched))
        if skipped:
            logger.warning("Config changes need a restart to take effect: %s", ", ".join(skipped))
        logger.info("Config reloaded: %d applied, %d skipped", len(applied), len(skipped))
        return ReloadResult(applied=applied, skipped=skipped)

    def _is_hot(self, key: str) -> bool:
        return any(key == prefix or key.startswith(prefix) for prefix in self.HOT_RELOADABLE)

    def _install(self, new_config: TaskwardenConfig) -> None:
        with self._lock:
            old = self._config
            self._config = new_config
            listeners = list(self._listeners)
        for callback in listeners:
            callback(old, new_config)

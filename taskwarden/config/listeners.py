"""Push reloaded config sections into live runtime components."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel

from taskwarden.config.manager import ConfigManager
from taskwarden.config.models import TaskwardenConfig

logger = logging.getLogger(__name__)


class SettingsConsumer(Protocol):
    def apply_settings(self, settings: Any) -> None: ...


def _forward_section(section: str, component: SettingsConsumer, manager: ConfigManager | None) -> None:
    cfg_manager = manager or ConfigManager.instance()

    def _on_change(old_cfg: TaskwardenConfig, new_cfg: TaskwardenConfig) -> None:
        new_section: BaseModel = getattr(new_cfg, section)
        if getattr(old_cfg, section) == new_section:
            return
        component.apply_settings(new_section)
        logger.info("Applied reloaded %s settings to %s", section, type(component).__name__)

    cfg_manager.on_change(_on_change)


def register_approval_reload_listener(gate: SettingsConsumer, manager: ConfigManager | None = None) -> None:
    """Keep an ApprovalGate's gated levels, TTLs and stats window in sync with config."""
    _forward_section("approval", gate, manager)


def register_runner_reload_listener(runner: SettingsConsumer, manager: ConfigManager | None = None) -> None:
    """Keep an ExecutorRunner's retry and timeout defaults in sync with config."""
    _forward_section("executor", runner, manager)

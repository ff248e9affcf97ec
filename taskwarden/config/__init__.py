"""Unified configuration system for taskwarden."""

from taskwarden.config.listeners import (
    register_approval_reload_listener,
    register_runner_reload_listener,
)
from taskwarden.config.loader import ConfigLoadError, YAMLConfigLoader
from taskwarden.config.manager import ConfigManager, ReloadResult
from taskwarden.config.models import (
    ApprovalConfig,
    DatabaseConfig,
    ExecutorConfig,
    LoggingConfig,
    PermissionsConfig,
    SchedulerConfig,
    TaskwardenConfig,
    TierConfig,
)

__all__ = [
    "ApprovalConfig",
    "ConfigLoadError",
    "ConfigManager",
    "DatabaseConfig",
    "ExecutorConfig",
    "LoggingConfig",
    "PermissionsConfig",
    "ReloadResult",
    "register_approval_reload_listener",
    "register_runner_reload_listener",
    "SchedulerConfig",
    "TaskwardenConfig",
    "TierConfig",
    "YAMLConfigLoader",
]

"""Capability executor contract and a handler registry implementation.

The capability executor performs the actual side-effecting store action
(inventory lookup, price change, fulfillment). taskwarden only depends on its
execution contract: take an action type plus parameters, return a structured
result with resource usage, or raise :class:`CapabilityError`.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from taskwarden.errors import CapabilityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilityContext:
    """Who an action runs for and where it came from."""

    owner_id: str
    target_id: str
    integration_id: str = "store"
    task_id: str | None = None
    execution_id: str | None = None
    approval_request_id: str | None = None


@dataclass
class CapabilityResult:
    """Structured outcome of one capability call."""

    data: dict[str, Any] = field(default_factory=dict)
    calls: int = 1
    cost: float = 0.0


class CapabilityExecutor(Protocol):
    """Performs one domain action against external store data."""

    async def execute(
        self,
        action_type: str,
        params: dict[str, Any],
        context: CapabilityContext,
    ) -> CapabilityResult: ...


CapabilityHandler = Callable[[dict[str, Any], CapabilityContext], Any]


class CapabilityRegistry:
    """Capability executor that dispatches action types to registered handlers.

    Handlers may be sync or async and may return a :class:`CapabilityResult`
    or a plain dict (counted as one external call at no cost).
    """

    def __init__(self) -> None:
        self.handlers: dict[str, CapabilityHandler] = {}

    def register_handler(self, action_type: str, handler: CapabilityHandler) -> None:
        """Register *handler* for *action_type*.

        Raises:
            TypeError: If handler is not callable.
            ValueError: If action_type is blank or already registered.
        """
        if not callable(handler):
            raise TypeError(f"Handler for '{action_type}' must be callable")
        key = (action_type or "").strip()
        if not key:
            raise ValueError("action_type must be a non-empty string")
        if key in self.handlers:
            raise ValueError(
                f"Handler for '{key}' already registered. "
                f"Existing: {getattr(self.handlers[key], '__name__', self.handlers[key])!r}"
            )
        self.handlers[key] = handler

    def handler(self, action_type: str) -> Callable[[CapabilityHandler], CapabilityHandler]:
        """Decorator form of :meth:`register_handler`."""

        def decorator(fn: CapabilityHandler) -> CapabilityHandler:
            self.register_handler(action_type, fn)
            return fn

        return decorator

    def list_action_types(self) -> list[str]:
        return sorted(self.handlers)

    async def execute(
        self,
        action_type: str,
        params: dict[str, Any],
        context: CapabilityContext,
    ) -> CapabilityResult:
        handler = self.handlers.get(action_type)
        if handler is None:
            raise CapabilityError(f"No capability registered for '{action_type}'", retryable=False)
        logger.debug("Executing capability %s for owner=%s", action_type, context.owner_id)
        result = handler(dict(params), context)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, CapabilityResult):
            return result
        if result is None:
            return CapabilityResult()
        if isinstance(result, dict):
            return CapabilityResult(data=result)
        raise CapabilityError(
            f"Capability '{action_type}' returned unsupported result type {type(result).__name__}",
            retryable=False,
        )

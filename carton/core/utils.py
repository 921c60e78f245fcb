"""
Utils Module - Completion normalization and lifecycle context helpers.

This module provides:
- invoke(): Call a plugin body and settle whatever it returns
- settle(): Turn a plain value, an awaitable or a generator routine into one result
- current_plugin(): The plugin whose start/end body is running in this task
- is_finite_timeout(): Decide whether a timeout value arms a timer

The current plugin is tracked with contextvars, so every asyncio task sees
only the plugin it was created for.
"""

import inspect
import math
from collections.abc import Callable, Generator
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from carton.plugin.plugin import Plugin


# Context variable for the plugin running in the current task
_current_plugin: ContextVar["Plugin | None"] = ContextVar(
    "current_plugin", default=None
)


async def invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """
    Call a plugin body and settle its return value.

    Exceptions raised synchronously by ``fn`` surface as failures of the
    awaited call, exactly like failures of the awaitable it returns.

    Args:
        fn: A plain function, a coroutine function or a generator function
        *args: Positional arguments for ``fn``

    Returns:
        The settled result
    """
    return await settle(fn(*args))


async def settle(value: Any) -> Any:
    """
    Normalize a plugin body's return value into a single result.

    - Generator objects are cooperative routines and are driven to completion
    - Awaitables (coroutines, futures, tasks) are awaited
    - Anything else is already complete and returned as is

    Args:
        value: The value to settle

    Returns:
        The final result
    """
    if inspect.isgenerator(value):
        return await _drive(value)
    if inspect.isawaitable(value):
        return await value
    return value


async def _drive(routine: Generator[Any, Any, Any]) -> Any:
    """
    Drive a generator routine to completion.

    Each yielded value is settled and sent back into the generator. If a
    yielded awaitable fails, the error is thrown into the generator at that
    suspension point, so the routine may handle it with try/except.

    Args:
        routine: A started or fresh generator object

    Returns:
        The generator's return value
    """
    sent: Any = None
    error: BaseException | None = None

    while True:
        try:
            if error is not None:
                yielded = routine.throw(error)
            else:
                yielded = routine.send(sent)
        except StopIteration as stop:
            return stop.value

        sent, error = None, None
        try:
            sent = await settle(yielded)
        except Exception as e:
            error = e


def is_finite_timeout(timeout: Any) -> bool:
    """
    Check whether a timeout value should arm a timer.

    Only real numbers in ``[0, inf)`` count. None, booleans, non-numeric
    values, negative numbers, NaN and infinity all disable the timer.

    Args:
        timeout: Candidate timeout in seconds

    Returns:
        True if a timer should be armed
    """
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        return False
    return 0 <= timeout < math.inf


def current_plugin() -> "Plugin | None":
    """
    Get the plugin whose start or end body is running in the current task.

    Returns:
        The running Plugin, or None outside of a lifecycle call

    Example:
        def start(container):
            plugin = current_plugin()
            container.services.provide("greeting", f"hello from {plugin.name}")
    """
    return _current_plugin.get()


# Internal API for Plugin to manage the context
def _set_current_plugin(plugin: "Plugin | None") -> None:
    """Set the plugin running in the current task (internal use only)."""
    _current_plugin.set(plugin)

"""Execution contexts: where a host or network call is allowed to run.

Hosts that require document mutation on a single thread hand the bridge a
context bound to that thread; the long network call runs on a worker
context instead. Both are passed in explicitly.
"""

from __future__ import annotations

from concurrent.futures import Executor
from typing import Any, Callable, TypeVar

T = TypeVar("T")


class ImmediateContext:
    """Runs calls inline on the caller's thread."""

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return fn(*args, **kwargs)


class ExecutorContext:
    """Runs calls on ``executor`` and blocks until they finish."""

    def __init__(self, executor: Executor) -> None:
        self._executor = executor

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return self._executor.submit(fn, *args, **kwargs).result()

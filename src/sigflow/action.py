"""Batches, actions and transactions — deferred-flush write windows.

Wrapping writes in batch(), an @action or `with transaction()` defers all
effect/computed notification until the outermost scope exits. Each subscriber
then runs once, seeing the final state instead of every intermediate one.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Callable, Iterator, ParamSpec, TypeVar

from sigflow._tracking import get_tracker

P = ParamSpec("P")
R = TypeVar("R")


def batch(fn: Callable[[], R]) -> R:
    """Run fn in a batch window and return its result.

    Usage:
        batch(lambda: (a.set(1), b.set(2)))
    """
    return get_tracker().batch_updates(fn)


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: batch all signal writes inside fn.

    Effects only fire after fn returns, not during.

    Usage:
        counter_a = signal(0)
        counter_b = signal(0)

        @action
        def swap():
            a, b = counter_a.value, counter_b.value
            counter_a.value = b
            counter_b.value = a
            # effects see both changes at once, not one at a time
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with get_tracker().batching():
            return fn(*args, **kwargs)

    return wrapper


@contextmanager
def transaction() -> Iterator[None]:
    """Context manager for batching writes.

    Usage:
        with transaction():
            counter_a.value = 1
            counter_b.value = 2
            # effects fire here, after both are set
    """
    with get_tracker().batching():
        yield

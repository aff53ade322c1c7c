"""Signals — mutable reactive cells.

When a Signal is read inside a Computed or Effect evaluation, the dependency
is registered with the tracker. When the Signal changes, its direct
subscribers are called with the new value and then every tracked dependent
is notified.

Writes are equality-gated: assigning a value that is identical or equal to
the current one does nothing.

Thread safety: call set_scheduler() once from the owning thread. After that,
any write from another thread is handed to the scheduler instead of touching
the tracker. Writes on the owning thread stay synchronous.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generic, Sequence, TypeVar

from sigflow._tracking import Tracker, get_tracker
from sigflow.errors import CircularDependencyError

logger = logging.getLogger("sigflow.signal")

T = TypeVar("T")

Unsubscribe = Callable[[], None]

# ─── Auto-marshal ────────────────────────────────────────────────────────────
_scheduler = None
_scheduler_thread = None


def set_scheduler(scheduler) -> None:
    """Set the global thread scheduler for cross-thread Signal writes.

    Call once from the main/UI thread:
        sigflow.set_scheduler(app.call_from_thread)

    After this, any write from a background thread is marshaled through
    scheduler. Pass None to go back to direct writes from any thread.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


class Signal(Generic[T]):
    """A single reactive value with automatic dependency tracking."""

    __slots__ = ("_value", "_subscribers", "_source_disposers", "_tracker", "__weakref__")

    def __init__(self, value: T, *, tracker: Tracker | None = None) -> None:
        self._value = value
        # dict keeps insertion order and collapses duplicate callbacks
        self._subscribers: dict[Callable[[T], Any], None] = {}
        self._source_disposers: list[Unsubscribe] = []
        self._tracker = tracker if tracker is not None else get_tracker()

    @property
    def value(self) -> T:
        """Read the value. Inside a Computed or Effect, registers the dependency."""
        self._tracker.track(self, "value")
        return self._value

    @value.setter
    def value(self, value: T) -> None:
        self.set(value)

    def get(self) -> T:
        return self.value

    def set(self, value: T) -> None:
        """Write a new value. Auto-marshals from background threads."""
        if _scheduler is not None and threading.current_thread() != _scheduler_thread:
            _scheduler(lambda v=value: self._set_direct(v))
        else:
            self._set_direct(value)

    def peek(self) -> T:
        """Read the value without registering a dependency."""
        return self._value

    def _set_direct(self, value: T) -> None:
        """Set value and notify. Always runs on the scheduler thread."""
        old = self._value
        if old is not value and old != value:
            self._value = value
            if self._subscribers:
                # Deferred and deduplicated while batching: one call, final value.
                self._tracker.queue_update(self._notify_subscribers)
            self._tracker.trigger(self, "value")

    def _notify_subscribers(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self._value)
            except CircularDependencyError:
                raise
            except Exception:
                logger.exception("Error in signal subscriber %r", callback)

    # ─── Direct subscriptions ────────────────────────────────────────────

    def subscribe(self, callback: Callable[[T], Any]) -> Unsubscribe:
        """Register callback(value) for every change. Returns a function that removes it."""
        self._subscribers[callback] = None

        def _unsubscribe() -> None:
            self._subscribers.pop(callback, None)

        return _unsubscribe

    def unsubscribe(self, callback: Callable[[T], Any]) -> bool:
        """Remove callback. Returns False if it was not subscribed."""
        if callback in self._subscribers:
            del self._subscribers[callback]
            return True
        return False

    def clear_subscribers(self) -> None:
        """Drop direct subscribers. Tracked dependents are left alone."""
        self._subscribers.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def has_subscribers(self) -> bool:
        return bool(self._subscribers)

    def get_subscribers(self) -> set[Callable[[T], Any]]:
        return set(self._subscribers)

    def dispose(self) -> None:
        """Drop direct subscribers and every tracked edge from this signal."""
        for dispose_source in self._source_disposers:
            dispose_source()
        self._source_disposers.clear()
        self._subscribers.clear()
        self._tracker.clear_dependencies(self)

    def __repr__(self) -> str:
        return f"Signal({self._value!r})"

    # ─── Helpers over several signals ────────────────────────────────────

    @staticmethod
    def subscribe_to_multiple(
        signals: Sequence[Signal[Any]], callback: Callable[[Any], Any]
    ) -> Unsubscribe:
        """Subscribe callback to every signal. Returns one function removing them all."""
        for item in signals:
            if not isinstance(item, Signal):
                raise TypeError("All items must be Signal instances")
        unsubscribers = [item.subscribe(callback) for item in signals]

        def _unsubscribe_all() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return _unsubscribe_all

    @staticmethod
    def derived(signals: Sequence[Signal[Any]], compute_fn: Callable[..., T]) -> Signal[T]:
        """Create a Signal holding compute_fn(*values) of the given signals.

        The result is recomputed whenever any source changes. A failing
        computation is logged and the previous value kept. Disposing the
        derived signal also detaches it from its sources.

        Usage:
            a, b = signal(2), signal(3)
            total = Signal.derived([a, b], lambda x, y: x + y)
            total.value  # 5
        """
        if not isinstance(signals, (list, tuple)):
            raise TypeError("Dependencies must be a list or tuple of signals")
        for dep in signals:
            if not isinstance(dep, Signal):
                raise TypeError("All dependencies must be Signal instances")

        def compute() -> T:
            return compute_fn(*(dep.peek() for dep in signals))

        try:
            initial = compute()
        except Exception:
            logger.exception("Error in derived signal initial computation")
            initial = None

        result: Signal[T] = Signal(initial)

        def _recompute(_value: Any) -> None:
            try:
                new_value = compute()
            except Exception:
                logger.exception("Error in derived signal computation")
                return
            result.value = new_value

        result._source_disposers.extend(dep.subscribe(_recompute) for dep in signals)
        return result

    @staticmethod
    def batch(fn: Callable[[], Any]) -> Any:
        """Run fn in a batch window on the current tracker."""
        return get_tracker().batch_updates(fn)


def signal(initial: T) -> Signal[T]:
    """Factory for Signal.

    Usage:
        count = signal(0)
        count.value += 1
    """
    return Signal(initial)

"""Effects — side effects triggered by reactive state changes.

Unlike Computed (which is lazy and only evaluates on read), an Effect
eagerly re-runs its function whenever its tracked dependencies change.

Two flavors:
- effect(fn): runs fn immediately, re-runs when anything it read changes.
  If fn returns a callable, that callable is the cleanup, invoked before the
  next run and on dispose.
- reaction(data_fn, effect_fn): tracks data_fn, calls effect_fn with the new
  value only when data_fn's result changes.

Failures in an effect body or cleanup are logged and contained, so one broken
effect cannot stop its siblings. CircularDependencyError is the exception:
it always reaches the write that caused it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from sigflow._tracking import Tracker, get_tracker
from sigflow.errors import CircularDependencyError

logger = logging.getLogger("sigflow.effect")

T = TypeVar("T")

Cleanup = Callable[[], Any]


class Effect:
    """A reactive side effect that re-runs when its dependencies change."""

    __slots__ = ("_fn", "_cleanup", "_active", "_tracker", "__weakref__")

    def __init__(self, fn: Callable[[], Cleanup | None], *, tracker: Tracker | None = None) -> None:
        self._fn = fn
        self._cleanup: Cleanup | None = None
        self._active = True
        self._tracker = tracker if tracker is not None else get_tracker()
        try:
            self._run()  # Initial run to establish dependencies
        except CircularDependencyError:
            # No handle escapes a failed construction.
            self._active = False
            raise

    @property
    def active(self) -> bool:
        return self._active

    def update(self) -> None:
        """Called by the tracker when a dependency changed. No-op once disposed."""
        if not self._active:
            return
        self._run_cleanup()
        self._run()

    def _run(self) -> None:
        """Evaluate the body, re-tracking dependencies from scratch."""
        self._tracker.cleanup_context(self)
        try:
            result = self._tracker.with_tracking(self._fn, self)
        except CircularDependencyError:
            self._tracker.cleanup_context(self)
            raise
        except Exception:
            logger.exception("Error in effect %s", self._name)
            return

        if callable(result):
            self._cleanup = result
        if not self._active:
            # Disposed from inside its own body: drop what the rest of the run tracked.
            self._tracker.cleanup_context(self)
            self._run_cleanup()

    def _run_cleanup(self) -> None:
        cleanup, self._cleanup = self._cleanup, None
        if cleanup is None:
            return
        try:
            cleanup()
        except CircularDependencyError:
            raise
        except Exception:
            logger.exception("Error in cleanup of effect %s", self._name)

    def dispose(self) -> None:
        """Stop this effect. Runs the pending cleanup and disconnects from all dependencies."""
        if not self._active:
            return
        self._active = False
        self._run_cleanup()
        self._tracker.cleanup_context(self)

    @property
    def _name(self) -> str:
        return getattr(self._fn, "__name__", repr(self._fn))

    def __repr__(self) -> str:
        state = "active" if self._active else "disposed"
        return f"{type(self).__name__}({self._name}, {state})"


class _DataReaction(Effect):
    """Internal: reaction(data_fn, effect_fn) implementation.

    Tracks data_fn's dependencies. When they change, re-runs data_fn.
    If the result differs from last time, calls effect_fn with the new value,
    untracked so effect_fn's own reads don't become dependencies.
    """

    __slots__ = ("_data_fn", "_effect_fn", "_last_value", "_initialized", "_fire_immediately")

    def __init__(
        self,
        data_fn: Callable[[], T],
        effect_fn: Callable[[T], Any],
        *,
        fire_immediately: bool = False,
        tracker: Tracker | None = None,
    ) -> None:
        self._data_fn = data_fn
        self._effect_fn = effect_fn
        self._last_value = None
        self._initialized = False
        self._fire_immediately = fire_immediately
        super().__init__(self._evaluate, tracker=tracker)

    def _evaluate(self) -> None:
        new_value = self._data_fn()
        if self._initialized and (new_value is self._last_value or new_value == self._last_value):
            return
        first_run = not self._initialized
        self._last_value = new_value
        self._initialized = True
        if first_run and not self._fire_immediately:
            return
        self._tracker.untracked(lambda: self._effect_fn(new_value))

    @property
    def _name(self) -> str:
        return getattr(self._data_fn, "__name__", repr(self._data_fn))


def effect(fn: Callable[[], Cleanup | None]) -> Effect:
    """Run fn immediately, then re-run whenever anything it reads changes.

    Returns the Effect (call .dispose() to stop). Works as a decorator too.

    Usage:
        counter = signal(0)
        log = []

        handle = effect(lambda: log.append(counter.value))
        # log == [0] — ran immediately

        counter.value = 1
        # log == [0, 1] — re-ran because counter changed

        handle.dispose()
        counter.value = 2
        # log == [0, 1] — stopped
    """
    return Effect(fn)


def reaction(
    data_fn: Callable[[], T],
    effect_fn: Callable[[T], Any],
    *,
    fire_immediately: bool = False,
) -> Effect:
    """Track data_fn's reads; call effect_fn when the result changes.

    Unlike effect, effect_fn only fires when data_fn's *return value* changes,
    not on every dependency notification.

    Returns the reaction (call .dispose() to stop).

    Usage:
        first = signal("Alice")
        last = signal("Smith")

        names = []
        r = reaction(
            lambda: f"{first.value} {last.value}",
            lambda name: names.append(name),
        )
        # names == [] — data_fn ran to establish deps, effect_fn didn't fire yet

        first.value = "Bob"
        # names == ["Bob Smith"]

        r.dispose()
    """
    return _DataReaction(data_fn, effect_fn, fire_immediately=fire_immediately)

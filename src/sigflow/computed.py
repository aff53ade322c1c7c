"""Computed values — derived state with automatic dependency tracking.

A Computed wraps a function. When evaluated, it tracks which signals and
computeds the function reads and caches the result. When any dependency
changes, the cache is marked dirty and the change is passed on to whoever
read this Computed. On next read, it re-evaluates.

Computed values are lazy — a Computed nobody reads does no work, however
often its sources change.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from sigflow._tracking import Tracker, get_tracker

T = TypeVar("T")

_UNSET = object()


class Computed(Generic[T]):
    """A derived value that auto-tracks dependencies and caches the result."""

    __slots__ = ("_fn", "_value", "_dirty", "_tracker", "__weakref__")

    def __init__(self, fn: Callable[[], T], *, tracker: Tracker | None = None) -> None:
        self._fn = fn
        self._value = _UNSET
        self._dirty = True
        self._tracker = tracker if tracker is not None else get_tracker()

    @property
    def value(self) -> T:
        """Read the computed value. Recomputes if dirty."""
        self._tracker.track(self, "value")
        if self._dirty:
            self._recompute()
        return self._value

    def get(self) -> T:
        return self.value

    def peek(self) -> T:
        """Read the value without registering a dependency."""
        if self._dirty:
            self._recompute()
        return self._value

    @property
    def dirty(self) -> bool:
        return self._dirty

    def _recompute(self) -> None:
        """Re-evaluate the function, replacing the previous dependency set.

        If the function raises, the cached value and dirty flag are untouched
        and the error reaches the reader.
        """
        self._tracker.cleanup_context(self)
        value = self._tracker.with_tracking(self._fn, self)
        self._value = value
        self._dirty = False

    def update(self) -> None:
        """Called by the tracker when a dependency changed.

        Marks dirty and passes the change on to our own readers. We don't
        recompute eagerly — that happens on next read.
        """
        self._dirty = True
        self._tracker.trigger(self, "value")

    def dispose(self) -> None:
        """Disconnect from dependencies and dependents. The next read starts from scratch."""
        self._tracker.cleanup_context(self)
        self._tracker.clear_dependencies(self)
        self._dirty = True
        self._value = _UNSET

    def __repr__(self) -> str:
        name = getattr(self._fn, "__name__", repr(self._fn))
        state = "dirty" if self._dirty else f"cached={self._value!r}"
        return f"Computed({name}, {state})"


def computed(fn: Callable[[], T]) -> Computed[T]:
    """Decorator/factory to create a Computed from a function.

    Usage:
        counter = signal(0)

        @computed
        def doubled():
            return counter.value * 2

        doubled.value  # 0
        counter.value = 5
        doubled.value  # 10
    """
    return Computed(fn)

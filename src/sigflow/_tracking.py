"""Dependency tracking engine — the heart of sigflow.

A Tracker owns the execution-context stack, the forward and reverse
dependency indices, and the batching queue. Signals, Computeds and Effects
never talk to each other directly: reads call track(), writes call trigger(),
and the tracker works out who has to hear about it.

Invariant: an edge (target, key, context) is in the forward index
(target -> key -> contexts) iff the reverse index (context -> target -> keys)
holds it too. Every mutation below edits both sides.

Batching: inside batch_updates() notifications accumulate in an ordered,
deduplicated queue and are flushed once, when the outermost batch exits.
"""

from __future__ import annotations

import contextvars
import logging
import weakref
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Protocol, TypeVar, runtime_checkable

from sigflow.errors import CircularDependencyError

logger = logging.getLogger("sigflow.tracking")

R = TypeVar("R")


@runtime_checkable
class Subscriber(Protocol):
    """Anything the tracker can notify. Computed and Effect implement it."""

    def update(self) -> None: ...


class Tracker:
    """Registry of dependency edges plus the execution context stack.

    Both indices are weak-keyed, so the tracker never keeps a node alive on
    its own. Targets and contexts must be weak-referenceable.
    """

    def __init__(self) -> None:
        self._stack: list[Any] = []
        # target -> key -> subscribers (dict used as an ordered set)
        self._dependencies: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()
        # context -> target -> keys (both levels weak)
        self._subscriptions: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()
        self._batch_depth = 0
        self._pending: dict[Callable[[], Any], None] = {}
        # subscriber -> (target, key) pairs it is currently being notified for
        self._updating: dict[Any, list[tuple[Any, str]]] = {}

    # ─── Execution context ───────────────────────────────────────────────

    def with_tracking(self, fn: Callable[[], R], context: Any) -> R:
        """Run fn with context as the current reader. Pops even if fn raises."""
        self._stack.append(context)
        try:
            return fn()
        finally:
            self._stack.pop()

    def untracked(self, fn: Callable[[], R]) -> R:
        """Run fn without attributing its reads to any context."""
        return self.with_tracking(fn, None)

    @property
    def current_context(self) -> Any:
        return self._stack[-1] if self._stack else None

    @property
    def is_tracking(self) -> bool:
        return self.current_context is not None

    @property
    def stack_depth(self) -> int:
        return len(self._stack)

    # ─── Edges ───────────────────────────────────────────────────────────

    def track(self, target: Any, key: str) -> None:
        """Record that the current context read target.key. No-op outside a context."""
        context = self.current_context
        if context is None:
            return
        keyed = self._dependencies.setdefault(target, {})
        keyed.setdefault(key, {})[context] = None
        targets = self._subscriptions.setdefault(context, weakref.WeakKeyDictionary())
        targets.setdefault(target, set()).add(key)

    def trigger(self, target: Any, key: str) -> None:
        """Notify every subscriber of target.key.

        Raises CircularDependencyError if a context on the live stack is
        still being notified for this same target/key.
        """
        keyed = self._dependencies.get(target)
        if not keyed:
            return
        subscribers = keyed.get(key)
        if not subscribers:
            return

        self._check_circular(target, key)

        # Snapshot — updates re-track and edit the index while we iterate.
        for subscriber in list(subscribers):
            if not isinstance(subscriber, Subscriber):
                continue
            if self._batch_depth > 0:
                self._pending[subscriber.update] = None
            else:
                self._run_isolated(self._deliver, subscriber, target, key)

    def has_subscribers(self, target: Any, key: str) -> bool:
        keyed = self._dependencies.get(target)
        return bool(keyed and keyed.get(key))

    def cleanup_context(self, context: Any) -> None:
        """Drop every edge where context is the subscriber. Idempotent."""
        targets = self._subscriptions.pop(context, None)
        if not targets:
            return
        for target, keys in targets.items():
            keyed = self._dependencies.get(target)
            if keyed is None:
                continue
            for key in keys:
                subscribers = keyed.get(key)
                if subscribers is None:
                    continue
                subscribers.pop(context, None)
                if not subscribers:
                    del keyed[key]
            if not keyed:
                del self._dependencies[target]

    def clear_dependencies(self, target: Any) -> None:
        """Drop every edge where target is the source."""
        keyed = self._dependencies.pop(target, None)
        if not keyed:
            return
        for subscribers in keyed.values():
            for context in subscribers:
                targets = self._subscriptions.get(context)
                if targets is None:
                    continue
                targets.pop(target, None)
                if not targets:
                    del self._subscriptions[context]

    # ─── Batching ────────────────────────────────────────────────────────

    def queue_update(self, fn: Callable[[], Any]) -> None:
        """Defer fn to the end of the current batch, or run it now if not batching."""
        if self._batch_depth > 0:
            self._pending[fn] = None
        else:
            self._run_isolated(fn)

    def batch_updates(self, fn: Callable[[], R]) -> R:
        """Run fn inside a batch window and return its result."""
        with self.batching():
            return fn()

    @contextmanager
    def batching(self) -> Iterator[None]:
        """Enter a batching scope. Nested scopes flush once, at the outermost exit."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self._flush()

    @property
    def batch_depth(self) -> int:
        return self._batch_depth

    @property
    def is_batching(self) -> bool:
        return self._batch_depth > 0

    @property
    def pending_count(self) -> int:
        """Number of updates waiting for the batch to end. Useful for testing."""
        return len(self._pending)

    # ─── Internals ───────────────────────────────────────────────────────

    def _flush(self) -> None:
        """Run pending updates in insertion order, including ones queued meanwhile."""
        while self._pending:
            updates = list(self._pending)
            self._pending.clear()
            for index, update in enumerate(updates):
                try:
                    self._run_isolated(update)
                except CircularDependencyError:
                    # Unrun updates stay queued, ahead of anything queued meanwhile.
                    remaining = dict.fromkeys(updates[index + 1 :])
                    remaining.update(self._pending)
                    self._pending = remaining
                    raise

    def _deliver(self, subscriber: Subscriber, target: Any, key: str) -> None:
        marks = self._updating.setdefault(subscriber, [])
        marks.append((target, key))
        try:
            subscriber.update()
        finally:
            marks.pop()
            if not marks:
                del self._updating[subscriber]

    def _check_circular(self, target: Any, key: str) -> None:
        for context in self._stack:
            for marked_target, marked_key in self._updating.get(context, ()):
                if marked_target is target and marked_key == key:
                    raise CircularDependencyError(target, key)

    @staticmethod
    def _run_isolated(fn: Callable[..., Any], *args: Any) -> None:
        try:
            fn(*args)
        except CircularDependencyError:
            raise
        except Exception:
            logger.exception("Error in reactive update")


# Process-wide tracker. Nodes bind whichever tracker is current when they
# are constructed; use_tracker() swaps it for an isolated one.
global_tracker = Tracker()

_current_tracker: contextvars.ContextVar[Tracker] = contextvars.ContextVar(
    "current_tracker", default=global_tracker
)


def get_tracker() -> Tracker:
    return _current_tracker.get()


@contextmanager
def use_tracker(tracker: Tracker) -> Iterator[Tracker]:
    """Construct nodes against tracker instead of the global one.

    Usage:
        with use_tracker(Tracker()) as tracker:
            count = signal(0)
    """
    token = _current_tracker.set(tracker)
    try:
        yield tracker
    finally:
        _current_tracker.reset(token)


def get_pending_count() -> int:
    """Number of updates waiting on the current tracker. Useful for testing."""
    return get_tracker().pending_count

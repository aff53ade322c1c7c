"""Textual integration for sigflow. Opt-in — requires textual.

Guarded effects are Effect subclasses bound to an app. While the app is not
safe to query (not running, or inside pause()), a triggered guarded effect
is held back instead of run: its cleanup does not fire and its dependency
edges stay in place. Held effects re-run once the app is safe again, either
when pause() exits or on resume(app).

pause() is also a batch window, so writes made while the widget tree is being
rebuilt reach each guarded effect once, after the rebuild.

Callers own the returned effects and must dispose() them when the widget
that created them unmounts.
"""

from __future__ import annotations

import functools
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from textual.css.query import NoMatches

from sigflow.action import transaction
from sigflow.effect import Effect, _DataReaction

# Module-owned state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()
_held_back: dict[int, dict[Effect, None]] = {}


@contextmanager
def pause(app) -> Iterator[None]:
    """Suspend guarded effects during widget replacement.

    The app is marked safe again before the batch flushes, so effects
    triggered inside the block run against the new widget tree.
    """
    key = id(app)
    with transaction():
        _paused_apps.add(key)
        try:
            yield
        finally:
            _paused_apps.discard(key)
            resume(app)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def resume(app) -> None:
    """Re-run guarded effects held back while app was unsafe.

    Call after the app starts running for effects created before mount.
    Effects disposed in the meantime are skipped.
    """
    held = _held_back.pop(id(app), None)
    if not held:
        return
    for guarded in held:
        guarded.update()


def _ignore_no_matches(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Swallow NoMatches from fn, and from the cleanup it returns."""

    @functools.wraps(fn)
    def _safe(*args: Any) -> Any:
        try:
            result = fn(*args)
        except NoMatches:
            return None
        return _ignore_no_matches(result) if callable(result) else result

    return _safe


class _Guarded:
    """Gate for Effect subclasses: hold back while unsafe, marshal off-thread updates."""

    __slots__ = ()

    def _hold_if_unsafe(self) -> bool:
        key = id(self._app)
        if is_safe(self._app):
            held = _held_back.get(key)
            if held is not None:
                held.pop(self, None)
                if not held:
                    del _held_back[key]
            return False
        _held_back.setdefault(key, {})[self] = None
        return True

    def update(self) -> None:
        if not self._active or self._hold_if_unsafe():
            return
        if threading.get_ident() != self._main:
            self._app.call_from_thread(super().update)
        else:
            super().update()

    def _run(self) -> None:
        if not self._hold_if_unsafe():
            super()._run()


class _GuardedEffect(_Guarded, Effect):
    __slots__ = ("_app", "_main")

    def __init__(self, app, fn: Callable[[], Any]) -> None:
        self._app = app
        self._main = threading.get_ident()
        super().__init__(_ignore_no_matches(fn))


class _GuardedReaction(_Guarded, _DataReaction):
    __slots__ = ("_app", "_main")

    def __init__(self, app, data_fn, effect_fn, *, fire_immediately: bool = False) -> None:
        self._app = app
        self._main = threading.get_ident()
        super().__init__(data_fn, _ignore_no_matches(effect_fn), fire_immediately=fire_immediately)


def reaction(app, data_fn, effect_fn, *, fire_immediately=False) -> Effect:
    """reaction() that safely bridges to Textual widgets.

    Held back while the app is unsafe, catches NoMatches from widget
    queries, and marshals cross-thread updates via call_from_thread.
    """
    return _GuardedReaction(app, data_fn, effect_fn, fire_immediately=fire_immediately)


def effect(app, fn) -> Effect:
    """effect() that safely bridges to Textual widgets.

    Same guards as reaction(). A cleanup returned by fn also has NoMatches
    swallowed.
    """
    return _GuardedEffect(app, fn)

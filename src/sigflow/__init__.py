"""Sigflow: fine-grained reactive signals, computeds and effects for Python."""

from importlib.metadata import version as _version

__version__ = _version("sigflow")

from sigflow.errors import SigflowError, CircularDependencyError
from sigflow._tracking import (
    Subscriber,
    Tracker,
    get_pending_count,
    get_tracker,
    global_tracker,
    use_tracker,
)
from sigflow.signal import Signal, signal, set_scheduler
from sigflow.computed import Computed, computed
from sigflow.effect import Effect, effect, reaction
from sigflow.action import action, batch, transaction
# textual NOT auto-imported — opt-in only

__all__ = [
    "Signal",
    "signal",
    "Computed",
    "computed",
    "Effect",
    "effect",
    "reaction",
    "batch",
    "action",
    "transaction",
    "Tracker",
    "Subscriber",
    "global_tracker",
    "get_tracker",
    "use_tracker",
    "get_pending_count",
    "set_scheduler",
    "SigflowError",
    "CircularDependencyError",
]

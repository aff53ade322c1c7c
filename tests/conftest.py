import pytest

from sigflow import Tracker, use_tracker


@pytest.fixture(autouse=True)
def tracker():
    """Every test builds its nodes against a fresh tracker."""
    with use_tracker(Tracker()) as t:
        yield t

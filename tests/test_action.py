"""Tests for batch(), action batching and the transaction context manager."""

import pytest

from sigflow import action, batch, effect, get_pending_count, signal, transaction


class TestBatch:
    def test_single_notification_with_final_value(self):
        """Scenario: two writes in one batch, one logged notification of 2."""
        a = signal(0)
        log = []
        effect(lambda: log.append(a.value))

        def writes():
            a.value = 1
            a.value = 2

        batch(writes)
        assert log == [0, 2]

    def test_returns_result(self):
        assert batch(lambda: "done") == "done"

    def test_pending_until_outermost_exit(self):
        a = signal(0)
        effect(lambda: a.value)

        def writes():
            a.value = 1
            assert get_pending_count() == 1

        batch(writes)
        assert get_pending_count() == 0

    def test_write_back_to_original_value_still_flushes_once(self):
        a = signal(0)
        log = []
        effect(lambda: log.append(a.value))

        def writes():
            a.value = 1
            a.value = 0

        batch(writes)
        assert log == [0, 0]


class TestAction:
    def test_batches_updates(self):
        a = signal(0)
        b = signal(0)
        log = []
        effect(lambda: log.append((a.value, b.value)))
        assert log == [(0, 0)]

        @action
        def update_both():
            a.value = 1
            b.value = 2

        update_both()
        # Should see (1, 2) not intermediate (1, 0)
        assert log == [(0, 0), (1, 2)]

    def test_nested_actions(self):
        s = signal(0)
        log = []
        effect(lambda: log.append(s.value))

        @action
        def inner():
            s.value = 2

        @action
        def outer():
            s.value = 1
            inner()
            s.value = 3

        outer()
        # Only fires after outermost action completes
        assert log == [0, 3]

    def test_preserves_return_value_and_name(self):
        @action
        def compute(x, y=1):
            return x + y

        assert compute(41) == 42
        assert compute.__name__ == "compute"

    def test_flushes_when_action_raises(self):
        s = signal(0)
        log = []
        effect(lambda: log.append(s.value))

        @action
        def fail():
            s.value = 1
            raise RuntimeError("failed after write")

        with pytest.raises(RuntimeError):
            fail()
        assert log == [0, 1]


class TestTransaction:
    def test_batches_updates(self):
        a = signal(0)
        b = signal(0)
        log = []
        effect(lambda: log.append((a.value, b.value)))

        with transaction():
            a.value = 10
            b.value = 20

        assert log == [(0, 0), (10, 20)]

    def test_nested_transactions(self):
        s = signal(0)
        log = []
        effect(lambda: log.append(s.value))

        with transaction():
            s.value = 1
            with transaction():
                s.value = 2
            s.value = 3

        assert log == [0, 3]

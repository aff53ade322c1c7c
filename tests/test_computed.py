"""Tests for Computed values."""

import pytest

from sigflow import Computed, batch, computed, effect, signal


class TestComputed:
    def test_lazy_eval(self):
        call_count = 0
        s = signal(5)

        def fn():
            nonlocal call_count
            call_count += 1
            return s.value * 2

        c = Computed(fn)
        assert call_count == 0  # not yet evaluated
        assert c.dirty is True
        assert c.value == 10
        assert call_count == 1
        assert c.dirty is False

    def test_caches_until_dirty(self):
        call_count = 0
        s = signal(5)

        def fn():
            nonlocal call_count
            call_count += 1
            return s.value * 2

        c = Computed(fn)
        for _ in range(5):
            c.value
        assert call_count == 1  # cached, no re-eval

    def test_recomputes_on_read_not_on_write(self):
        call_count = 0
        s = signal(1)

        def fn():
            nonlocal call_count
            call_count += 1
            return s.value + 1

        c = Computed(fn)
        assert c.value == 2
        s.value = 2
        s.value = 3
        s.value = 4
        assert call_count == 1  # invalidated three times, nobody read
        assert c.dirty is True
        assert c.value == 5
        assert call_count == 2

    def test_dependency_tracking(self):
        """Computed tracks dependencies dynamically."""
        flag = signal(True)
        a = signal(1)
        b = signal(2)

        c = Computed(lambda: a.value if flag.value else b.value)
        assert c.value == 1

        flag.value = False
        assert c.value == 2  # now depends on b, not a

    def test_drops_stale_dependencies(self):
        flag = signal(True)
        a = signal(1)
        b = signal(2)
        c = Computed(lambda: a.value if flag.value else b.value)
        c.value
        flag.value = False
        c.value
        a.value = 100
        assert c.dirty is False  # a is no longer a dependency

    def test_chained_computed(self):
        s = signal(3)
        doubled = Computed(lambda: s.value * 2)
        quadrupled = Computed(lambda: doubled.value * 2)
        assert quadrupled.value == 12
        s.value = 5
        assert doubled.dirty is True
        assert quadrupled.dirty is True
        assert quadrupled.value == 20

    def test_peek(self):
        s = signal(2)
        c = Computed(lambda: s.value * 10)
        log = []
        effect(lambda: log.append(c.peek()))
        assert log == [20]
        s.value = 3
        assert log == [20]
        assert c.peek() == 30

    def test_get_alias(self):
        c = Computed(lambda: "x")
        assert c.get() == "x"

    def test_failure_leaves_state_untouched(self):
        s = signal(1)

        def fn():
            if s.value == 0:
                raise ZeroDivisionError("zero")
            return 10 / s.value

        c = Computed(fn)
        assert c.value == 10
        s.value = 0
        with pytest.raises(ZeroDivisionError):
            c.value
        assert c.dirty is True
        s.value = 5
        assert c.value == 2

    def test_dispose(self):
        s = signal(5)
        c = Computed(lambda: s.value * 2)
        c.value
        c.dispose()
        s.value = 10
        # Disposal cleared the cache; the next read evaluates from scratch.
        assert c.dirty is True
        assert c.value == 20

    def test_dispose_detaches_readers(self):
        s = signal(1)
        c = Computed(lambda: s.value)
        log = []
        effect(lambda: log.append(c.value))
        c.dispose()
        s.value = 2
        assert log == [1]

    def test_repr(self):
        def total():
            return 3

        c = Computed(total)
        assert repr(c) == "Computed(total, dirty)"
        c.value
        assert repr(c) == "Computed(total, cached=3)"


class TestComputedPropagation:
    def test_propagates_to_effects(self):
        """Scenario: a -> computed -> effect logs [2, 4]."""
        a = signal(1)
        b = computed(lambda: a.value * 2)
        log = []
        effect(lambda: log.append(b.value))
        a.value = 2
        assert log == [2, 4]

    def test_diamond_runs_once_per_path_with_fresh_values(self):
        """An effect reading both a computed and its source hears from each edge."""
        a = signal(1)
        doubled = computed(lambda: a.value * 2)
        log = []
        effect(lambda: log.append((doubled.value, a.value)))
        a.value = 2
        assert log == [(2, 1), (4, 2), (4, 2)]

    def test_nested_computed_in_batch(self):
        a = signal(1)
        b = signal(10)
        total = Computed(lambda: a.value + b.value)
        label = Computed(lambda: f"total={total.value}")
        log = []
        effect(lambda: log.append(label.value))

        def writes():
            a.value = 2
            b.value = 20

        batch(writes)
        assert log == ["total=11", "total=22"]


class TestComputedDecorator:
    def test_decorator_factory(self):
        s = signal(7)

        @computed
        def doubled():
            return s.value * 2

        assert isinstance(doubled, Computed)
        assert doubled.value == 14
        s.value = 3
        assert doubled.value == 6

"""Tests for the lifecycle callback registry."""

from virtwrap.resilience.callbacks import RECONNECTED, CallbackRegistry, LifecycleEvent


def _callback(name):
    def cb(session, domain, event):
        pass

    cb.__name__ = name
    return cb


class TestLifecycleEvent:
    """Test event values."""

    def test_reconnected_sentinel(self):
        assert RECONNECTED.reconnected is True
        assert RECONNECTED == LifecycleEvent(reconnected=True)

    def test_regular_event(self):
        event = LifecycleEvent(event=5, detail=1)
        assert event.reconnected is False
        assert event != RECONNECTED


class TestCallbackRegistry:
    """Test registry operations."""

    def test_empty(self):
        registry = CallbackRegistry()
        assert len(registry) == 0
        assert registry.drain() == []

    def test_drain_returns_in_registration_order(self):
        """Test that drain keeps order and empties the registry."""
        registry = CallbackRegistry()
        a, b, c = _callback("a"), _callback("b"), _callback("c")
        for cb in (a, b, c):
            registry.add(cb)

        assert registry.drain() == [a, b, c]
        assert len(registry) == 0

    def test_add_after_drain_goes_to_next_batch(self):
        """Test that re-registration lands in the fresh registry."""
        registry = CallbackRegistry()
        a = _callback("a")
        registry.add(a)

        drained = registry.drain()
        registry.add(a)

        assert drained == [a]
        assert len(registry) == 1
        assert registry.drain() == [a]

    def test_len_counts_pending_callbacks(self):
        registry = CallbackRegistry()
        registry.add(_callback("a"))
        registry.add(_callback("b"))

        assert len(registry) == 2

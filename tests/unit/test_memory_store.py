"""Tests for the in-memory feature store and the shared store contract."""

from unittest.mock import MagicMock

import pytest

from togglekit.core.context import Context
from togglekit.core.events import UNKNOWN_FEATURE_RESOLVED
from togglekit.core.feature_store.memory import InMemoryFeatureStore


@pytest.fixture
def store(events):
    return InMemoryFeatureStore(events=events)


class TestResolve:
    """Tests for resolve."""

    def test_beta_scenario(self, store, admin, guest_user):
        """Test a resolver enabling a feature only for admin."""
        resolver = MagicMock(side_effect=lambda ctx: ctx.id == "admin")
        store.define("beta", resolver)

        assert store.resolve("beta", admin) is True
        assert store.resolve("beta", guest_user) is False
        assert store.resolve("beta", admin) is True
        assert resolver.call_count == 2

    def test_resolver_called_once_per_context(self, store, admin):
        calls = []
        store.define("beta", lambda ctx: calls.append(ctx) or "on")
        for _ in range(5):
            assert store.resolve("beta", admin) == "on"
        assert len(calls) == 1

    def test_unknown_feature(self, store, events, admin):
        """Test undefined features return False, emit an event and store nothing."""
        assert store.resolve("missing", admin) is False
        assert events.names() == [UNKNOWN_FEATURE_RESOLVED]
        assert events.events[0][1] == {"feature": "missing", "context": admin}
        assert store.list_stored() == []

    def test_unknown_distinct_from_false(self, store, events, admin):
        """Test a defined feature resolving to False does not emit."""
        store.define("off", False)
        assert store.resolve("off", admin) is False
        assert events.events == []
        assert store.list_stored() == ["off"]

    def test_events_disabled(self, events, admin):
        store = InMemoryFeatureStore(events=events, events_enabled=False)
        assert store.resolve("missing", admin) is False
        assert events.events == []

    def test_falsy_values_are_cached(self, store, admin):
        """Test None, 0 and empty string count as stored values."""
        for name, value in (("none", None), ("zero", 0), ("empty", "")):
            calls = []
            store.define(name, lambda ctx, v=value: calls.append(1) or v)
            assert store.resolve(name, admin) == value
            assert store.resolve(name, admin) == value
            assert len(calls) == 1

    def test_set_on_undefined_name(self, store, events, admin):
        """Test an explicitly stored value wins over unknown-feature handling."""
        store.set("adhoc", admin, "x")
        assert store.resolve("adhoc", admin) == "x"
        assert events.events == []

    def test_define_does_not_touch_stored(self, store, admin):
        store.define("color", "red")
        assert store.resolve("color", admin) == "red"
        store.define("color", "blue")
        assert store.resolve("color", admin) == "red"
        assert store.resolve("color", Context("user", "other")) == "blue"


class TestMutations:
    """Tests for set, delete, purge and set_for_all_contexts."""

    def test_set_bypasses_resolver(self, store, admin):
        resolver = MagicMock(return_value=True)
        store.define("beta", resolver)
        store.set("beta", admin, "custom")
        assert store.resolve("beta", admin) == "custom"
        resolver.assert_not_called()

    def test_set_for_all_contexts(self, store, admin, guest_user):
        store.define("beta", True)
        store.resolve("beta", admin)
        store.set_for_all_contexts("beta", "v2")
        assert "beta" not in store.list_stored()
        assert store.resolve("beta", admin) == "v2"
        assert store.resolve("beta", guest_user) == "v2"

    def test_delete(self, store, admin, guest_user):
        store.define("beta", True)
        store.resolve("beta", admin)
        store.resolve("beta", guest_user)
        store.delete("beta", admin)
        assert store.retrieve("beta", admin) is None
        assert store.retrieve("beta", guest_user).value is True

    def test_delete_absent(self, store, admin):
        store.delete("nothing", admin)

    def test_purge(self, store, admin):
        for name in ("a", "b", "c"):
            store.set(name, admin, True)
        store.purge([])
        assert sorted(store.list_stored()) == ["a", "b", "c"]
        store.purge(["a"])
        assert sorted(store.list_stored()) == ["b", "c"]
        store.purge("b")
        assert store.list_stored() == ["c"]
        store.purge()
        assert store.list_stored() == []

    def test_flush_cache_keeps_definitions(self, store, admin):
        calls = []
        store.define("beta", lambda ctx: calls.append(1) or True)
        store.resolve("beta", admin)
        store.flush_cache()
        assert store.list_stored() == []
        assert store.list_defined() == ["beta"]
        store.resolve("beta", admin)
        assert len(calls) == 2


class TestBatch:
    """Tests for resolve_many and values_for."""

    def test_resolve_many_matches_resolve(self, store, events):
        store.define("beta", lambda ctx: ctx.id == "admin")
        store.define("color", "red")
        contexts = [Context("user", "admin"), Context("user", "bob")]

        result = store.resolve_many({"beta": contexts, "color": contexts, "ghost": contexts[:1]})

        assert result == {"beta": [True, False], "color": ["red", "red"], "ghost": [False]}
        assert events.features() == ["ghost"]

    def test_values_for(self, store, admin, guest_user):
        store.set("a", admin, 1)
        store.set("b", admin, None)
        store.set("c", guest_user, True)
        assert store.values_for(admin) == {"a": 1, "b": None}

    def test_constructor_resolvers(self, admin):
        store = InMemoryFeatureStore(resolvers={"beta": True, "gamma": lambda ctx: 3})
        assert store.is_defined("beta")
        assert store.resolve("gamma", admin) == 3

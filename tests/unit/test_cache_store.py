"""Tests for the cache backends and the cache-tier feature store."""

import json
from unittest.mock import MagicMock

import pytest

from togglekit.core.context import Context
from togglekit.core.errors import (
    ConfigurationError,
    ErrorCode,
    InvalidTtlConfigurationError,
)
from togglekit.core.feature_store.cache import (
    ArrayCache,
    CacheFeatureStore,
    RedisCache,
    parse_ttl,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ArrayCache(clock=clock)


@pytest.fixture
def store(cache, events):
    return CacheFeatureStore(cache, prefix="features", ttl=60, events=events)


class TestArrayCache:
    """Tests for ArrayCache."""

    def test_put_expires(self, cache, clock):
        cache.put("k", 1, 10)
        assert cache.get("k") == 1
        clock.now += 10
        assert cache.get("k") is None
        assert cache.has("k") is False

    def test_forever(self, cache, clock):
        cache.forever("k", [1])
        clock.now += 10 ** 6
        assert cache.get("k") == [1]

    def test_values_are_copied(self, cache):
        value = ["a"]
        cache.forever("k", value)
        value.append("b")
        cache.get("k").append("c")
        assert cache.get("k") == ["a"]

    def test_keys_pattern(self, cache):
        cache.forever("features:a", 1)
        cache.forever("features:b", 1)
        cache.forever("other:c", 1)
        assert sorted(cache.keys("features:*")) == ["features:a", "features:b"]

    def test_forget_and_flush(self, cache):
        cache.forever("a", 1)
        assert cache.forget("a") is True
        assert cache.forget("a") is False
        cache.forever("b", 1)
        cache.flush()
        assert cache.keys() == []


class TestRedisCache:
    """Tests for RedisCache against a mocked client."""

    def test_get_decodes_json(self):
        client = MagicMock()
        client.get.return_value = json.dumps({"t": "bool", "v": False})
        cache = RedisCache(client, namespace="app:")
        assert cache.get("k") == {"t": "bool", "v": False}
        client.get.assert_called_once_with("app:k")

    def test_get_miss_returns_default(self):
        client = MagicMock()
        client.get.return_value = None
        assert RedisCache(client).get("k", "dflt") == "dflt"

    def test_put_sets_expiry(self):
        client = MagicMock()
        RedisCache(client).put("k", [1], 30)
        client.set.assert_called_once_with("k", "[1]", ex=30)

    def test_forever_has_no_expiry(self):
        client = MagicMock()
        RedisCache(client).forever("k", "v")
        client.set.assert_called_once_with("k", '"v"')

    def test_keys_strip_namespace(self):
        client = MagicMock()
        client.scan_iter.return_value = iter(["app:features:a", "app:features:b"])
        keys = RedisCache(client, namespace="app:").keys("features:*")
        assert keys == ["features:a", "features:b"]
        client.scan_iter.assert_called_once_with(match="app:features:*")

    def test_flush_namespaced(self):
        client = MagicMock()
        client.scan_iter.return_value = iter(["app:a", "app:b"])
        RedisCache(client, namespace="app:").flush()
        client.delete.assert_called_once_with("app:a", "app:b")
        client.flushdb.assert_not_called()

    def test_flush_without_namespace(self):
        client = MagicMock()
        RedisCache(client).flush()
        client.flushdb.assert_called_once()


class TestParseTtl:
    """Tests for TTL validation."""

    def test_valid(self):
        assert parse_ttl(None) is None
        assert parse_ttl(0) == 0
        assert parse_ttl(60) == 60
        assert parse_ttl("120") == 120

    @pytest.mark.parametrize("ttl", ["soon", -1, True, [60], {"s": 1}])
    def test_invalid(self, ttl):
        with pytest.raises(InvalidTtlConfigurationError) as exc_info:
            parse_ttl(ttl)
        assert exc_info.value.code == ErrorCode.CONFIGURATION_ERROR


class TestCacheFeatureStore:
    """Tests for CacheFeatureStore."""

    def test_key_layout(self, store, cache, admin):
        store.define("beta", True)
        store.resolve("beta", admin)
        assert cache.get("features:beta:user|admin") == {"t": "bool", "v": True}
        assert cache.get("features:__index") == ["beta"]
        assert cache.get("features:beta.__contexts") == ["user|admin"]

    def test_resolver_called_once(self, store, admin):
        resolver = MagicMock(return_value="on")
        store.define("beta", resolver)
        assert store.resolve("beta", admin) == "on"
        assert store.resolve("beta", admin) == "on"
        assert resolver.call_count == 1

    def test_null_value_is_a_hit(self, store, admin):
        """Test a stored None is not mistaken for a cache miss."""
        resolver = MagicMock(return_value=None)
        store.define("nothing", resolver)
        assert store.resolve("nothing", admin) is None
        assert store.resolve("nothing", admin) is None
        assert resolver.call_count == 1

    def test_ttl_expiry_recomputes(self, store, clock, admin):
        resolver = MagicMock(return_value=True)
        store.define("beta", resolver)
        store.resolve("beta", admin)
        clock.now += 61
        store.resolve("beta", admin)
        assert resolver.call_count == 2

    def test_invalid_ttl_raised_on_write(self, cache, admin):
        """Test a bad TTL is accepted at construction and rejected on write."""
        store = CacheFeatureStore(cache, ttl="later")
        store.define("beta", True)
        with pytest.raises(InvalidTtlConfigurationError):
            store.resolve("beta", admin)

    def test_forever_ttl(self, cache, clock, admin):
        store = CacheFeatureStore(cache, ttl=None)
        store.set("beta", admin, "x")
        clock.now += 10 ** 7
        assert store.resolve("beta", admin) == "x"

    def test_zero_ttl_keeps_index_entry(self, cache, admin):
        """Test a zero TTL drops the value but still indexes the name."""
        store = CacheFeatureStore(cache, ttl=0)
        store.set("beta", admin, "x")
        assert store.retrieve("beta", admin) is None
        assert store.list_stored() == ["beta"]
        assert cache.get("features:beta.__contexts") == ["user|admin"]
        assert store.values_for(admin) == {}

    def test_unknown_feature_not_cached(self, store, cache, events, admin):
        assert store.resolve("ghost", admin) is False
        assert events.features() == ["ghost"]
        assert cache.keys("features:*") == []

    def test_empty_prefix_rejected(self, cache):
        with pytest.raises(ConfigurationError):
            CacheFeatureStore(cache, prefix="")

    def test_delete_untracks_context(self, store, cache, admin, guest_user):
        store.set("beta", admin, True)
        store.set("beta", guest_user, False)
        store.delete("beta", admin)
        assert cache.get("features:beta.__contexts") == ["user|guest"]
        assert store.list_stored() == ["beta"]
        store.delete("beta", guest_user)
        assert store.list_stored() == []
        assert cache.has("features:beta.__contexts") is False

    def test_set_for_all_contexts(self, store, cache, admin, guest_user):
        store.set("beta", admin, True)
        store.set("beta", guest_user, True)
        store.set_for_all_contexts("beta", "v2")
        assert store.list_stored() == []
        assert cache.has("features:beta:user|admin") is False
        assert store.resolve("beta", guest_user) == "v2"

    def test_purge_named_and_all(self, store, admin):
        store.set("a", admin, 1)
        store.set("b", admin, 2)
        store.purge([])
        assert sorted(store.list_stored()) == ["a", "b"]
        store.purge(["a"])
        assert store.list_stored() == ["b"]
        assert store.retrieve("a", admin) is None
        store.purge()
        assert store.list_stored() == []
        assert store.retrieve("b", admin) is None

    def test_flush_cache_only_touches_prefix(self, store, cache, admin):
        cache.forever("unrelated", 1)
        store.set("a", admin, 1)
        store.flush_cache()
        assert store.list_stored() == []
        assert cache.get("unrelated") == 1

    def test_value_fidelity(self, store, admin):
        for name, value in (("f", False), ("z", 0), ("s", ""), ("d", {"a": [1]}), ("x", 1.5)):
            store.set(name, admin, value)
            assert store.resolve(name, admin) == value
            assert type(store.resolve(name, admin)) is type(value)

    def test_values_for(self, store, admin, guest_user):
        store.set("a", admin, 1)
        store.set("b", guest_user, 2)
        assert store.values_for(admin) == {"a": 1}

    def test_over_redis_mock(self, admin):
        """Test the store writes JSON envelopes through a Redis client."""
        client = MagicMock()
        client.get.return_value = None
        store = CacheFeatureStore(RedisCache(client), prefix="ff", ttl=30)
        store.set("beta", admin, True)
        client.set.assert_any_call("ff:beta:user|admin", '{"t": "bool", "v": true}', ex=30)

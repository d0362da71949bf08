"""Tests for percentage rollout assignment."""

import random
import zlib

from togglekit.core.context import Context
from togglekit.core.feature_store.memory import InMemoryFeatureStore
from togglekit.core.rollout import PercentageResolver, assign, bucket_for


class TestBucket:
    """Tests for bucket_for."""

    def test_matches_crc32(self):
        """Test bucket is CRC32 of seed:id modulo 101."""
        expected = zlib.crc32(b"seed1:user-42") % 101
        assert bucket_for("user-42", "seed1") == expected

    def test_range(self):
        """Test buckets stay within 0..100."""
        for i in range(500):
            assert 0 <= bucket_for(f"user-{i}", "s") <= 100


class TestAssign:
    """Tests for assign."""

    def test_deterministic(self):
        """Test the same inputs give the same answer every time."""
        first = assign("user-42", "new-ui", "seed1", 25, sticky=True)
        for _ in range(1000):
            assert assign("user-42", "new-ui", "seed1", 25, sticky=True) is first

    def test_distribution(self):
        """Test roughly a quarter of contexts fall inside a 25% rollout."""
        included = sum(
            assign(f"user-{i}", "new-ui", "seed1", 25, sticky=True)
            for i in range(1, 1001)
        )
        assert 180 <= included <= 320

    def test_monotonic(self):
        """Test raising the percentage never removes included contexts."""
        ids = [f"user-{i}" for i in range(300)]
        previous = set()
        for percentage in (0, 10, 25, 50, 75, 99, 100):
            current = {i for i in ids if assign(i, "flag", "s", percentage)}
            assert previous <= current
            previous = current

    def test_boundaries(self):
        """Test 0% excludes and 100% includes everyone."""
        for i in range(200):
            assert assign(f"u{i}", "flag", percentage=0) is False
            assert assign(f"u{i}", "flag", percentage=100) is True

    def test_clamped(self):
        """Test out-of-range percentages are clamped."""
        assert assign("u1", "flag", percentage=-5) is False
        assert assign("u1", "flag", percentage=250) is True

    def test_seed_defaults_to_feature_key(self):
        """Test a missing seed hashes with the feature name."""
        for i in range(100):
            assert assign(f"u{i}", "checkout", None, 40) == assign(f"u{i}", "checkout", "checkout", 40)

    def test_non_sticky_uses_rng(self):
        """Test non-sticky draws come from the random source."""
        rng = random.Random(7)
        draws = [assign("u1", "flag", percentage=50, sticky=False, rng=rng) for _ in range(200)]
        assert True in draws and False in draws

        replay = random.Random(7)
        expected = [replay.randint(1, 100) <= 50 for _ in range(200)]
        assert draws == expected


class TestPercentageResolver:
    """Tests for PercentageResolver."""

    def test_matches_assign(self):
        resolver = PercentageResolver("new-ui", 30, seed="seed1")
        for i in range(50):
            ctx = Context("user", f"user-{i}")
            assert resolver.evaluate(ctx) == assign(f"user-{i}", "new-ui", "seed1", 30)

    def test_store_persists_rollout(self):
        """Test a store materializes the rollout decision once per context."""
        store = InMemoryFeatureStore()
        store.define("new-ui", PercentageResolver("new-ui", 50))
        ctx = Context("user", "user-42")
        value = store.resolve("new-ui", ctx)
        assert value == assign("user-42", "new-ui", None, 50)
        assert store.retrieve("new-ui", ctx).value == value

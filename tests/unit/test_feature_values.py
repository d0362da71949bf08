"""Tests for tagged feature values and resolvers."""

import pytest

from togglekit.core.context import Context
from togglekit.core.errors import ErrorCode, FeatureStoreError, ValueEncodingError
from togglekit.core.feature_store.base import (
    CallableResolver,
    FeatureValue,
    StaticResolver,
    ValueKind,
    as_resolver,
    decode_value,
    encode_value,
)


class TestFeatureValue:
    """Tests for FeatureValue."""

    @pytest.mark.parametrize(
        "value,kind",
        [
            (None, ValueKind.NULL),
            (False, ValueKind.BOOL),
            (True, ValueKind.BOOL),
            (0, ValueKind.INT),
            (1.5, ValueKind.FLOAT),
            ("", ValueKind.STRING),
            ({"plan": "pro"}, ValueKind.STRUCTURED),
            ([1, 2], ValueKind.STRUCTURED),
        ],
    )
    def test_kind(self, value, kind):
        assert FeatureValue.of(value).kind is kind

    def test_falsy_values_stay_distinct(self):
        """Test None, False, 0 and empty string decode to themselves."""
        for value in (None, False, 0, ""):
            decoded = decode_value(encode_value(value))
            assert decoded == value
            assert type(decoded) is type(value)

    def test_float_survives_integral_value(self):
        """Test 2.0 comes back as a float, not an int."""
        decoded = decode_value(encode_value(2.0))
        assert decoded == 2.0
        assert isinstance(decoded, float)

    def test_tuple_becomes_list(self):
        assert FeatureValue.of((1, 2)).value == [1, 2]

    def test_unsupported_type(self):
        """Test arbitrary objects are rejected."""
        with pytest.raises(ValueEncodingError) as exc_info:
            FeatureValue.of(object())
        assert exc_info.value.code == ErrorCode.ENCODE_FAILURE

    def test_unserializable_structure(self):
        with pytest.raises(ValueEncodingError):
            FeatureValue.of({"when": object()})

    def test_malformed_json(self):
        with pytest.raises(FeatureStoreError) as exc_info:
            FeatureValue.from_json("{not json")
        assert exc_info.value.code == ErrorCode.DECODE_FAILURE

    def test_malformed_envelope(self):
        with pytest.raises(FeatureStoreError):
            FeatureValue.from_dict({"t": "nope", "v": 1})


class TestResolvers:
    """Tests for resolver wrapping."""

    def test_static(self):
        assert StaticResolver("blue").evaluate(Context("user", 1)) == "blue"

    def test_callable(self):
        resolver = CallableResolver(lambda ctx: ctx.id == "admin")
        assert resolver.evaluate(Context("user", "admin")) is True
        assert resolver.evaluate(Context("user", "bob")) is False

    def test_as_resolver(self):
        assert isinstance(as_resolver(lambda ctx: True), CallableResolver)
        assert isinstance(as_resolver(False), StaticResolver)
        static = StaticResolver(1)
        assert as_resolver(static) is static

"""Tests for value encoding."""

import json
import pickle

import pytest

from metadb.codec import ABSENT, ValueKind, decode, encode, is_structured, kind_of
from metadb.exceptions import CorruptValueError


class TestEncode:
    """Tests for encode."""

    def test_wraps_value_in_envelope(self) -> None:
        """Values are stored inside a single-field envelope."""
        assert json.loads(encode({"a": 1})) == {"value": {"a": 1}}

    def test_null_keeps_envelope(self) -> None:
        """None is stored as an explicit null."""
        assert json.loads(encode(None)) == {"value": None}

    def test_absent_is_empty_envelope(self) -> None:
        """ABSENT is stored without a value field."""
        assert json.loads(encode(ABSENT)) == {}

    def test_rejects_unsupported_types(self) -> None:
        """Values outside the JSON model raise TypeError."""
        with pytest.raises(TypeError):
            encode(object())

    @pytest.mark.parametrize("value", [{1: "a"}, {"a": {2: "b"}}, [{None: 1}]])
    def test_rejects_non_string_keys(self, value) -> None:
        """Object keys are not silently turned into strings."""
        with pytest.raises(TypeError, match="keys must be strings"):
            encode(value)

    @pytest.mark.parametrize("value", [[1, object()], {"a": {"b": {1, 2}}}])
    def test_rejects_unsupported_nested_values(self, value) -> None:
        """Nested values are checked too."""
        with pytest.raises(TypeError, match="Unsupported"):
            encode(value)

    def test_rejects_nested_absent(self) -> None:
        """ABSENT is only storable at the top level."""
        with pytest.raises(TypeError, match="ABSENT"):
            encode({"a": ABSENT})


class TestDecode:
    """Tests for decode."""

    @pytest.mark.parametrize(
        "value",
        [None, True, 0, 3.5, "text", "", [], [1, [2, 3]], {"a": {"b": None}}],
    )
    def test_inverts_encode(self, value) -> None:
        """Decoding an encoded value gives it back."""
        assert decode(encode(value)) == value

    def test_absent_and_null_stay_distinct(self) -> None:
        """ABSENT and None decode to different values."""
        assert decode(encode(ABSENT)) is ABSENT
        assert decode(encode(None)) is None

    def test_invalid_json_raises(self) -> None:
        """Unparseable text raises CorruptValueError."""
        with pytest.raises(CorruptValueError) as exc_info:
            decode("{not json")
        assert exc_info.value.raw == "{not json"

    def test_non_envelope_raises(self) -> None:
        """A JSON scalar is not a valid envelope."""
        with pytest.raises(CorruptValueError):
            decode("42")

    def test_unknown_fields_raise(self) -> None:
        """Extra envelope fields are rejected."""
        with pytest.raises(CorruptValueError, match="Unexpected"):
            decode('{"value": 1, "other": 2}')


class TestKinds:
    """Tests for value kinds."""

    @pytest.mark.parametrize(
        ("value", "kind"),
        [
            (ABSENT, ValueKind.ABSENT),
            (None, ValueKind.NULL),
            (False, ValueKind.BOOLEAN),
            (1, ValueKind.NUMBER),
            (1.5, ValueKind.NUMBER),
            ("s", ValueKind.STRING),
            ({}, ValueKind.OBJECT),
            ([], ValueKind.ARRAY),
            ((1, 2), ValueKind.ARRAY),
        ],
    )
    def test_kind_of(self, value, kind) -> None:
        """Each value maps to its tag."""
        assert kind_of(value) is kind

    def test_only_objects_and_arrays_are_structured(self) -> None:
        """Scalars, None and ABSENT are not structured."""
        assert is_structured({"a": 1})
        assert is_structured([1])
        assert not is_structured("x")
        assert not is_structured(None)
        assert not is_structured(ABSENT)

    def test_absent_is_singleton(self) -> None:
        """ABSENT survives pickling as the same object."""
        assert pickle.loads(pickle.dumps(ABSENT)) is ABSENT
        assert repr(ABSENT) == "ABSENT"
        assert not ABSENT

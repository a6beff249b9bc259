"""Value encoding for the ``value`` column.

Values are wrapped in a single-field envelope before serializing so that a
stored ``None`` and a stored "absent" value stay distinguishable from each
other and from a missing row:

    encode(1)       -> '{"value": 1}'
    encode(None)    -> '{"value": null}'
    encode(ABSENT)  -> '{}'
"""

import json
from enum import Enum
from typing import Any

from metadb.exceptions import CorruptValueError

ENVELOPE_FIELD = "value"


class _Absent:
    """Marker for "no value", distinct from ``None``."""

    _instance: "_Absent | None" = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT: Any = _Absent()


class ValueKind(str, Enum):
    """Tag for every value the codec can store."""

    ABSENT = "absent"
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    OBJECT = "object"
    ARRAY = "array"


def kind_of(value: Any) -> ValueKind:
    """Return the tag of a storable value.

    Raises:
        TypeError: If the value is outside the JSON data model
    """
    if value is ABSENT:
        return ValueKind.ABSENT
    if value is None:
        return ValueKind.NULL
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, dict):
        return ValueKind.OBJECT
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    raise TypeError(f"Unsupported value type: {type(value).__name__}")


def is_structured(value: Any) -> bool:
    """True for objects and arrays, the only kinds ``assign`` merges."""
    return kind_of(value) in (ValueKind.OBJECT, ValueKind.ARRAY)


def _check_nested(value: Any) -> None:
    kind = kind_of(value)
    if kind is ValueKind.ABSENT:
        raise TypeError("ABSENT can only be stored as a whole value")
    if kind is ValueKind.OBJECT:
        for key, item in value.items():
            # json.dumps would coerce these to strings
            if not isinstance(key, str):
                raise TypeError(f"Object keys must be strings, got {type(key).__name__}")
            _check_nested(item)
    elif kind is ValueKind.ARRAY:
        for item in value:
            _check_nested(item)


def encode(value: Any) -> str:
    """Serialize a value into its stored text form.

    Raises:
        TypeError: If the value, or anything nested in it, is outside the
            JSON data model. Object keys must be strings.
    """
    if kind_of(value) is ValueKind.ABSENT:
        return json.dumps({})
    _check_nested(value)
    return json.dumps({ENVELOPE_FIELD: value})


def decode(text: str | None) -> Any:
    """Parse stored text back into a value.

    Raises:
        CorruptValueError: If the text is not a valid envelope
    """
    if text is None:
        return ABSENT
    try:
        envelope = json.loads(text)
    except (TypeError, ValueError) as e:
        raise CorruptValueError(f"Stored value is not valid JSON: {e}", raw=text) from e

    if not isinstance(envelope, dict):
        raise CorruptValueError("Stored value is not an envelope object", raw=text)
    if not envelope:
        return ABSENT
    if set(envelope) != {ENVELOPE_FIELD}:
        raise CorruptValueError(
            f"Unexpected envelope fields: {sorted(envelope)}", raw=text
        )
    return envelope[ENVELOPE_FIELD]

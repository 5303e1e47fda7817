from __future__ import annotations

import pytest

from oracle_bridge.codec import STARK_PRIME, decode_exact, encode, stream
from oracle_bridge.errors import (DecodeError, InvalidEnumIndex,
                                  RangeOverflow, TrailingElements, Truncated,
                                  TypeMismatch)

SHIRT = {
    "size": "Medium",
    "label": "crew neck",
    "tag": "0xff00",
    "in_stock": False,
    "sku": 12345,
    "parts": [{"inner": 1}, {"inner": 2}],
}


def test_nested_event_layout(shirts_model) -> None:
    events = stream.encode(shirts_model, "Nested", {"x": {"inner": 5}, "y": [1, -2]})
    assert events == [
        ("push", "struct"),
        ("key", "x"),
        ("push", "optional"),
        ("push", "struct"),
        ("key", "inner"),
        ("value", 5),
        ("pop", "struct"),
        ("pop", "optional"),
        ("key", "y"),
        ("push", "array"),
        ("value", 1),
        ("value", STARK_PRIME - 2),
        ("pop", "array"),
        ("pop", "struct"),
    ]
    assert stream.decode(shirts_model, "Nested", events) == {"x": {"inner": 5}, "y": [1, -2]}


def test_absent_optional_and_empty_array(shirts_model) -> None:
    events = stream.encode(shirts_model, "Nested", {"y": []})
    assert events[2:4] == [("push", "optional"), ("pop", "optional")]
    assert events[5:7] == [("push", "array"), ("pop", "array")]
    assert stream.decode(shirts_model, "Nested", events) == {"x": None, "y": []}


def test_enum_events(shirts_model) -> None:
    assert stream.encode(shirts_model, "Size", "Large") == [
        ("push", "enum"),
        ("value", 2),
        ("pop", "enum"),
    ]


def test_backends_agree(shirts_model) -> None:
    flat = decode_exact(shirts_model, "Shirt", encode(shirts_model, "Shirt", SHIRT))
    events = stream.decode(shirts_model, "Shirt", stream.encode(shirts_model, "Shirt", SHIRT))
    assert flat == events == SHIRT


def test_events_accept_lists(shirts_model) -> None:
    events = [list(ev) for ev in stream.encode(shirts_model, "Shirt", SHIRT)]
    assert stream.decode(shirts_model, "Shirt", events) == SHIRT


def test_encode_errors_match_flat_backend(shirts_model) -> None:
    with pytest.raises(RangeOverflow):
        stream.encode(shirts_model, "Query", {"delta": 0, "big": 2**128})
    with pytest.raises(TypeMismatch):
        stream.encode(shirts_model, "Nested", {"x": None})
    with pytest.raises(TypeMismatch):
        stream.encode(shirts_model, "Nested", {"y": [], "extra": 1})


def test_wrong_key_is_a_decode_error(shirts_model) -> None:
    events = stream.encode(shirts_model, "Nested", {"y": []})
    events[1] = ("key", "z")
    with pytest.raises(DecodeError) as ei:
        stream.decode(shirts_model, "Nested", events)
    assert ei.value.offset == 1


def test_unbalanced_pop(shirts_model) -> None:
    events = [("push", "struct"), ("key", "inner"), ("value", 1), ("pop", "array")]
    with pytest.raises(DecodeError):
        stream.decode(shirts_model, "Inner", events)


def test_malformed_event(shirts_model) -> None:
    with pytest.raises(DecodeError):
        stream.decode(shirts_model, "Inner", [("push",)])


def test_truncated_stream(shirts_model) -> None:
    events = stream.encode(shirts_model, "Nested", {"y": [1]})
    with pytest.raises(Truncated):
        stream.decode(shirts_model, "Nested", events[:-2])


def test_trailing_events(shirts_model) -> None:
    events = stream.encode(shirts_model, "Inner", {"inner": 1}) + [("value", 0)]
    with pytest.raises(TrailingElements):
        stream.decode(shirts_model, "Inner", events)


def test_enum_index_out_of_range(shirts_model) -> None:
    with pytest.raises(InvalidEnumIndex):
        stream.decode(shirts_model, "Size", [("push", "enum"), ("value", 7), ("pop", "enum")])

from __future__ import annotations

import json
import re
from pathlib import Path

import pytest

from oracle_bridge.errors import LockCorrupted, LockLoadError
from oracle_bridge.schema import (build_lock, compute_schema_hash, dumps_lock,
                                  load, load_lock, loads_lock, schema_hash_felt)


def test_lock_roundtrip(shirts_model) -> None:
    lock = build_lock(shirts_model)
    assert re.fullmatch(r"0x[0-9a-f]{64}", lock.schema_hash)

    again = loads_lock(dumps_lock(lock))
    assert again.model == shirts_model
    assert again.schema_hash == lock.schema_hash
    assert again.version == 1


def test_lock_document_layout(sqrt_model) -> None:
    doc = json.loads(dumps_lock(build_lock(sqrt_model)))
    assert doc["package"] == "oracle"
    assert doc["messages"]["Request"] == [{"name": "n", "type": {"scalar": "u64"}}]
    assert doc["enums"] == {}
    assert doc["services"]["SqrtOracle"]["Sqrt"] == {
        "selector": "sqrt",
        "path": "sqrt",
        "request": "Request",
        "response": "Response",
    }


def test_hash_is_stable_and_order_sensitive() -> None:
    a = load("message M { u32 a = 1; u64 b = 2; }")
    b = load("message M { u32 a = 1; u64 b = 2; }")
    swapped = load("message M { u64 b = 2; u32 a = 1; }")
    assert compute_schema_hash(a) == compute_schema_hash(b)
    assert compute_schema_hash(a) != compute_schema_hash(swapped)


def test_tampered_lock_is_rejected(sqrt_model) -> None:
    doc = json.loads(dumps_lock(build_lock(sqrt_model)))
    doc["messages"]["Request"][0]["type"] = {"scalar": "u32"}
    with pytest.raises(LockCorrupted) as ei:
        loads_lock(json.dumps(doc))
    assert ei.value.details["stored"] == doc["schema_hash"]


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d.pop("messages"),
        lambda d: d.update(version=2),
        lambda d: d.update(schema_hash="0xabc"),
        lambda d: d["messages"]["Request"][0].update(type={"scalar": "u64", "enum": "X"}),
        lambda d: d["messages"]["Request"][0].update(type={"scalar": "u7"}),
        lambda d: d["messages"]["Request"][0].update(type={"message": "Missing"}),
        lambda d: d["services"]["SqrtOracle"]["Sqrt"].update(response="Missing"),
    ],
)
def test_invalid_lock_documents(sqrt_model, mutate) -> None:
    doc = json.loads(dumps_lock(build_lock(sqrt_model)))
    mutate(doc)
    with pytest.raises(LockLoadError):
        loads_lock(json.dumps(doc))


def test_not_json() -> None:
    with pytest.raises(LockLoadError):
        loads_lock("{not json")


def test_load_lock_from_disk(sqrt_lock_path: Path, sqrt_model) -> None:
    assert load_lock(sqrt_lock_path).model == sqrt_model


def test_missing_lock_file(tmp_path: Path) -> None:
    with pytest.raises(LockLoadError) as ei:
        load_lock(tmp_path / "nope.json")
    assert ei.value.details["path"].endswith("nope.json")


def test_schema_hash_felt_fits_one_element(sqrt_model) -> None:
    h = build_lock(sqrt_model).schema_hash
    felt = schema_hash_felt(h)
    assert felt < 2**248
    assert hex(felt)[2:].rjust(62, "0") == h[2:64]


def test_self_containing_message_in_lock_is_rejected(sqrt_model) -> None:
    doc = json.loads(dumps_lock(build_lock(sqrt_model)))
    doc["messages"]["Request"].append({"name": "again", "type": {"message": "Request"}})
    with pytest.raises(LockLoadError) as ei:
        loads_lock(json.dumps(doc))
    assert ei.value.details["kind"] == "recursive message"

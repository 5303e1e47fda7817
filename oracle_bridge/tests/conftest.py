from __future__ import annotations

import json
from pathlib import Path

import pytest

from oracle_bridge.schema import SchemaModel, build_lock, dumps_lock, load

SQRT_DEFS = """
syntax = "proto3";
package oracle;

message Request {
    uint64 n = 1;
}

message Response {
    uint64 n = 1;
}

service SqrtOracle {
    rpc Sqrt(Request) returns (Response);
}
"""

SHIRTS_DEFS = """
syntax = "proto3";
package shirts;

// Sizes a shirt can come in.
enum Size {
    SIZE_SMALL = 0;
    SIZE_MEDIUM = 1;
    SIZE_LARGE = 2;
}

message Inner {
    u32 inner = 1;
}

message Nested {
    optional Inner x = 1;
    repeated i32 y = 2;
}

message Shirt {
    Size size = 1;
    string label = 2;
    bytes tag = 3;
    bool in_stock = 4;
    optional felt252 sku = 5;
    repeated Inner parts = 6;
}

message Query {
    i64 delta = 1;
    u128 big = 2;
}

service Shop {
    rpc GetShirt(Query) returns (Shirt);
    rpc Echo(Nested) returns (Nested);
}
"""

SERVER_URL = "http://oracle.test:3000"


@pytest.fixture
def sqrt_model() -> SchemaModel:
    return load(SQRT_DEFS)


@pytest.fixture
def shirts_model() -> SchemaModel:
    return load(SHIRTS_DEFS)


@pytest.fixture
def sqrt_lock_path(tmp_path: Path, sqrt_model: SchemaModel) -> Path:
    p = tmp_path / "oracle_lock.json"
    p.write_text(dumps_lock(build_lock(sqrt_model)), encoding="utf-8")
    return p


@pytest.fixture
def servers_path(tmp_path: Path) -> Path:
    p = tmp_path / "servers.json"
    p.write_text(json.dumps({"SqrtOracle": "oracle.test:3000"}), encoding="utf-8")
    return p


@pytest.fixture
def sqrt_defs() -> str:
    return SQRT_DEFS


@pytest.fixture
def shirts_defs() -> str:
    return SHIRTS_DEFS

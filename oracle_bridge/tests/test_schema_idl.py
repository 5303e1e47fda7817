from __future__ import annotations

from pathlib import Path

import pytest

from oracle_bridge.errors import (DuplicateFieldName, DuplicateSelector,
                                  DuplicateTypeName, MethodNotFound,
                                  ParseError, SchemaError, SelectorTooLong,
                                  UnknownTypeReference, UnsupportedFieldKind)
from oracle_bridge.interfaces import DefinitionsSource, FileDefinitions
from oracle_bridge.schema import (ArrayOf, EnumRef, MessageRef, OptionalOf,
                                  Scalar, load, load_file)


def test_sqrt_definitions(sqrt_model) -> None:
    assert sqrt_model.package == "oracle"
    assert set(sqrt_model.messages) == {"Request", "Response"}
    assert sqrt_model.message("Request").fields[0].type == Scalar("u64")

    method = sqrt_model.find_selector("sqrt")
    assert (method.service, method.name, method.path) == ("SqrtOracle", "Sqrt", "sqrt")


@pytest.mark.parametrize("name", ["Sqrt", "sqrt"])
def test_resolve_method(sqrt_model, name: str) -> None:
    req, resp = sqrt_model.resolve_method("SqrtOracle", name)
    assert req == MessageRef("Request")
    assert resp == MessageRef("Response")


@pytest.mark.parametrize("service,method", [("SqrtOracle", "Cbrt"), ("Nope", "Sqrt")])
def test_resolve_method_unknown(sqrt_model, service: str, method: str) -> None:
    with pytest.raises(MethodNotFound):
        sqrt_model.resolve_method(service, method)


def test_field_order_and_types(shirts_model) -> None:
    shirt = shirts_model.message("Shirt")
    assert shirt.field_names() == ("size", "label", "tag", "in_stock", "sku", "parts")
    assert [f.type for f in shirt.fields] == [
        EnumRef("Size"),
        Scalar("string"),
        Scalar("bytes"),
        Scalar("bool"),
        OptionalOf(Scalar("felt252")),
        ArrayOf(MessageRef("Inner")),
    ]
    nested = shirts_model.message("Nested")
    assert nested.fields[0].type == OptionalOf(MessageRef("Inner"))
    assert nested.fields[1].type == ArrayOf(Scalar("i32"))


def test_enum_prefix_stripped(shirts_model) -> None:
    assert shirts_model.enum("Size").variants == ("Small", "Medium", "Large")


def test_enum_aliases_skipped() -> None:
    model = load(
        """
        enum Color {
            option allow_alias = true;
            COLOR_RED = 0;
            COLOR_CRIMSON = 0;
            COLOR_BLUE = 1;
        }
        """
    )
    assert model.enum("Color").variants == ("Red", "Blue")


def test_nested_declarations_are_flattened() -> None:
    model = load(
        """
        package deep.pkg;
        message Outer {
            message Inner { u32 a = 1; }
            enum Kind { KIND_A = 0; KIND_B = 1; }
            Inner first = 1;
            Outer.Inner second = 2;
            Kind kind = 3;
        }
        message Other { deep.pkg.Outer outer = 1; }
        """
    )
    assert set(model.messages) == {"Outer", "OuterInner", "Other"}
    outer = model.message("Outer")
    assert outer.fields[0].type == MessageRef("OuterInner")
    assert outer.fields[1].type == MessageRef("OuterInner")
    assert outer.fields[2].type == EnumRef("OuterKind")
    assert model.message("Other").fields[0].type == MessageRef("Outer")


def test_comments_options_and_imports_are_skipped() -> None:
    model = load(
        """
        syntax = "proto3";
        import "google/protobuf/empty.proto";
        option java_package = "x.y";
        /* block
           comment */
        message A {
            reserved 2, 3;
            option deprecated = true;
            uint32 a = 1 [deprecated = true]; // trailing
        }
        """
    )
    assert model.message("A").field_names() == ("a",)


def test_wire_compatible(sqrt_model, shirts_model) -> None:
    assert sqrt_model.wire_compatible("Request", "Response")
    assert not shirts_model.wire_compatible("Inner", "Query")


def test_wire_compatible_compares_nested_layouts() -> None:
    model = load(
        """
        enum Color { COLOR_RED = 0; COLOR_BLUE = 1; }
        enum Size { SIZE_S = 0; SIZE_M = 1; }
        enum Mode { MODE_A = 0; MODE_B = 1; MODE_C = 2; }
        message A { u32 x = 1; Color c = 2; }
        message B { u32 y = 1; Size s = 2; }
        message C { u32 z = 1; Mode m = 2; }
        message OA { A a = 1; repeated A more = 2; optional A maybe = 3; }
        message OB { B b = 1; repeated B more = 2; optional B maybe = 3; }
        message OC { C c = 1; repeated C more = 2; optional C maybe = 3; }
        """
    )
    assert model.wire_compatible("A", "B")
    assert model.wire_compatible("OA", "OB")
    assert not model.wire_compatible("A", "C")
    assert not model.wire_compatible("OA", "OC")


def test_wire_compatible_with_self_reference() -> None:
    model = load(
        """
        message ListA { u32 v = 1; optional ListA next = 2; }
        message ListB { u32 w = 1; optional ListB next = 2; }
        message TreeA { u64 v = 1; repeated TreeA kids = 2; }
        """
    )
    assert model.wire_compatible("ListA", "ListB")
    assert not model.wire_compatible("ListA", "TreeA")


@pytest.mark.parametrize(
    "text",
    [
        "message Node { u32 v = 1; Node next = 2; }",
        "message A { B b = 1; } message B { u32 v = 1; A a = 2; }",
        "message Top { Loop l = 1; } message Loop { Top t = 1; }",
    ],
)
def test_self_containing_messages_are_rejected(text: str) -> None:
    with pytest.raises(UnsupportedFieldKind) as ei:
        load(text)
    assert ei.value.details["kind"] == "recursive message"


def test_recursion_through_optional_or_array_is_allowed() -> None:
    model = load(
        """
        message Node { u32 v = 1; optional Node next = 2; }
        message Tree { u32 v = 1; repeated Tree kids = 2; Node head = 3; }
        """
    )
    assert model.message("Tree").fields[1].type == ArrayOf(MessageRef("Tree"))
    assert model.message("Node").fields[1].type == OptionalOf(MessageRef("Node"))


def test_model_is_read_only(sqrt_model) -> None:
    with pytest.raises(TypeError):
        sqrt_model.messages["Extra"] = sqrt_model.message("Request")  # type: ignore[index]


@pytest.mark.parametrize(
    "text,kind",
    [
        ("message A { map<string, u32> m = 1; }", "map<string, u32>"),
        ("message A { oneof choice { u32 a = 1; } }", "oneof"),
        ("message A { double d = 1; }", "double"),
        ("message A { u32 a = 1; } service S { rpc M(stream A) returns (A); }", "streaming rpc"),
    ],
)
def test_unsupported_constructs(text: str, kind: str) -> None:
    with pytest.raises(UnsupportedFieldKind) as ei:
        load(text)
    assert ei.value.details["kind"] == kind


def test_duplicate_type_name() -> None:
    with pytest.raises(DuplicateTypeName):
        load("message A { u32 a = 1; } message A { u32 b = 1; }")


def test_duplicate_field_name() -> None:
    with pytest.raises(DuplicateFieldName):
        load("message A { u32 a = 1; u64 a = 2; }")


def test_unknown_type_reference() -> None:
    with pytest.raises(UnknownTypeReference):
        load("message A { Missing m = 1; }")


def test_rpc_types_must_be_messages() -> None:
    with pytest.raises(UnknownTypeReference):
        load("enum E { A = 0; } message M { u32 a = 1; } service S { rpc Go(E) returns (M); }")


def test_parse_error_has_position() -> None:
    with pytest.raises(ParseError) as ei:
        load("message A {\n    u32 a = ;\n}")
    assert ei.value.line == 2
    assert ei.value.column == 13


def test_reused_field_number_is_a_parse_error() -> None:
    with pytest.raises(ParseError):
        load("message A { u32 a = 1; u32 b = 1; }")


def test_selector_too_long() -> None:
    with pytest.raises(SelectorTooLong):
        load(
            "message A { u32 a = 1; }\n"
            "service S { rpc ThisMethodNameIsWayTooLongForAShortString(A) returns (A); }"
        )


def test_duplicate_selector_across_services() -> None:
    with pytest.raises(DuplicateSelector):
        load(
            "message A { u32 a = 1; }\n"
            "service S1 { rpc Sqrt(A) returns (A); }\n"
            "service S2 { rpc Sqrt(A) returns (A); }"
        )


def test_load_from_source_and_file(tmp_path: Path, sqrt_defs: str) -> None:
    p = tmp_path / "oracle.proto"
    p.write_text(sqrt_defs, encoding="utf-8")
    src = FileDefinitions(p)
    assert isinstance(src, DefinitionsSource)
    assert load(src) == load_file(p) == load(sqrt_defs)


def test_missing_definitions_file(tmp_path: Path) -> None:
    with pytest.raises(SchemaError):
        load_file(tmp_path / "missing.proto")

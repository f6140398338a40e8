import pytest

from sigdb.parser import parse_method_type, parse_type
from sigdb.printer import format_method_type, format_type
from sigdb.signatures import MethodSignature, Parameter, ParamKind
from sigdb.type_ops import bind_self, free_type_vars, substitute, substitute_signature
from sigdb.types import *


def test_type_name_parse_and_format() -> None:
    name = TypeName.parse("::Foo::Bar")
    assert name.absolute is True
    assert name.path == ("Foo", "Bar")
    assert name.name == "Bar"
    assert name.namespace == ("Foo",)
    assert str(name) == "::Foo::Bar"
    assert str(TypeName.parse("Foo").child("Baz")) == "Foo::Baz"


def test_type_name_rejects_empty_components() -> None:
    with pytest.raises(ValueError, match="Invalid type name"):
        TypeName.parse("Foo::")
    with pytest.raises(ValueError, match="at least one path component"):
        TypeName(())


def test_type_name_classifies_interfaces_and_aliases() -> None:
    assert TypeName.parse("_ToS").is_interface
    assert not TypeName.parse("_ToS").is_alias
    assert TypeName.parse("Foo::json").is_alias
    assert not TypeName.parse("Foo").is_alias


def test_union_flattens_nested_members() -> None:
    inner = union(nominal("String"), nominal("Symbol"))
    assert union(nominal("Integer"), inner) == UnionType(
        (nominal("Integer"), nominal("String"), nominal("Symbol"))
    )
    assert union(nominal("Integer")) == nominal("Integer")


def test_desugar_optional_adds_nil() -> None:
    assert desugar_optional(OptionalType(nominal("Integer"))) == UnionType((nominal("Integer"), NIL))
    assert desugar_optional(nominal("Integer")) == nominal("Integer")


@pytest.mark.parametrize(
    "source",
    [
        "Integer",
        "::Foo::Bar[String, untyped]",
        "_Each[Integer]",
        "singleton(::Foo)",
        "Integer | String | nil",
        "(Integer | String)?",
        ":ok | :\"with space\" | 1 | \"text\" | true",
        "[Integer, String]",
        "{ name: String, \"odd key\" => Integer }",
        "^(Integer x, ?String, *Symbol, name: String, **untyped) -> void",
        "self | instance | class | top | bot | bool",
    ],
)
def test_format_type_reproduces_parsed_source(source: str) -> None:
    assert format_type(parse_type(source)) == source


def test_format_method_type_with_generics_and_block() -> None:
    source = "[T < Comparable] (T, ?key: Symbol) ?{ (T) [self: Integer] -> void } -> (T | nil)"
    assert format_method_type(parse_method_type(source)) == source


def test_substitute_replaces_type_vars_everywhere() -> None:
    type_expr = parse_type("Array[T] | [T, U] | { key: T }", type_vars=["T", "U"])
    result = substitute(type_expr, {"T": nominal("Integer")})
    assert format_type(result) == "Array[Integer] | [Integer, U] | { key: Integer }"


def test_substitute_signature_respects_method_type_params() -> None:
    signature = parse_method_type("[T] (T, U) -> T", type_vars=["U"])
    result = substitute_signature(signature, {"T": nominal("String"), "U": nominal("Integer")})
    assert format_method_type(result) == "[T] (T, Integer) -> T"


def test_bind_self_replaces_self_instance_and_class() -> None:
    type_expr = parse_type("[self, instance, class]")
    bound = bind_self(type_expr, nominal("Foo"), class_type=SingletonType(TypeName.parse("Foo")))
    assert format_type(bound) == "[Foo, Foo, singleton(Foo)]"


def test_free_type_vars_reaches_into_procs() -> None:
    type_expr = parse_type("^(A) { (B) -> void } -> C", type_vars=["A", "B", "C"])
    assert free_type_vars(type_expr) == {"A", "B", "C"}


def test_method_signature_rejects_misordered_parameters() -> None:
    with pytest.raises(ValueError, match="Required positional parameter after optional parameter"):
        MethodSignature(
            positional=(
                Parameter(nominal("Integer"), ParamKind.OPTIONAL),
                Parameter(nominal("Integer"), ParamKind.REQUIRED),
            )
        )
    with pytest.raises(ValueError, match="Duplicate keyword parameter 'name'"):
        MethodSignature(
            keyword=(
                Parameter(nominal("String"), ParamKind.KEYWORD_REQUIRED, "name"),
                Parameter(nominal("String"), ParamKind.KEYWORD_OPTIONAL, "name"),
            )
        )


def test_arity_range_counts_trailing_required_parameters() -> None:
    signature = parse_method_type("(Integer, ?Integer, *Integer, Integer) -> void")
    assert signature.arity_range() == (2, None)
    assert parse_method_type("(Integer, ?Integer) -> void").arity_range() == (1, 2)


def test_union_round_trip_keeps_membership() -> None:
    parsed = parse_type("Integer | Float | Rational")
    reparsed = parse_type(format_type(parsed))
    assert set(reparsed.members) == {nominal("Integer"), nominal("Float"), nominal("Rational")}


def test_literals_outside_the_basic_plane_survive_round_trip() -> None:
    for literal in (LiteralType(LiteralKind.STRING, "\U0001F600 ok"), LiteralType(LiteralKind.SYMBOL, "\U0001F600")):
        assert parse_type(format_type(literal)) == literal


def test_escaped_surrogate_pair_decodes_to_one_character() -> None:
    assert parse_type('"\\ud83d\\ude00"') == LiteralType(LiteralKind.STRING, "\U0001F600")

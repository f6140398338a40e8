import pytest

from sigdb.parser import parse_method_type
from sigdb.session import SignatureSession
from sigdb.subtyping import CallSite
from sigdb.types import *


CORE = """
class BasicObject end
class Object < BasicObject end
class Module end
class Class < Module end
class Numeric end
class Integer < Numeric end
class String end
class Symbol end
class NilClass end
class TrueClass end
class FalseClass end
class Proc end
class Array[unchecked out T]
  def first: () -> T
end
class Hash[unchecked out K, unchecked out V] end

class Box[out T] end
class Sink[in T] end
class Cell[T] end

interface _ToS
  def to_s: () -> String
end

class Widget
  def to_s: () -> String
end

class Hidden
  private
  def to_s: () -> String
end

class Calc
  def add: (Integer) -> Integer
         | (String) -> String
  def self.create: () -> instance
end

type list = nil | [Integer, list]
"""


@pytest.fixture(scope="module")
def session() -> SignatureSession:
    loaded = SignatureSession()
    assert loaded.load_source(CORE, "core.rbs") == []
    return loaded


def _abs(name: str) -> NominalType:
    return NominalType(TypeName.parse(name).to_absolute())


@pytest.mark.parametrize(
    ("sub", "sup"),
    [
        ("Integer", "Integer"),
        ("Integer", "Numeric"),
        ("Integer", "Object"),
        ("Integer", "BasicObject"),
        ("untyped", "Integer"),
        ("Integer", "untyped"),
        ("Integer", "top"),
        ("Integer", "void"),
        ("bot", "Integer"),
        ("nil", "Integer?"),
        ("Integer", "Integer?"),
        ("true", "bool"),
        ("bool", "TrueClass | FalseClass"),
        ("1", "Integer"),
        ("1", "1"),
        ("\"text\"", "String"),
        (":ok", "Symbol"),
        ("Integer", "Integer | String"),
        ("Integer | String", "Object"),
        ("[Integer, String]", "[Numeric, String]"),
        ("[Integer, String]", "Array[Integer | String]"),
        ("{ name: String, age: Integer }", "{ name: String }"),
        ("{ name: String }", "Hash[Symbol, String]"),
        ("^(Numeric) -> Integer", "^(Integer) -> Numeric"),
        ("^() -> void", "Proc"),
        ("singleton(Integer)", "singleton(Numeric)"),
        ("singleton(Integer)", "Class"),
        ("singleton(Integer)", "Object"),
        ("Box[Integer]", "Box[Numeric]"),
        ("Sink[Numeric]", "Sink[Integer]"),
        ("Cell[Integer]", "Cell[Integer]"),
        ("Cell[Integer?]", "Cell[Integer | nil]"),
        ("Cell[String | Integer]", "Cell[Integer | String]"),
        ("Cell[untyped]", "Cell[Integer]"),
        ("Cell[Array[untyped]]", "Cell[Array[Integer]]"),
        ("Box", "Box[Integer]"),
        ("Widget", "_ToS"),
        ("[Integer, nil]", "list"),
        ("list", "list"),
    ],
)
def test_is_subtype_holds(session: SignatureSession, sub: str, sup: str) -> None:
    assert session.is_subtype(sub, sup)


@pytest.mark.parametrize(
    ("sub", "sup"),
    [
        ("Numeric", "Integer"),
        ("String", "Integer"),
        ("Integer", "bot"),
        ("String", "Integer?"),
        ("bool", "TrueClass"),
        ("1", "2"),
        ("1", "String"),
        ("Integer | String", "Integer"),
        ("[Integer]", "[Integer, String]"),
        ("{ name: String }", "{ name: String, age: Integer }"),
        ("^(Integer) -> Numeric", "^(Numeric) -> Integer"),
        ("singleton(Numeric)", "singleton(Integer)"),
        ("Integer", "singleton(Integer)"),
        ("Box[Numeric]", "Box[Integer]"),
        ("Sink[Integer]", "Sink[Numeric]"),
        ("Cell[Integer]", "Cell[Numeric]"),
        ("Cell[Numeric]", "Cell[Integer]"),
        ("Cell[Integer | Numeric]", "Cell[Numeric]"),
        ("Cell[Numeric]", "Cell[Integer | Numeric]"),
        ("Cell[bool]", "Cell[TrueClass]"),
        ("Object", "_ToS"),
        ("Hidden", "_ToS"),
        ("[String, nil]", "list"),
    ],
)
def test_is_subtype_fails(session: SignatureSession, sub: str, sup: str) -> None:
    assert not session.is_subtype(sub, sup)


def test_is_subtype_binds_self(session: SignatureSession) -> None:
    assert session.is_subtype("self", "Numeric", self_type="Integer")
    assert not session.is_subtype("self", "String", self_type="Integer")


def test_is_subtype_is_transitive_along_chain(session: SignatureSession) -> None:
    chain = ["Integer", "Numeric", "Object", "BasicObject"]
    for index, sub in enumerate(chain):
        for sup in chain[index:]:
            assert session.is_subtype(sub, sup)


def test_signature_compatibility_is_contravariant_in_parameters(session: SignatureSession) -> None:
    wide = parse_method_type("(Numeric) -> Integer")
    narrow = parse_method_type("(Integer) -> Numeric")
    assert session.checker.is_compatible_signature(wide, narrow)
    assert not session.checker.is_compatible_signature(narrow, wide)


def test_signature_compatibility_requires_keywords_and_blocks(session: SignatureSession) -> None:
    checker = session.checker
    assert checker.is_compatible_signature(
        parse_method_type("(?name: String) -> void"), parse_method_type("(name: String) -> void")
    )
    assert not checker.is_compatible_signature(
        parse_method_type("(name: String) -> void"), parse_method_type("() -> void")
    )
    assert not checker.is_compatible_signature(
        parse_method_type("() { () -> void } -> void"), parse_method_type("() -> void")
    )


def test_resolve_overload_selects_first_accepting_overload(session: SignatureSession) -> None:
    match = session.resolve_overload(
        ["(Integer) -> String", "(String) -> Integer"],
        CallSite(positional=(nominal("String"),)),
    )
    assert match is not None
    assert match.index == 1
    assert match.return_type == _abs("Integer")


def test_resolve_overload_without_match_returns_none(session: SignatureSession) -> None:
    call = CallSite(positional=(nominal("Symbol"),))
    assert session.resolve_overload(["(Integer) -> String", "(String) -> Integer"], call) is None


def test_resolve_overload_binds_method_type_params(session: SignatureSession) -> None:
    match = session.resolve_overload(["[T] (T) -> Array[T]"], CallSite(positional=(nominal("Integer"),)))
    assert match.return_type == NominalType(_abs("Array").name, (_abs("Integer"),))
    assert dict(match.bindings) == {"T": _abs("Integer")}


def test_resolve_overload_distributes_rest_arguments(session: SignatureSession) -> None:
    overloads = ["(Integer, *String) -> void"]
    ok = CallSite(positional=(nominal("Integer"), nominal("String"), nominal("String")))
    bad = CallSite(positional=(nominal("Integer"), nominal("Integer")))
    assert session.resolve_overload(overloads, ok) is not None
    assert session.resolve_overload(overloads, bad) is None


def test_resolve_overload_checks_keywords(session: SignatureSession) -> None:
    overloads = ["(name: String) -> Integer"]
    assert session.resolve_overload(overloads, CallSite(keywords={"name": nominal("String")})) is not None
    assert session.resolve_overload(overloads, CallSite()) is None
    assert session.resolve_overload(overloads, CallSite(keywords={"name": nominal("String"), "age": nominal("Integer")})) is None


def test_resolve_overload_checks_blocks(session: SignatureSession) -> None:
    overloads = ["() { (Integer) -> void } -> Integer"]
    block = ProcType(parse_method_type("(Numeric) -> void"))
    wrong_block = ProcType(parse_method_type("(String) -> void"))
    assert session.resolve_overload(overloads, CallSite()) is None
    assert session.resolve_overload(overloads, CallSite(block=block)) is not None
    assert session.resolve_overload(overloads, CallSite(block=wrong_block)) is None


def test_resolve_call_on_instance_receiver(session: SignatureSession) -> None:
    match = session.resolve_call("Calc", "add", ["String"])
    assert match.index == 1
    assert match.return_type == _abs("String")


def test_resolve_call_on_singleton_binds_instance(session: SignatureSession) -> None:
    match = session.resolve_call("singleton(Calc)", "create")
    assert match.return_type == _abs("Calc")


def test_resolve_call_substitutes_receiver_type_arguments(session: SignatureSession) -> None:
    match = session.resolve_call("Array[Integer]", "first")
    assert match.return_type == _abs("Integer")


def test_resolve_call_unknown_method_returns_none(session: SignatureSession) -> None:
    assert session.resolve_call("Calc", "missing") is None


def test_call_site_rejects_duplicate_keywords() -> None:
    with pytest.raises(ValueError, match="Duplicate keyword argument"):
        CallSite(keywords=(("name", UNTYPED), ("name", UNTYPED)))

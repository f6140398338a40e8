from sigdb.graph import DeclarationGraph, DeclKind
from sigdb.resolver import Ambiguous, NameResolver, NotFound, Resolved, context_of
from sigdb.session import SignatureSession
from sigdb.types import *


def _abs(text: str) -> TypeName:
    return TypeName.parse(text).to_absolute()


def _session(source: str) -> SignatureSession:
    session = SignatureSession()
    assert session.load_source(source) == []
    return session


NESTED = """
class Integer end
class String end
class C end
module A
  class B end
  class C end
  module Deep
    class Leaf end
  end
end
"""


def test_context_of_lists_every_enclosing_prefix() -> None:
    assert context_of(_abs("A::B::C")) == (_abs("A"), _abs("A::B"), _abs("A::B::C"))


def test_relative_name_resolves_in_innermost_frame_first() -> None:
    session = _session(NESTED)
    assert session.resolve("C", ["A"]).name == _abs("A::C")
    assert session.resolve("C", ["A", "A::Deep"]).name == _abs("A::C")
    assert session.resolve("C").name == _abs("C")


def test_relative_name_falls_back_to_root() -> None:
    session = _session(NESTED)
    result = session.resolve("Integer", ["A", "A::Deep"])
    assert isinstance(result, Resolved)
    assert result.name == _abs("Integer")
    assert result.node is session.node("Integer")


def test_absolute_name_ignores_nesting() -> None:
    session = _session(NESTED)
    assert session.resolve("::C", ["A"]).name == _abs("C")


def test_qualified_name_descends_from_first_component() -> None:
    session = _session(NESTED)
    assert session.resolve("Deep::Leaf", ["A"]).name == _abs("A::Deep::Leaf")
    assert session.resolve("A::Deep::Leaf").name == _abs("A::Deep::Leaf")
    assert isinstance(session.resolve("Deep::Missing", ["A"]), NotFound)


def test_unknown_name_is_not_found() -> None:
    session = _session(NESTED)
    result = session.resolve("Nope", ["A"])
    assert isinstance(result, NotFound)
    assert result.name == TypeName(("Nope",))


def test_constants_are_inherited_from_superclass() -> None:
    session = _session(
        """
        class Integer end
        class Parent
          LIMIT: Integer
        end
        class Child < Parent end
        """
    )
    resolver = session.resolver
    found = resolver.resolve_constant_name("LIMIT", [_abs("Child")])
    assert isinstance(found, Resolved)
    assert found.name == _abs("Parent::LIMIT")
    assert isinstance(resolver.resolve_constant_name("LIMIT", [_abs("Child")], inherit=False), NotFound)
    assert resolver.resolve_constant("LIMIT", [_abs("Child")]) == NominalType(_abs("Integer"))


def test_constant_in_two_included_modules_is_ambiguous() -> None:
    session = _session(
        """
        module M1
          X: Integer
        end
        module M2
          X: String
        end
        class Host
          include M1
          include M2
        end
        """
    )
    result = session.resolver.resolve_constant_name("X", [_abs("Host")])
    assert isinstance(result, Ambiguous)
    assert set(result.candidates) == {_abs("M1::X"), _abs("M2::X")}


def test_constant_from_superclass_wins_when_modules_do_not_define_it() -> None:
    session = _session(
        """
        module Helpers end
        class Base
          X: Integer
        end
        class Derived < Base
          include Helpers
        end
        """
    )
    result = session.resolver.resolve_constant_name("X", [_abs("Derived")])
    assert isinstance(result, Resolved)
    assert result.name == _abs("Base::X")


def test_class_constant_evaluates_to_its_singleton() -> None:
    session = _session(NESTED)
    assert session.resolver.resolve_constant("B", [_abs("A")]) == SingletonType(_abs("A::B"))


def test_expand_alias_substitutes_arguments_and_absolutizes_body() -> None:
    session = _session(
        """
        class Integer end
        module Shapes
          class Point end
          type pair[T] = [T, Point]
        end
        """
    )
    expanded = session.resolver.expand_alias(AliasType(TypeName(("pair",)), (nominal("Integer"),)), [_abs("Shapes")])
    assert expanded == TupleType((NominalType(_abs("Integer")), NominalType(_abs("Shapes::Point"))))


def test_expand_alias_defaults_missing_arguments_to_untyped() -> None:
    session = _session("type box[T] = [T]\n")
    assert session.resolver.expand_alias(AliasType(TypeName(("box",)))) == TupleType((UNTYPED,))
    assert session.resolver.expand_alias(AliasType(TypeName(("missing",)))) is None


def test_absolutize_keeps_unresolved_names() -> None:
    session = _session(NESTED)
    type_expr = union(nominal("B"), nominal("Unknown"), SingletonType(TypeName(("C",))))
    result = session.resolver.absolutize(type_expr, [_abs("A")])
    assert result == UnionType(
        (NominalType(_abs("A::B")), nominal("Unknown"), SingletonType(_abs("A::C")))
    )


def test_resolver_without_ancestry_only_sees_lexical_scope() -> None:
    graph = DeclarationGraph()
    parent = graph.declare(DeclKind.CLASS, "Parent")
    graph.add_constant(parent, "X", nominal("Integer"))
    graph.declare(DeclKind.CLASS, "Child")
    resolver = NameResolver(graph)
    assert isinstance(resolver.resolve_constant_name("X", [_abs("Child")]), NotFound)
    assert resolver.resolve_constant_name("X", [_abs("Parent")]).name == _abs("Parent::X")

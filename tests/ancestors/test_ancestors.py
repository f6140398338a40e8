from sigdb.ancestors import Ancestor, AncestorBuilder
from sigdb.graph import MemberKey
from sigdb.printer import format_method_type
from sigdb.resolver import NameResolver, NotFound
from sigdb.session import SignatureSession
from sigdb.signatures import OverloadSet, Scope
from sigdb.types import *


CORE = """
class BasicObject end
class Object < BasicObject end
class Module end
class Class < Module end
class Integer end
class String end
"""


def _session(source: str) -> SignatureSession:
    session = SignatureSession()
    assert session.load_source(CORE + source) == []
    return session


def _names(nodes) -> list[str]:
    return [str(getattr(node, "node", node).name) for node in nodes]


def test_includes_are_searched_last_included_first() -> None:
    session = _session(
        """
        module M1 end
        module M2 end
        class C
          include M1
          include M2
        end
        """
    )
    assert _names(session.ancestors("C")) == ["::C", "::M2", "::M1", "::Object", "::BasicObject"]


def test_prepended_modules_come_before_the_class() -> None:
    session = _session(
        """
        module Pre end
        module Inc end
        class C
          prepend Pre
          include Inc
        end
        """
    )
    assert _names(session.ancestors("C")) == ["::Pre", "::C", "::Inc", "::Object", "::BasicObject"]


def test_superclass_chain_follows_includes_of_each_class() -> None:
    session = _session(
        """
        module Walkable end
        class Animal
          include Walkable
        end
        class Dog < Animal end
        """
    )
    assert _names(session.ancestors("Dog")) == ["::Dog", "::Animal", "::Walkable", "::Object", "::BasicObject"]


def test_module_included_twice_appears_once() -> None:
    session = _session(
        """
        module Shared end
        module Wrapper
          include Shared
        end
        class Base
          include Shared
        end
        class Derived < Base
          include Wrapper
        end
        """
    )
    names = _names(session.ancestors("Derived"))
    assert names == ["::Derived", "::Wrapper", "::Shared", "::Base", "::Object", "::BasicObject"]
    assert len(names) == len(set(names))


def test_module_ancestors_do_not_include_object() -> None:
    session = _session(
        """
        module Inner end
        module Outer
          include Inner
        end
        """
    )
    assert _names(session.ancestors("Outer")) == ["::Outer", "::Inner"]


def test_basic_object_has_no_superclass() -> None:
    session = _session("")
    assert _names(session.ancestors("BasicObject")) == ["::BasicObject"]
    assert _names(session.ancestors("Object")) == ["::Object", "::BasicObject"]


def test_inheritance_cycle_is_cut() -> None:
    session = SignatureSession()
    session.load_source(
        """
        module A
          include B
        end
        module B
          include A
        end
        """
    )
    assert _names(session.ancestors("A")) == ["::A", "::B"]


def test_generic_arguments_flow_to_ancestors() -> None:
    session = _session(
        """
        module Enumerable[T] end
        class Array[T]
          include Enumerable[T]
        end
        class IntList < Array[Integer] end
        """
    )
    chain = session.instance_ancestors("IntList")
    by_name = {str(ancestor.node.name): ancestor for ancestor in chain}
    integer = NominalType(TypeName(("Integer",), absolute=True))
    assert by_name["::Array"].args == (integer,)
    assert by_name["::Enumerable"].args == (integer,)
    assert by_name["::Enumerable"].mapping() == {"T": integer}


def test_instance_ancestors_default_to_own_type_variables() -> None:
    session = _session("class Box[T] end\n")
    first = session.instance_ancestors("Box")[0]
    assert first == Ancestor(session.node("Box"), (TypeVar("T"),), Scope.INSTANCE)


def test_raw_generic_superclass_gets_untyped_arguments() -> None:
    session = _session(
        """
        class Box[T] end
        class Crate < Box end
        """
    )
    by_name = {str(ancestor.node.name): ancestor for ancestor in session.instance_ancestors("Crate")}
    assert by_name["::Box"].args == (UNTYPED,)


def test_singleton_ancestors_walk_extends_then_class_chain() -> None:
    session = _session(
        """
        module ClassMethods end
        class Base
          extend ClassMethods
        end
        class Derived < Base end
        """
    )
    chain = session.singleton_ancestors("Derived")
    assert [(str(ancestor.node.name), ancestor.scope) for ancestor in chain] == [
        ("::Derived", Scope.SINGLETON),
        ("::Base", Scope.SINGLETON),
        ("::ClassMethods", Scope.INSTANCE),
        ("::Object", Scope.SINGLETON),
        ("::BasicObject", Scope.SINGLETON),
        ("::Class", Scope.INSTANCE),
        ("::Module", Scope.INSTANCE),
        ("::Object", Scope.INSTANCE),
        ("::BasicObject", Scope.INSTANCE),
    ]


def test_singleton_ancestors_of_module_end_in_module_class() -> None:
    session = _session("module Util end\n")
    chain = session.singleton_ancestors("Util")
    assert [(str(ancestor.node.name), ancestor.scope) for ancestor in chain] == [
        ("::Util", Scope.SINGLETON),
        ("::Module", Scope.INSTANCE),
        ("::Object", Scope.INSTANCE),
        ("::BasicObject", Scope.INSTANCE),
    ]


def test_lookup_method_finds_nearest_definition() -> None:
    session = _session(
        """
        module Greeter
          def greet: () -> String
        end
        class Person
          include Greeter
          def greet: (String) -> String
        end
        class Student < Person end
        """
    )
    found = session.lookup_method("Student", "greet")
    assert isinstance(found, OverloadSet)
    assert found.owner == TypeName(("Person",), absolute=True)
    assert [format_method_type(sig) for sig in found.signatures] == ["(::String) -> ::String"]


def test_lookup_method_missing_returns_not_found() -> None:
    session = _session("class Foo end\n")
    assert session.lookup_method("Foo", "nope") == NotFound("nope")


def test_lookup_method_merges_overloading_definitions() -> None:
    session = _session(
        """
        class Base
          def to_s: () -> String
        end
        module Formatting
          def to_s: (Integer width) -> String | ...
        end
        class Report < Base
          include Formatting
        end
        """
    )
    found = session.lookup_method("Report", "to_s")
    assert [format_method_type(sig) for sig in found.signatures] == [
        "(::Integer width) -> ::String",
        "() -> ::String",
    ]
    assert found.overloading is False


def test_lookup_method_substitutes_ancestor_type_arguments() -> None:
    session = _session(
        """
        module Container[T]
          def first: () -> T
        end
        class Names
          include Container[String]
        end
        """
    )
    found = session.lookup_method("Names", "first")
    assert found.signatures[0].return_type == NominalType(TypeName(("String",), absolute=True))


def test_lookup_method_follows_aliases() -> None:
    session = _session(
        """
        class Base
          def to_s: () -> String
        end
        class Child < Base
          alias inspect to_s
        end
        """
    )
    found = session.lookup_method("Child", "inspect")
    assert found.name == "inspect"
    assert found.signatures[0].return_type == NominalType(TypeName(("String",), absolute=True))


def test_lookup_singleton_method_through_extend() -> None:
    session = _session(
        """
        module Factory
          def build: () -> Integer
        end
        class Widget
          extend Factory
          def self.create: () -> instance
        end
        """
    )
    assert not isinstance(session.lookup_method("Widget", "build", Scope.SINGLETON), NotFound)
    assert not isinstance(session.lookup_method("Widget", MemberKey("create", Scope.SINGLETON)), NotFound)
    assert isinstance(session.lookup_method("Widget", "create"), NotFound)


def test_interface_methods_include_included_interfaces() -> None:
    session = _session(
        """
        interface _ToS
          def to_s: () -> String
        end
        interface _Show
          include _ToS
          def show: () -> void
        end
        """
    )
    methods = session.ancestry.interface_methods(session.node("_Show"))
    assert sorted(methods) == ["show", "to_s"]


def test_builder_leaves_a_shared_resolver_untouched() -> None:
    session = _session("class C end\n")
    resolver = NameResolver(session.graph)
    first = AncestorBuilder(session.graph, resolver)
    AncestorBuilder(session.graph, resolver)
    assert resolver.ancestry is None
    assert _names(first.ancestors(session.node("C"))) == ["::C", "::Object", "::BasicObject"]

from sigdb.diagnostics import DiagnosticCode
from sigdb.graph import DeclarationGraph, DeclKind, MemberKey, MixinRelation
from sigdb.loader import SignatureLoader
from sigdb.parser import parse_source
from sigdb.printer import format_method_type
from sigdb.signatures import Scope, Visibility
from sigdb.types import *


def _load(*sources: str) -> tuple[DeclarationGraph, list]:
    graph = DeclarationGraph()
    loader = SignatureLoader(graph)
    diagnostics = loader.load_sources((source, f"file{index}.rbs") for index, source in enumerate(sources))
    return graph, diagnostics


def _abs(text: str) -> TypeName:
    return TypeName.parse(text).to_absolute()


def test_reopened_class_merges_members_from_several_files() -> None:
    graph, diagnostics = _load(
        "class Foo\n  def a: () -> void\nend\n",
        "class Foo\n  include Comparable\n  def b: () -> void\nend\n",
    )
    assert diagnostics == []
    node = graph.get("Foo")
    assert node.member_names() == ["a", "b"]
    assert [mixin.target for mixin in node.mixins_of(MixinRelation.INCLUDE)] == [nominal("Comparable")]
    assert [span.start.path for span in node.locations] == ["file0.rbs", "file1.rbs"]


def test_loading_same_file_twice_does_not_duplicate_overloads() -> None:
    source = "class Foo\n  def a: (Integer) -> void | (String) -> void\nend\n"
    graph, diagnostics = _load(source, source)
    assert diagnostics == []
    assert len(graph.get("Foo").member("a")) == 2


def test_overloads_from_reopenings_are_appended() -> None:
    graph, _ = _load(
        "class Foo\n  def a: (Integer) -> void\nend\n",
        "class Foo\n  def a: (String) -> void\nend\n",
    )
    assert [format_method_type(sig) for sig in graph.get("Foo").member("a").signatures] == [
        "(Integer) -> void",
        "(String) -> void",
    ]


def test_replace_annotation_discards_earlier_overloads() -> None:
    graph, _ = _load(
        "class Foo\n  def a: (Integer) -> void\nend\n",
        "class Foo\n  %a{replace} def a: (String) -> void\nend\n",
    )
    assert [format_method_type(sig) for sig in graph.get("Foo").member("a").signatures] == ["(String) -> void"]


def test_method_scopes_and_visibility() -> None:
    graph, _ = _load(
        """
        class Foo
          def self.build: () -> instance
          def self?.log: (String) -> void
          def open: () -> void
          private
          def hidden: () -> void
          public def shown: () -> void
        end
        """
    )
    members = graph.get("Foo").members
    assert set(members) == {
        MemberKey("build", Scope.SINGLETON, Visibility.PUBLIC),
        MemberKey("log", Scope.SINGLETON, Visibility.PUBLIC),
        MemberKey("log", Scope.INSTANCE, Visibility.PRIVATE),
        MemberKey("open", Scope.INSTANCE, Visibility.PUBLIC),
        MemberKey("hidden", Scope.INSTANCE, Visibility.PRIVATE),
        MemberKey("shown", Scope.INSTANCE, Visibility.PUBLIC),
    }


def test_attributes_expand_to_ivar_and_accessor_methods() -> None:
    graph, _ = _load("class Person\n  attr_accessor name: String\n  attr_reader age: Integer\nend\n")
    node = graph.get("Person")
    assert node.instance_variables[("@name", Scope.INSTANCE)].type == nominal("String")
    assert node.instance_variables[("@age", Scope.INSTANCE)].type == nominal("Integer")
    assert format_method_type(node.member("name").signatures[0]) == "() -> String"
    assert format_method_type(node.member("name=").signatures[0]) == "(String name) -> String"
    assert node.member("age=") is None
    assert node.attributes[("name", Scope.INSTANCE)].kind == "accessor"


def test_nested_declarations_are_qualified_and_keep_context() -> None:
    graph, _ = _load(
        """
        module Outer
          VERSION: String
          type id = Integer
          class Inner < Base
            def size: () -> Integer
          end
        end
        """
    )
    inner = graph.get("Outer::Inner")
    assert inner.name == _abs("Outer::Inner")
    assert inner.superclass.context == (_abs("Outer"),)
    assert inner.member("size").overloads[0].context == (_abs("Outer"), _abs("Outer::Inner"))
    outer = graph.get("Outer")
    assert outer.constants["VERSION"].name == _abs("Outer::VERSION")
    assert outer.type_aliases["id"].context == (_abs("Outer"),)


def test_qualified_declaration_waits_for_its_namespace() -> None:
    graph, diagnostics = _load(
        "class Outer::Inner end\nOuter::LIMIT: Integer\n",
        "module Outer end\n",
    )
    assert diagnostics == []
    assert graph.get("Outer::Inner").kind == DeclKind.CLASS
    assert "LIMIT" in graph.get("Outer").constants


def test_missing_namespace_is_reported_after_retries() -> None:
    graph, diagnostics = _load("class Nowhere::Inner end\n")
    assert [diagnostic.code for diagnostic in diagnostics] == [DiagnosticCode.INVALID_DECLARATION]
    assert "Cannot find namespace '::Nowhere'" in diagnostics[0].message
    assert graph.get("Nowhere::Inner") is None


def test_conflicting_redeclarations_are_reported_and_loading_continues() -> None:
    graph, diagnostics = _load(
        "class Foo < Bar end\nclass Baz end\n",
        "module Foo end\nclass Foo < Qux end\nclass Box[T] end\nclass Box[K, V] end\nclass Other end\n",
    )
    assert [diagnostic.code for diagnostic in diagnostics] == [
        DiagnosticCode.KIND_CONFLICT,
        DiagnosticCode.SUPERCLASS_CONFLICT,
        DiagnosticCode.GENERIC_ARITY,
    ]
    assert graph.get("Foo").superclass.type == nominal("Bar")
    assert graph.get("Other") is not None
    assert graph.get("Baz") is not None


def test_member_errors_do_not_stop_the_declaration() -> None:
    graph, diagnostics = _load(
        "class Foo\n  @x: Integer\n  @x: String\n  alias a a\n  def ok: () -> void\nend\n"
    )
    assert len(diagnostics) == 2
    assert all(diagnostic.code == DiagnosticCode.INVALID_DECLARATION for diagnostic in diagnostics)
    assert graph.get("Foo").member("ok") is not None


def test_syntax_errors_become_diagnostics() -> None:
    graph, diagnostics = _load("class Foo\n", "class Bar end\n")
    assert [diagnostic.code for diagnostic in diagnostics] == [DiagnosticCode.SYNTAX]
    assert diagnostics[0].span.start.path == "file0.rbs"
    assert graph.get("Bar") is not None


def test_load_accepts_parsed_files() -> None:
    graph = DeclarationGraph()
    loader = SignatureLoader(graph)
    assert loader.load([parse_source("$stdout: IO\n")]) == []
    assert graph.globals["$stdout"].type == nominal("IO")


def test_superclass_reopening_compares_resolved_classes() -> None:
    graph, diagnostics = _load(
        "class Bar end\nmodule A\n  class Bar end\n  class Foo < Bar end\nend\n",
        "class A::Foo < Bar end\n",
    )
    assert [diagnostic.code for diagnostic in diagnostics] == [DiagnosticCode.SUPERCLASS_CONFLICT]
    assert graph.get("A::Foo").superclass.context == (_abs("A"),)


def test_superclass_spelled_differently_for_same_class_is_accepted() -> None:
    graph, diagnostics = _load(
        "module A\n  class Bar end\n  class Foo < Bar end\nend\n",
        "class A::Foo < A::Bar\n  def extra: () -> void\nend\n",
    )
    assert diagnostics == []
    assert graph.get("A::Foo").member("extra") is not None
    assert graph.get("A::Foo").superclass.type == nominal("Bar")

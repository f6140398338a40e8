from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

from sigdb.ancestors import Ancestor, AncestorBuilder
from sigdb.ast_nodes import SignatureFile
from sigdb.config import SessionConfig
from sigdb.diagnostics import Diagnostic
from sigdb.graph import DeclarationGraph, DeclarationNode, MemberKey
from sigdb.loader import SignatureLoader
from sigdb.parser import parse_method_type, parse_type
from sigdb.resolver import NameResolver, NotFound, Resolution
from sigdb.signatures import MethodSignature, OverloadSet, Scope
from sigdb.subtyping import CallSite, OverloadMatch, SubtypeChecker
from sigdb.types import TypeExpr, TypeName
from sigdb.validation import Validator


class SignatureSession:
    """A loaded corpus together with the query engines built over it.

    Types and names may be passed either as model values or as declaration
    syntax, which is parsed on the way in.
    """

    def __init__(self, config: SessionConfig | None = None):
        self.config = config or SessionConfig()
        self.graph = DeclarationGraph(dedupe_overloads=self.config.dedupe_overloads)
        self.resolver = NameResolver(self.graph, ancestry=lambda node: self.ancestry.ancestors(node)[1:])
        self.ancestry = AncestorBuilder(self.graph, self.resolver, core_names=self.config.core_names)
        self.checker = SubtypeChecker(
            self.graph, self.resolver, self.ancestry, core_names=self.config.core_names
        )
        self.loader = SignatureLoader(self.graph, self.resolver)

    # -- loading ----------------------------------------------------------

    def load_source(self, source: str, path: str = "<memory>") -> list[Diagnostic]:
        return self.loader.load_source(source, path)

    def load_sources(self, sources: Iterable[tuple[str, str]]) -> list[Diagnostic]:
        return self.loader.load_sources(sources)

    def load_files(self, paths: Iterable[str | Path]) -> list[Diagnostic]:
        sources = [(Path(path).read_text(encoding="utf-8"), str(path)) for path in paths]
        return self.loader.load_sources(sources)

    def load(self, files: Iterable[SignatureFile]) -> list[Diagnostic]:
        return self.loader.load(files)

    @property
    def load_diagnostics(self) -> list[Diagnostic]:
        return list(self.loader.diagnostics)

    def validate(self) -> list[Diagnostic]:
        return self.load_diagnostics + Validator(self.graph, self.resolver).validate()

    # -- queries ----------------------------------------------------------

    def node(self, name: TypeName | str) -> DeclarationNode:
        found = self.graph.get(name)
        if found is None:
            raise KeyError(f"Unknown declaration '{name}'")
        return found

    def resolve(
        self,
        name: TypeName | str,
        nesting: Sequence[TypeName | str | DeclarationNode] = (),
        inherit: bool = True,
    ) -> Resolution:
        return self.resolver.resolve(name, _nesting(nesting), inherit)

    def ancestors(self, name: TypeName | str | DeclarationNode) -> list[DeclarationNode]:
        return self.ancestry.ancestors(self._node(name))

    def instance_ancestors(
        self,
        name: TypeName | str | DeclarationNode,
        args: Sequence[TypeExpr | str] | None = None,
    ) -> list[Ancestor]:
        parsed = tuple(self._type(arg) for arg in args) if args is not None else None
        return self.ancestry.instance_ancestors(self._node(name), parsed)

    def singleton_ancestors(self, name: TypeName | str | DeclarationNode) -> list[Ancestor]:
        return self.ancestry.singleton_ancestors(self._node(name))

    def lookup_method(
        self,
        name: TypeName | str | DeclarationNode,
        key: MemberKey | str,
        scope: Scope | str = Scope.INSTANCE,
    ) -> OverloadSet | NotFound:
        return self.ancestry.lookup_method(self._node(name), key, scope)

    def is_subtype(
        self,
        sub: TypeExpr | str,
        sup: TypeExpr | str,
        *,
        self_type: TypeExpr | str | None = None,
    ) -> bool:
        return self.checker.is_subtype(
            self._type(sub),
            self._type(sup),
            self_type=self._type(self_type) if self_type is not None else None,
        )

    def resolve_overload(
        self,
        overloads: OverloadSet | Sequence[MethodSignature | str],
        call: CallSite,
        *,
        self_type: TypeExpr | str | None = None,
    ) -> OverloadMatch | None:
        if not isinstance(overloads, OverloadSet):
            overloads = [parse_method_type(entry) if isinstance(entry, str) else entry for entry in overloads]
        return self.checker.resolve_overload(
            overloads,
            call,
            self_type=self._type(self_type) if self_type is not None else None,
        )

    def resolve_call(
        self,
        receiver: TypeExpr | str,
        method: str,
        args: Sequence[TypeExpr | str] = (),
        kwargs: dict[str, TypeExpr | str] | None = None,
        block: TypeExpr | str | None = None,
    ) -> OverloadMatch | None:
        call = CallSite(
            positional=tuple(self._type(arg) for arg in args),
            keywords=tuple((name, self._type(arg)) for name, arg in (kwargs or {}).items()),
            block=self._type(block) if block is not None else None,
        )
        return self.checker.resolve_call(self._type(receiver), method, call)

    def _node(self, name: TypeName | str | DeclarationNode) -> DeclarationNode:
        if isinstance(name, DeclarationNode):
            return name
        return self.node(name)

    def _type(self, type_expr: TypeExpr | str) -> TypeExpr:
        if isinstance(type_expr, str):
            return parse_type(type_expr)
        return type_expr


def _nesting(nesting: Sequence[TypeName | str | DeclarationNode]) -> list[TypeName | DeclarationNode]:
    result: list[TypeName | DeclarationNode] = []
    for entry in nesting:
        if isinstance(entry, str):
            entry = TypeName.parse(entry).to_absolute()
        result.append(entry)
    return result

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from sigdb.graph import (
    ConstantEntry,
    DeclarationGraph,
    DeclarationNode,
    DeclKind,
    Namespace,
    TypeAliasEntry,
)
from sigdb.signatures import MethodSignature
from sigdb.type_ops import map_signature, map_type, substitute
from sigdb.types import *

logger = logging.getLogger(__name__)


Target = DeclarationNode | ConstantEntry | TypeAliasEntry
Nesting = Sequence[TypeName | DeclarationNode]


@dataclass(frozen=True)
class Resolved:
    name: TypeName
    target: Target

    @property
    def node(self) -> DeclarationNode | None:
        return self.target if isinstance(self.target, DeclarationNode) else None


@dataclass(frozen=True)
class NotFound:
    name: TypeName | str


@dataclass(frozen=True)
class Ambiguous:
    name: TypeName
    candidates: tuple[TypeName, ...]


Resolution = Resolved | NotFound | Ambiguous


def _types_table(namespace: Namespace, component: str) -> Target | None:
    return namespace.nested.get(component)


def _constants_table(namespace: Namespace, component: str) -> Target | None:
    found = namespace.constants.get(component)
    if found is not None:
        return found
    return namespace.nested.get(component)


def _aliases_table(namespace: Namespace, component: str) -> Target | None:
    return namespace.type_aliases.get(component)


def context_of(name: TypeName) -> tuple[TypeName, ...]:
    """The lexical nesting implied by a qualified name: `::A::B` -> (::A, ::A::B)."""
    return tuple(TypeName(path=name.path[: index + 1], absolute=True) for index in range(len(name.path)))


class NameResolver:
    """Resolves relative and qualified names against a nesting and the declaration graph.

    `ancestry` is an optional hook returning a node's ancestors (itself excluded)
    in lookup order; the session passes one built on its ancestor engine so that `inherit=True`
    lookups can see constants and nested declarations of superclasses and mixins.
    """

    def __init__(
        self,
        graph: DeclarationGraph,
        *,
        ancestry: Callable[[DeclarationNode], list[DeclarationNode]] | None = None,
    ):
        self.graph = graph
        self.ancestry = ancestry

    def resolve(self, name: TypeName | str, nesting: Nesting = (), inherit: bool = True) -> Resolution:
        return self._resolve(_as_name(name), nesting, inherit, _types_table)

    def resolve_constant_name(self, name: TypeName | str, nesting: Nesting = (), inherit: bool = True) -> Resolution:
        return self._resolve(_as_name(name), nesting, inherit, _constants_table)

    def resolve_alias(self, name: TypeName | str, nesting: Nesting = ()) -> Resolution:
        return self._resolve(_as_name(name), nesting, False, _aliases_table)

    def resolve_constant(self, name: TypeName | str, nesting: Nesting = (), inherit: bool = True) -> TypeExpr | None:
        """Type of the constant `name`; class and module constants evaluate to their singleton type."""
        result = self.resolve_constant_name(name, nesting, inherit)
        if not isinstance(result, Resolved):
            return None
        if isinstance(result.target, DeclarationNode):
            if result.target.kind == DeclKind.INTERFACE:
                return None
            return SingletonType(result.target.name)
        return self.absolutize(result.target.type, result.target.context)

    def expand_alias(self, alias: AliasType, nesting: Nesting = ()) -> TypeExpr | None:
        """One level of alias expansion, with alias type parameters bound to `alias.args`."""
        result = self.resolve_alias(alias.name, nesting)
        if not isinstance(result, Resolved):
            return None
        entry = result.target
        body = self.absolutize(entry.type, entry.context)
        args = [self.absolutize(arg, nesting) for arg in alias.args]
        mapping = {
            param.name: args[index] if index < len(args) else UNTYPED
            for index, param in enumerate(entry.type_params)
        }
        return substitute(body, mapping)

    def absolutize(self, type_expr: TypeExpr, nesting: Nesting = ()) -> TypeExpr:
        """Rewrite every resolvable name in `type_expr` to its absolute form.

        Names that cannot be resolved are kept as written; aliases are not expanded.
        """
        return map_type(type_expr, lambda node: self._absolutize_node(node, nesting))

    def absolutize_signature(self, signature: MethodSignature, nesting: Nesting = ()) -> MethodSignature:
        return map_signature(signature, lambda node: self._absolutize_node(node, nesting))

    def _absolutize_node(self, node: TypeExpr, nesting: Nesting) -> TypeExpr | None:
        if isinstance(node, NominalType):
            return NominalType(self._absolute_name(node.name, nesting), self._absolutize_args(node.args, nesting))
        if isinstance(node, InterfaceType):
            return InterfaceType(self._absolute_name(node.name, nesting), self._absolutize_args(node.args, nesting))
        if isinstance(node, AliasType):
            result = self.resolve_alias(node.name, nesting)
            name = result.name if isinstance(result, Resolved) else node.name
            return AliasType(name, self._absolutize_args(node.args, nesting))
        if isinstance(node, SingletonType):
            return SingletonType(self._absolute_name(node.name, nesting))
        return None

    def _absolutize_args(self, args: tuple[TypeExpr, ...], nesting: Nesting) -> tuple[TypeExpr, ...]:
        return tuple(self.absolutize(arg, nesting) for arg in args)

    def _absolute_name(self, name: TypeName, nesting: Nesting) -> TypeName:
        result = self.resolve(name, nesting, inherit=False)
        if isinstance(result, Resolved):
            return result.name
        return name

    def _resolve(
        self,
        name: TypeName,
        nesting: Nesting,
        inherit: bool,
        table: Callable[[Namespace, str], Target | None],
    ) -> Resolution:
        head, rest = name.path[0], name.path[1:]
        # Intermediate components always name namespaces; only the last one uses `table`.
        head_table = table if not rest else _types_table

        if name.absolute:
            found = head_table(self.graph.root, head)
            if found is None:
                return NotFound(name)
            return self._descend(name, found, rest, table)

        for frame in self._frames(nesting):
            found = head_table(frame, head)
            if found is not None:
                return self._descend(name, found, rest, table)
            if inherit and isinstance(frame, DeclarationNode) and self.ancestry is not None:
                inherited = self._resolve_inherited(name, frame, head, head_table)
                if isinstance(inherited, Ambiguous):
                    return inherited
                if inherited is not None:
                    return self._descend(name, inherited, rest, table)

        return NotFound(name)

    def _descend(
        self,
        name: TypeName,
        found: Target,
        rest: tuple[str, ...],
        table: Callable[[Namespace, str], Target | None],
    ) -> Resolution:
        current = found
        for index, component in enumerate(rest):
            if not isinstance(current, DeclarationNode):
                return NotFound(name)
            lookup = table if index == len(rest) - 1 else _types_table
            current = lookup(current, component)
            if current is None:
                return NotFound(name)
        return Resolved(name=current.name, target=current)

    def _resolve_inherited(
        self,
        name: TypeName,
        frame: DeclarationNode,
        head: str,
        table: Callable[[Namespace, str], Target | None],
    ) -> Target | Ambiguous | None:
        module_hits: list[Target] = []
        class_hit: Target | None = None
        for ancestor in self.ancestry(frame):
            found = table(ancestor, head)
            if found is None:
                continue
            if ancestor.kind == DeclKind.CLASS:
                class_hit = found
                break
            if not any(found is hit for hit in module_hits):
                module_hits.append(found)

        if len(module_hits) > 1:
            candidates = tuple(hit.name for hit in module_hits)
            logger.debug("'%s' is ambiguous in %s: %s", name, frame.name, ", ".join(map(str, candidates)))
            return Ambiguous(name=name, candidates=candidates)
        if module_hits:
            return module_hits[0]
        return class_hit

    def _frames(self, nesting: Nesting) -> Iterable[Namespace]:
        for entry in reversed(list(nesting)):
            if isinstance(entry, DeclarationNode):
                yield entry
                continue
            namespace = self.graph.namespace(entry.path)
            if namespace is not None:
                yield namespace
        yield self.graph.root


def _as_name(name: TypeName | str) -> TypeName:
    if isinstance(name, str):
        return TypeName.parse(name)
    return name

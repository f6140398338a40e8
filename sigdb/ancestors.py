from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from sigdb.config import CoreNames
from sigdb.graph import (
    ConstantEntry,
    DeclarationGraph,
    DeclarationNode,
    DeclKind,
    MemberKey,
    Mixin,
    MixinRelation,
    TypeRef,
)
from sigdb.resolver import NameResolver, NotFound, Resolved
from sigdb.signatures import Overload, OverloadSet, Scope
from sigdb.type_ops import substitute, substitute_signature
from sigdb.types import *

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ancestor:
    """One step of a linearized ancestor chain.

    `args` are the type arguments of `node` as seen from the start of the
    chain, and `scope` selects which member table of `node` the step consults.
    """

    node: DeclarationNode
    args: tuple[TypeExpr, ...] = ()
    scope: Scope = Scope.INSTANCE

    def mapping(self) -> dict[str, TypeExpr]:
        return {param.name: arg for param, arg in zip(self.node.type_params, self.args)}


class AncestorBuilder:
    def __init__(self, graph: DeclarationGraph, resolver: NameResolver, *, core_names: CoreNames | None = None):
        self.graph = graph
        self.resolver = resolver
        self.core_names = core_names or CoreNames()

    # -- linearization ----------------------------------------------------

    def instance_ancestors(self, node: DeclarationNode, args: tuple[TypeExpr, ...] | None = None) -> list[Ancestor]:
        if args is None:
            args = tuple(TypeVar(param.name) for param in node.type_params)
        result: list[Ancestor] = []
        self._linearize(node, tuple(args), result, set(), ())
        return result

    def ancestors(self, node: DeclarationNode) -> list[DeclarationNode]:
        return [ancestor.node for ancestor in self.instance_ancestors(node)]

    def singleton_ancestors(self, node: DeclarationNode) -> list[Ancestor]:
        if node.kind == DeclKind.INTERFACE:
            return []

        result: list[Ancestor] = []
        seen: set[tuple[str, ...]] = set()
        chain = [node] if node.kind == DeclKind.MODULE else self.superclass_chain(node)
        for klass in chain:
            result.append(Ancestor(klass, (), Scope.SINGLETON))
            for mixin in reversed(klass.mixins_of(MixinRelation.EXTEND)):
                target = self._mixin_target(klass, mixin, {})
                if target is not None:
                    self._linearize(target[0], target[1], result, seen, ())

        meta_name = self.core_names.klass if node.kind == DeclKind.CLASS else self.core_names.module
        meta = self.graph.get(meta_name)
        if meta is not None:
            self._linearize(meta, (), result, seen, ())
        return result

    def superclass_chain(self, node: DeclarationNode) -> list[DeclarationNode]:
        chain: list[DeclarationNode] = []
        current: DeclarationNode | None = node
        while current is not None:
            if any(current is visited for visited in chain):
                logger.debug("superclass cycle through %s", current.name)
                break
            chain.append(current)
            superclass = self._superclass(current, {})
            current = superclass[0] if superclass is not None else None
        return chain

    def _linearize(
        self,
        node: DeclarationNode,
        args: tuple[TypeExpr, ...],
        result: list[Ancestor],
        seen: set[tuple[str, ...]],
        stack: tuple[tuple[str, ...], ...],
    ) -> None:
        path = node.name.path
        if path in stack:
            logger.debug("cut ancestor cycle at %s", node.name)
            return
        if path in seen:
            return
        stack = stack + (path,)
        mapping = {param.name: arg for param, arg in zip(node.type_params, args)}

        for mixin in reversed(node.mixins_of(MixinRelation.PREPEND)):
            target = self._mixin_target(node, mixin, mapping)
            if target is not None:
                self._linearize(target[0], target[1], result, seen, stack)

        if path not in seen:
            seen.add(path)
            result.append(Ancestor(node, args, Scope.INSTANCE))

        for mixin in reversed(node.mixins_of(MixinRelation.INCLUDE)):
            target = self._mixin_target(node, mixin, mapping)
            if target is not None:
                self._linearize(target[0], target[1], result, seen, stack)

        if node.kind == DeclKind.CLASS:
            superclass = self._superclass(node, mapping)
            if superclass is not None:
                self._linearize(superclass[0], superclass[1], result, seen, stack)

    def _mixin_target(
        self,
        node: DeclarationNode,
        mixin: Mixin,
        mapping: dict[str, TypeExpr],
    ) -> tuple[DeclarationNode, tuple[TypeExpr, ...]] | None:
        target = self._resolve_ref(mixin.target, mixin.context, mapping)
        if target is None:
            return None
        allowed = {DeclKind.MODULE}
        if mixin.relation == MixinRelation.INCLUDE:
            allowed.add(DeclKind.INTERFACE)
        if target[0].kind not in allowed:
            return None
        if node.kind == DeclKind.INTERFACE and target[0].kind != DeclKind.INTERFACE:
            return None
        return target

    def _superclass(
        self,
        node: DeclarationNode,
        mapping: dict[str, TypeExpr],
    ) -> tuple[DeclarationNode, tuple[TypeExpr, ...]] | None:
        if node.kind != DeclKind.CLASS:
            return None
        if node.superclass is None:
            default = self._default_superclass(node)
            if default is None:
                return None
            return default, ()

        target = self._resolve_ref(node.superclass.type, node.superclass.context, mapping)
        if target is None or target[0].kind != DeclKind.CLASS:
            return None
        return target

    def _default_superclass(self, node: DeclarationNode) -> DeclarationNode | None:
        if node.name == self.core_names.basic_object:
            return None
        if node.name == self.core_names.object:
            return self.graph.get(self.core_names.basic_object)
        return self.graph.get(self.core_names.object)

    def _resolve_ref(
        self,
        type_expr: TypeExpr,
        context: tuple[TypeName, ...],
        mapping: dict[str, TypeExpr],
    ) -> tuple[DeclarationNode, tuple[TypeExpr, ...]] | None:
        if not isinstance(type_expr, (NominalType, InterfaceType)):
            return None
        result = self.resolver.resolve(type_expr.name, context, inherit=False)
        if not isinstance(result, Resolved) or result.node is None:
            return None
        args = tuple(substitute(self.resolver.absolutize(arg, context), mapping) for arg in type_expr.args)
        if not args and result.node.type_params:
            args = tuple(UNTYPED for _ in result.node.type_params)
        return result.node, args

    # -- lookup -----------------------------------------------------------

    def lookup_method(
        self,
        node: DeclarationNode,
        key: MemberKey | str,
        scope: Scope | str | None = None,
        args: tuple[TypeExpr, ...] | None = None,
    ) -> OverloadSet | NotFound:
        """Nearest definition of a method along the ancestor chain.

        Signatures come back with names absolutized and the type parameters of
        the defining ancestor replaced by the arguments seen from `node`.
        """
        if isinstance(key, MemberKey):
            name, scope = key.name, key.scope
        else:
            name, scope = key, Scope(scope or Scope.INSTANCE)

        if scope == Scope.SINGLETON:
            chain = self.singleton_ancestors(node)
        else:
            chain = self.instance_ancestors(node, args)

        found = self._find(chain, 0, name, ())
        if found is None:
            return NotFound(name)
        return found

    def method_names(self, node: DeclarationNode, scope: Scope = Scope.INSTANCE) -> list[str]:
        chain = self.singleton_ancestors(node) if scope == Scope.SINGLETON else self.instance_ancestors(node)
        names: list[str] = []
        for ancestor in chain:
            for name in ancestor.node.member_names(ancestor.scope):
                if name not in names:
                    names.append(name)
            for alias_name, alias_scope in ancestor.node.method_aliases:
                if alias_scope == ancestor.scope and alias_name not in names:
                    names.append(alias_name)
        return names

    def interface_methods(self, node: DeclarationNode, args: tuple[TypeExpr, ...] | None = None) -> dict[str, OverloadSet]:
        """Methods an interface requires: its own and those of included interfaces."""
        chain = self.instance_ancestors(node, args)
        methods: dict[str, OverloadSet] = {}
        for name in self.method_names(node):
            found = self._find(chain, 0, name, ())
            if found is not None:
                methods[name] = found
        return methods

    def lookup_constant(self, node: DeclarationNode, name: str) -> ConstantEntry | DeclarationNode | None:
        for ancestor in self.ancestors(node):
            found = ancestor.constants.get(name) or ancestor.nested.get(name)
            if found is not None:
                return found
        return None

    def lookup_instance_variable(self, node: DeclarationNode, name: str, scope: Scope = Scope.INSTANCE) -> TypeRef | None:
        chain = self.singleton_ancestors(node) if scope == Scope.SINGLETON else self.instance_ancestors(node)
        for ancestor in chain:
            found = ancestor.node.instance_variables.get((name, ancestor.scope))
            if found is not None:
                return found
        return None

    def _find(
        self,
        chain: list[Ancestor],
        start: int,
        name: str,
        aliases: tuple[str, ...],
    ) -> OverloadSet | None:
        for index in range(start, len(chain)):
            ancestor = chain[index]
            found = ancestor.node.member(name, ancestor.scope)
            if found is not None:
                resolved = self._instantiate(found, ancestor)
                if found.overloading:
                    inherited = self._find(chain, index + 1, name, aliases)
                    if inherited is not None:
                        resolved = replace(
                            resolved,
                            overloads=resolved.overloads + inherited.overloads,
                            overloading=False,
                        )
                return resolved

            alias = ancestor.node.method_aliases.get((name, ancestor.scope))
            if alias is not None:
                if alias.old_name in aliases:
                    logger.debug("method alias cycle at %s#%s", ancestor.node.name, name)
                    return None
                target = self._find(chain, index, alias.old_name, aliases + (name,))
                if target is None:
                    return None
                return replace(target, name=name)
        return None

    def _instantiate(self, overloads: OverloadSet, ancestor: Ancestor) -> OverloadSet:
        mapping = ancestor.mapping()
        instantiated = tuple(
            replace(
                overload,
                signature=substitute_signature(
                    self.resolver.absolutize_signature(overload.signature, overload.context),
                    mapping,
                ),
            )
            for overload in overloads.overloads
        )
        return replace(overloads, overloads=instantiated)

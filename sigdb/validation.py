from __future__ import annotations

import logging
from collections.abc import Iterator

from sigdb.diagnostics import Diagnostic, DiagnosticCode
from sigdb.graph import DeclarationGraph, DeclarationNode, DeclKind, MixinRelation, TypeAliasEntry
from sigdb.lexer import SourceSpan
from sigdb.printer import format_type
from sigdb.resolver import Ambiguous, NameResolver, NotFound, Resolved, context_of
from sigdb.signatures import MethodSignature, Scope
from sigdb.type_ops import iter_types, signature_types
from sigdb.types import *

logger = logging.getLogger(__name__)


FLIP = {
    Variance.COVARIANT: Variance.CONTRAVARIANT,
    Variance.CONTRAVARIANT: Variance.COVARIANT,
    Variance.INVARIANT: Variance.INVARIANT,
}


def _compose(position: Variance, param: Variance) -> Variance:
    if param == Variance.COVARIANT:
        return position
    if param == Variance.CONTRAVARIANT:
        return FLIP[position]
    return Variance.INVARIANT


class Validator:
    """Whole-corpus structural checks run after loading.

    Every problem is reported as a `Diagnostic`; nothing here raises for a
    malformed corpus.
    """

    def __init__(self, graph: DeclarationGraph, resolver: NameResolver):
        self.graph = graph
        self.resolver = resolver
        self.diagnostics: list[Diagnostic] = []

    def validate(self) -> list[Diagnostic]:
        self.diagnostics = []
        for node in self.graph.nodes():
            self._validate_node(node)
        self._validate_aliases(self.graph.root.type_aliases.values())
        for entry in self.graph.root.constants.values():
            self._check_type(entry.type, entry.context, entry.span)
        for ref in self.graph.globals.values():
            self._check_type(ref.type, ref.context, ref.span)
        self._check_inheritance_cycles()
        self._check_mixin_cycles()
        logger.debug("validation produced %d diagnostics", len(self.diagnostics))
        return self.diagnostics

    def _report(self, code: DiagnosticCode, message: str, span: SourceSpan | None) -> None:
        diagnostic = Diagnostic(code, message, span)
        if diagnostic not in self.diagnostics:
            self.diagnostics.append(diagnostic)

    # -- per node ---------------------------------------------------------

    def _validate_node(self, node: DeclarationNode) -> None:
        span = node.locations[0] if node.locations else None
        params = {param.name: param for param in node.type_params}

        superclass = node.superclass
        if superclass is not None:
            target = self._resolve_reference(
                superclass.type, superclass.context, superclass.span, DiagnosticCode.INVALID_SUPERCLASS, "superclass"
            )
            if target is not None:
                if target.kind != DeclKind.CLASS:
                    self._report(
                        DiagnosticCode.INVALID_SUPERCLASS,
                        f"Superclass of '{node.name}' must be a class, '{target.name}' is a {target.kind.value}",
                        superclass.span,
                    )
                self._check_reference_args(superclass.type, target, superclass.context, superclass.span)
                self._check_variance(
                    node,
                    self.resolver.absolutize(superclass.type, superclass.context),
                    Variance.COVARIANT,
                    params,
                    superclass.span,
                )

        for mixin in node.mixins:
            target = self._resolve_reference(
                mixin.target, mixin.context, mixin.span, DiagnosticCode.INVALID_MIXIN, mixin.relation.value
            )
            if target is None:
                continue
            allowed = {DeclKind.MODULE}
            if mixin.relation == MixinRelation.INCLUDE:
                allowed.add(DeclKind.INTERFACE)
            if node.kind == DeclKind.INTERFACE:
                allowed = {DeclKind.INTERFACE}
            if target.kind not in allowed:
                self._report(
                    DiagnosticCode.INVALID_MIXIN,
                    f"Cannot {mixin.relation.value} {target.kind.value} '{target.name}' in '{node.name}'",
                    mixin.span,
                )
            self._check_reference_args(mixin.target, target, mixin.context, mixin.span)
            if mixin.relation != MixinRelation.EXTEND:
                self._check_variance(
                    node, self.resolver.absolutize(mixin.target, mixin.context), Variance.COVARIANT, params, mixin.span
                )

        for ref in node.self_types:
            self._check_type(ref.type, ref.context, ref.span)

        for param in node.type_params:
            if param.upper_bound is not None:
                self._check_type(param.upper_bound, context_of(node.name), span)

        for key, overloads in node.members.items():
            for overload in overloads.overloads:
                for type_expr in signature_types(overload.signature):
                    self._check_type(type_expr, overload.context, overload.span)
                if key.scope == Scope.INSTANCE:
                    signature = self.resolver.absolutize_signature(overload.signature, overload.context)
                    self._check_signature_variance(node, signature, params, overload.span)

        for ref in node.instance_variables.values():
            self._check_type(ref.type, ref.context, ref.span)
        for entry in node.constants.values():
            self._check_type(entry.type, entry.context, entry.span)
        self._validate_aliases(node.type_aliases.values())

    def _resolve_reference(
        self,
        type_expr: TypeExpr,
        context: tuple[TypeName, ...],
        span: SourceSpan | None,
        missing_code: DiagnosticCode,
        role: str,
    ) -> DeclarationNode | None:
        if not isinstance(type_expr, (NominalType, InterfaceType)):
            return None
        result = self.resolver.resolve(type_expr.name, context, inherit=False)
        if isinstance(result, Ambiguous):
            self._report(DiagnosticCode.AMBIGUOUS_NAME, f"Ambiguous {role} '{type_expr.name}'", span)
            return None
        if isinstance(result, NotFound):
            self._report(missing_code, f"Cannot find {role} target '{type_expr.name}'", span)
            return None
        return result.node

    def _check_reference_args(
        self,
        type_expr: NominalType | InterfaceType,
        target: DeclarationNode,
        context: tuple[TypeName, ...],
        span: SourceSpan | None,
    ) -> None:
        self._check_arity(type_expr, len(target.type_params), target.name, span)
        for arg in type_expr.args:
            self._check_type(arg, context, span)

    # -- type references --------------------------------------------------

    def _check_type(self, type_expr: TypeExpr, context: tuple[TypeName, ...], span: SourceSpan | None) -> None:
        for node in iter_types(type_expr):
            if isinstance(node, (NominalType, InterfaceType, SingletonType)):
                result = self.resolver.resolve(node.name, context)
                if not self._reported(result, node, span):
                    continue
                target = result.node
                if isinstance(node, SingletonType):
                    if target.kind == DeclKind.INTERFACE:
                        self._report(
                            DiagnosticCode.UNKNOWN_TYPE,
                            f"'{node.name}' is an interface and has no singleton",
                            span,
                        )
                    continue
                self._check_arity(node, len(target.type_params), target.name, span)
            elif isinstance(node, AliasType):
                result = self.resolver.resolve_alias(node.name, context)
                if not self._reported(result, node, span):
                    continue
                self._check_arity(node, len(result.target.type_params), result.name, span)

    def _reported(self, result, node: TypeExpr, span: SourceSpan | None) -> bool:
        if isinstance(result, Resolved):
            return True
        if isinstance(result, Ambiguous):
            self._report(DiagnosticCode.AMBIGUOUS_NAME, f"Ambiguous reference to '{node.name}'", span)
        else:
            self._report(DiagnosticCode.UNKNOWN_TYPE, f"Cannot find type '{node.name}'", span)
        return False

    def _check_arity(self, node: TypeExpr, expected: int, name: TypeName, span: SourceSpan | None) -> None:
        actual = len(node.args)
        # A generic without arguments is accepted as the all-untyped instantiation.
        if actual != expected and not (actual == 0 and isinstance(node, NominalType)):
            self._report(
                DiagnosticCode.GENERIC_ARITY,
                f"'{name}' expects {expected} type argument(s), got {actual} in '{format_type(node)}'",
                span,
            )

    # -- variance ---------------------------------------------------------

    def _check_signature_variance(
        self,
        node: DeclarationNode,
        signature: MethodSignature,
        params: dict[str, TypeParam],
        span: SourceSpan | None,
        position: Variance = Variance.COVARIANT,
    ) -> None:
        shadowed = {param.name for param in signature.type_params}
        visible = {name: param for name, param in params.items() if name not in shadowed}
        for param in signature.positional + signature.keyword:
            self._check_variance(node, param.type, FLIP[position], visible, span)
        if signature.block is not None:
            self._check_signature_variance(node, signature.block.signature, visible, span, FLIP[position])
        self._check_variance(node, signature.return_type, position, visible, span)

    def _check_variance(
        self,
        node: DeclarationNode,
        type_expr: TypeExpr,
        position: Variance,
        params: dict[str, TypeParam],
        span: SourceSpan | None,
    ) -> None:
        if not params:
            return
        if isinstance(type_expr, TypeVar):
            param = params.get(type_expr.name)
            if param is None or param.unchecked or param.variance == Variance.INVARIANT:
                return
            if param.variance != position:
                self._report(
                    DiagnosticCode.VARIANCE,
                    f"{param.variance.value.capitalize()} type parameter '{param.name}' of '{node.name}' "
                    f"is used in {position.value} position",
                    span,
                )
            return
        if isinstance(type_expr, (NominalType, InterfaceType)):
            target = self.graph.get(type_expr.name) if type_expr.name.absolute else None
            target_params = target.type_params if target is not None else ()
            for index, arg in enumerate(type_expr.args):
                variance = target_params[index].variance if index < len(target_params) else Variance.INVARIANT
                self._check_variance(node, arg, _compose(position, variance), params, span)
            return
        if isinstance(type_expr, AliasType):
            for arg in type_expr.args:
                self._check_variance(node, arg, position, params, span)
            return
        if isinstance(type_expr, ProcType):
            self._check_signature_variance(node, type_expr.signature, params, span, position)
            return
        if isinstance(type_expr, UnionType):
            children = type_expr.members
        elif isinstance(type_expr, OptionalType):
            children = (type_expr.inner,)
        elif isinstance(type_expr, TupleType):
            children = type_expr.elements
        elif isinstance(type_expr, RecordType):
            children = tuple(value for _, value in type_expr.fields)
        else:
            return
        for child in children:
            self._check_variance(node, child, position, params, span)

    # -- cycles -----------------------------------------------------------

    def _check_inheritance_cycles(self) -> None:
        reported: set[frozenset[tuple[str, ...]]] = set()
        for node in self.graph.nodes():
            if node.kind != DeclKind.CLASS:
                continue
            path: list[DeclarationNode] = []
            current: DeclarationNode | None = node
            while current is not None and not any(current is seen for seen in path):
                path.append(current)
                current = self._direct_superclass(current)
            if current is None:
                continue
            cycle = path[path.index(current):]
            members = frozenset(entry.name.path for entry in cycle)
            if members in reported:
                continue
            reported.add(members)
            names = " < ".join(str(entry.name) for entry in cycle + [current])
            span = current.superclass.span if current.superclass is not None else None
            self._report(DiagnosticCode.INHERITANCE_CYCLE, f"Cyclic superclass chain: {names}", span)

    def _direct_superclass(self, node: DeclarationNode) -> DeclarationNode | None:
        if node.superclass is None or not isinstance(node.superclass.type, NominalType):
            return None
        result = self.resolver.resolve(node.superclass.type.name, node.superclass.context, inherit=False)
        return result.node if isinstance(result, Resolved) else None

    def _check_mixin_cycles(self) -> None:
        reported: set[frozenset[tuple[str, ...]]] = set()

        def visit(node: DeclarationNode, stack: list[DeclarationNode]) -> None:
            if any(node is entry for entry in stack):
                cycle = stack[[id(entry) for entry in stack].index(id(node)):]
                members = frozenset(entry.name.path for entry in cycle)
                if members not in reported:
                    reported.add(members)
                    names = " -> ".join(str(entry.name) for entry in cycle + [node])
                    span = node.locations[0] if node.locations else None
                    self._report(DiagnosticCode.INHERITANCE_CYCLE, f"Cyclic mixin chain: {names}", span)
                return
            for mixin in node.mixins:
                if mixin.relation == MixinRelation.EXTEND or not isinstance(mixin.target, (NominalType, InterfaceType)):
                    continue
                result = self.resolver.resolve(mixin.target.name, mixin.context, inherit=False)
                if isinstance(result, Resolved) and result.node is not None and result.node.kind != DeclKind.CLASS:
                    visit(result.node, stack + [node])

        for node in self.graph.nodes():
            if node.kind != DeclKind.CLASS:
                visit(node, [])

    # -- aliases ----------------------------------------------------------

    def _validate_aliases(self, entries) -> None:
        for entry in entries:
            self._check_type(entry.type, entry.context, entry.span)
            if self._is_unproductive(entry, ()):
                self._report(
                    DiagnosticCode.RECURSIVE_ALIAS,
                    f"Type alias '{entry.name}' expands to itself without a type constructor",
                    entry.span,
                )

    def _is_unproductive(self, entry: TypeAliasEntry, seen: tuple[TypeName, ...]) -> bool:
        """Whether `entry` reaches itself through unions, optionals and alias references only."""
        if entry.name in seen:
            return entry.name == seen[0]
        seen = seen + (entry.name,)
        for reference in _unguarded_aliases(entry.type):
            result = self.resolver.resolve_alias(reference.name, entry.context)
            if isinstance(result, Resolved) and self._is_unproductive(result.target, seen):
                return True
        return False


def _unguarded_aliases(type_expr: TypeExpr) -> Iterator[AliasType]:
    if isinstance(type_expr, AliasType):
        yield type_expr
    elif isinstance(type_expr, UnionType):
        for member in type_expr.members:
            yield from _unguarded_aliases(member)
    elif isinstance(type_expr, OptionalType):
        yield from _unguarded_aliases(type_expr.inner)


from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields, is_dataclass, replace

from sigdb.ancestors import AncestorBuilder
from sigdb.config import CoreNames
from sigdb.graph import DeclarationGraph, DeclarationNode, DeclKind
from sigdb.resolver import NameResolver
from sigdb.signatures import (
    MethodSignature,
    Overload,
    OverloadSet,
    Parameter,
    ParamKind,
    Scope,
    Visibility,
    arity_overlaps,
)
from sigdb.type_ops import bind_self, map_signature, map_type, substitute_signature
from sigdb.types import *

logger = logging.getLogger(__name__)


Assumptions = frozenset[tuple[TypeExpr, TypeExpr]]


@dataclass(frozen=True)
class CallSite:
    """Argument types of a call: positional, keyword and an optional block."""

    positional: tuple[TypeExpr, ...] = ()
    keywords: tuple[tuple[str, TypeExpr], ...] = ()
    block: TypeExpr | None = None

    def __post_init__(self) -> None:
        if isinstance(self.keywords, Mapping):
            object.__setattr__(self, "keywords", tuple(self.keywords.items()))
        object.__setattr__(self, "positional", tuple(self.positional))
        names = [name for name, _ in self.keywords]
        if len(names) != len(set(names)):
            raise ValueError("Duplicate keyword argument in call site")


@dataclass(frozen=True)
class OverloadMatch:
    index: int
    signature: MethodSignature
    return_type: TypeExpr
    bindings: tuple[tuple[str, TypeExpr], ...] = field(default=(), compare=False)


class SubtypeChecker:
    def __init__(
        self,
        graph: DeclarationGraph,
        resolver: NameResolver,
        ancestors: AncestorBuilder,
        *,
        core_names: CoreNames | None = None,
    ):
        self.graph = graph
        self.resolver = resolver
        self.ancestors = ancestors
        self.core_names = core_names or CoreNames()

    # -- public queries ---------------------------------------------------

    def is_subtype(
        self,
        sub: TypeExpr,
        sup: TypeExpr,
        *,
        self_type: TypeExpr | None = None,
        instance_type: TypeExpr | None = None,
        class_type: TypeExpr | None = None,
        context: tuple[TypeName, ...] = (),
    ) -> bool:
        self_type, instance_type, class_type = (
            self.resolver.absolutize(bound, context) if bound is not None else None
            for bound in (self_type, instance_type, class_type)
        )
        sub = self._prepare(sub, context, self_type, instance_type, class_type)
        sup = self._prepare(sup, context, self_type, instance_type, class_type)
        return self._check(sub, sup, frozenset())

    def is_compatible_signature(
        self,
        sub: MethodSignature,
        sup: MethodSignature,
        *,
        context: tuple[TypeName, ...] = (),
    ) -> bool:
        """Whether a method with signature `sub` can be used where `sup` is expected."""
        sub = self.resolver.absolutize_signature(sub, context)
        sup = self.resolver.absolutize_signature(sup, context)
        return self._signature_compatible(sub, sup, frozenset())

    def resolve_overload(
        self,
        overloads: OverloadSet | Sequence[Overload | MethodSignature],
        call: CallSite,
        *,
        self_type: TypeExpr | None = None,
        instance_type: TypeExpr | None = None,
        class_type: TypeExpr | None = None,
        context: tuple[TypeName, ...] = (),
    ) -> OverloadMatch | None:
        """First overload, in declared order, that accepts `call`."""
        if isinstance(overloads, OverloadSet):
            overloads = overloads.overloads
        self_type, instance_type, class_type = (
            self.resolver.absolutize(bound, context) if bound is not None else None
            for bound in (self_type, instance_type, class_type)
        )
        call = CallSite(
            positional=tuple(self._prepare(arg, context, self_type, instance_type, class_type) for arg in call.positional),
            keywords=tuple(
                (name, self._prepare(arg, context, self_type, instance_type, class_type)) for name, arg in call.keywords
            ),
            block=self._prepare(call.block, context, self_type, instance_type, class_type)
            if call.block is not None
            else None,
        )

        for index, entry in enumerate(overloads):
            if isinstance(entry, Overload):
                signature = self.resolver.absolutize_signature(entry.signature, entry.context)
            else:
                signature = self.resolver.absolutize_signature(entry, context)
            signature = map_signature(
                signature,
                lambda node: bind_self(node, self_type, instance_type, class_type)
                if isinstance(node, SpecialType)
                else None,
            )
            match = self._match_call(index, signature, call)
            if match is not None:
                logger.debug("call matched overload %d", index)
                return match
        return None

    def resolve_call(
        self,
        receiver: TypeExpr,
        method: str,
        call: CallSite,
        *,
        context: tuple[TypeName, ...] = (),
    ) -> OverloadMatch | None:
        """Resolve `receiver.method(...)`, binding `self`, `instance` and `class` to the receiver."""
        receiver = self._normalize(self.resolver.absolutize(receiver, context))
        if isinstance(receiver, SingletonType):
            node = self.graph.get(receiver.name)
            if node is None:
                return None
            overloads = self.ancestors.lookup_method(node, method, Scope.SINGLETON)
            self_type, instance_type, class_type = receiver, self._instance_of(node, ()), receiver
        elif isinstance(receiver, (NominalType, InterfaceType)):
            node = self.graph.get(receiver.name)
            if node is None:
                return None
            args = self._args_for(node, receiver.args)
            overloads = self.ancestors.lookup_method(node, method, Scope.INSTANCE, args)
            self_type, instance_type, class_type = receiver, receiver, SingletonType(node.name)
        else:
            return None

        if not isinstance(overloads, OverloadSet):
            return None
        return self.resolve_overload(
            overloads.signatures,
            call,
            self_type=self_type,
            instance_type=instance_type,
            class_type=class_type,
        )

    # -- core relation ----------------------------------------------------

    def _prepare(
        self,
        type_expr: TypeExpr,
        context: tuple[TypeName, ...],
        self_type: TypeExpr | None,
        instance_type: TypeExpr | None,
        class_type: TypeExpr | None,
    ) -> TypeExpr:
        type_expr = self.resolver.absolutize(type_expr, context)
        if self_type is not None or instance_type is not None or class_type is not None:
            type_expr = bind_self(type_expr, self_type, instance_type, class_type)
        return type_expr

    def _check(self, sub: TypeExpr, sup: TypeExpr, assumptions: Assumptions) -> bool:
        if sub == sup:
            return True
        if is_untyped(sub) or is_untyped(sup):
            return True

        if isinstance(sub, AliasType) or isinstance(sup, AliasType):
            if (sub, sup) in assumptions:
                return True
            assumptions = assumptions | {(sub, sup)}
            if isinstance(sub, AliasType):
                expanded = self.resolver.expand_alias(sub)
                if expanded is None:
                    return False
                return self._check(expanded, sup, assumptions)
            expanded = self.resolver.expand_alias(sup)
            if expanded is None:
                return False
            return self._check(sub, expanded, assumptions)

        sub = self._normalize(sub)
        sup = self._normalize(sup)
        if sub == sup:
            return True

        if _is_special(sup, SpecialKind.TOP) or _is_special(sup, SpecialKind.VOID):
            return True
        if _is_special(sub, SpecialKind.BOTTOM):
            return True

        if isinstance(sub, UnionType):
            return all(self._check(member, sup, assumptions) for member in sub.members)
        if isinstance(sup, UnionType):
            return any(self._check(sub, member, assumptions) for member in sup.members)

        if isinstance(sub, LiteralType):
            if isinstance(sup, LiteralType):
                return False
            return self._check(self._literal_class(sub), sup, assumptions)

        if isinstance(sup, InterfaceType):
            return self._check_interface(sub, sup, assumptions)

        if isinstance(sub, TupleType):
            if isinstance(sup, TupleType):
                return len(sub.elements) == len(sup.elements) and all(
                    self._check(left, right, assumptions) for left, right in zip(sub.elements, sup.elements)
                )
            return self._check(self._tuple_class(sub), sup, assumptions)

        if isinstance(sub, RecordType):
            if isinstance(sup, RecordType):
                fields = sub.field_map()
                return all(
                    key in fields and self._check(fields[key], value, assumptions) for key, value in sup.fields
                )
            return self._check(self._record_class(sub), sup, assumptions)

        if isinstance(sub, ProcType):
            if isinstance(sup, ProcType):
                return self._signature_compatible(sub.signature, sup.signature, assumptions)
            return self._check(NominalType(self.core_names.proc), sup, assumptions)

        if isinstance(sub, SingletonType):
            return self._check_singleton(sub, sup, assumptions)

        if isinstance(sub, NominalType) and isinstance(sup, NominalType):
            return self._check_nominal(sub, sup, assumptions)

        return False

    def _normalize(self, type_expr: TypeExpr) -> TypeExpr:
        """Map sugar onto the nominal forms the relation is defined over."""
        if isinstance(type_expr, OptionalType):
            return union(type_expr.inner, NominalType(self.core_names.nil_class))
        if isinstance(type_expr, SpecialType):
            if type_expr.kind == SpecialKind.NIL:
                return NominalType(self.core_names.nil_class)
            if type_expr.kind == SpecialKind.BOOL:
                return union(NominalType(self.core_names.true_class), NominalType(self.core_names.false_class))
        if isinstance(type_expr, LiteralType) and type_expr.kind == LiteralKind.BOOL:
            return NominalType(self.core_names.true_class if type_expr.value else self.core_names.false_class)
        return type_expr

    def _literal_class(self, literal: LiteralType) -> NominalType:
        if literal.kind == LiteralKind.INT:
            return NominalType(self.core_names.integer)
        if literal.kind == LiteralKind.STRING:
            return NominalType(self.core_names.string)
        return NominalType(self.core_names.symbol)

    def _tuple_class(self, tuple_type: TupleType) -> NominalType:
        element = union(*tuple_type.elements) if tuple_type.elements else UNTYPED
        return NominalType(self.core_names.array, (element,))

    def _record_class(self, record: RecordType) -> NominalType:
        value = union(*(value for _, value in record.fields)) if record.fields else UNTYPED
        return NominalType(self.core_names.hash, (NominalType(self.core_names.symbol), value))

    def _check_nominal(self, sub: NominalType, sup: NominalType, assumptions: Assumptions) -> bool:
        node = self.graph.get(sub.name)
        target = self.graph.get(sup.name)
        if node is None or target is None:
            return False

        for ancestor in self.ancestors.instance_ancestors(node, self._args_for(node, sub.args)):
            if ancestor.node is target:
                return self._check_args(target, ancestor.args, self._args_for(target, sup.args), assumptions)
        return False

    def _check_args(
        self,
        node: DeclarationNode,
        sub_args: tuple[TypeExpr, ...],
        sup_args: tuple[TypeExpr, ...],
        assumptions: Assumptions,
    ) -> bool:
        for param, left, right in zip(node.type_params, sub_args, sup_args):
            if param.variance == Variance.COVARIANT:
                ok = self._check(left, right, assumptions)
            elif param.variance == Variance.CONTRAVARIANT:
                ok = self._check(right, left, assumptions)
            else:
                ok = self._equivalent(left, right)
            if not ok:
                return False
        return True

    def _equivalent(self, left: TypeExpr, right: TypeExpr) -> bool:
        """Structural equality of invariant arguments, compared in canonical form."""
        return _same_shape(self._canonical(left, frozenset()), self._canonical(right, frozenset()))

    def _canonical(self, type_expr: TypeExpr, expanding: frozenset[AliasType]) -> TypeExpr:
        # Aliases expand once per path so recursive aliases terminate.
        def rewrite(node: TypeExpr) -> TypeExpr | None:
            if isinstance(node, AliasType):
                if node in expanding:
                    return node
                expanded = self.resolver.expand_alias(node)
                if expanded is None:
                    return node
                return self._canonical(expanded, expanding | {node})
            if isinstance(node, UnionType):
                members: dict[str, TypeExpr] = {}
                for member in node.members:
                    member = self._canonical(member, expanding)
                    for part in member.members if isinstance(member, UnionType) else (member,):
                        members.setdefault(repr(part), part)
                ordered = [members[key] for key in sorted(members)]
                return ordered[0] if len(ordered) == 1 else UnionType(tuple(ordered))
            normalized = self._normalize(node)
            if normalized is not node:
                return self._canonical(normalized, expanding)
            return None

        return map_type(type_expr, rewrite)

    def _args_for(self, node: DeclarationNode, args: tuple[TypeExpr, ...]) -> tuple[TypeExpr, ...]:
        # A generic written without arguments stands for all-untyped arguments.
        if not args and node.type_params:
            return tuple(UNTYPED for _ in node.type_params)
        return args

    def _instance_of(self, node: DeclarationNode, args: tuple[TypeExpr, ...]) -> TypeExpr:
        args = self._args_for(node, args)
        if node.kind == DeclKind.INTERFACE:
            return InterfaceType(node.name, args)
        return NominalType(node.name, args)

    def _check_singleton(self, sub: SingletonType, sup: TypeExpr, assumptions: Assumptions) -> bool:
        node = self.graph.get(sub.name)
        if node is None:
            return False
        if isinstance(sup, SingletonType):
            return any(klass.name == sup.name for klass in self.ancestors.superclass_chain(node))
        if isinstance(sup, NominalType):
            target = self.graph.get(sup.name)
            return target is not None and any(
                ancestor.node is target and ancestor.scope == Scope.INSTANCE
                for ancestor in self.ancestors.singleton_ancestors(node)
            )
        return False

    # -- structural interfaces ----------------------------------------------

    def _check_interface(self, sub: TypeExpr, sup: InterfaceType, assumptions: Assumptions) -> bool:
        interface_node = self.graph.get(sup.name)
        if interface_node is None or interface_node.kind != DeclKind.INTERFACE:
            return False
        if (sub, sup) in assumptions:
            return True
        assumptions = assumptions | {(sub, sup)}

        receiver = sub
        if isinstance(sub, TupleType):
            receiver = self._tuple_class(sub)
        elif isinstance(sub, RecordType):
            receiver = self._record_class(sub)
        elif isinstance(sub, ProcType):
            receiver = NominalType(self.core_names.proc)

        if isinstance(receiver, SingletonType):
            node = self.graph.get(receiver.name)
            scope, args = Scope.SINGLETON, None
            instance_type = self._instance_of(node, ()) if node is not None else None
        elif isinstance(receiver, (NominalType, InterfaceType)):
            node = self.graph.get(receiver.name)
            scope = Scope.INSTANCE
            args = self._args_for(node, receiver.args) if node is not None else None
            instance_type = receiver
        else:
            return False
        if node is None:
            return False

        if isinstance(receiver, InterfaceType) and node.kind != DeclKind.INTERFACE:
            return False
        if scope == Scope.INSTANCE:
            for ancestor in self.ancestors.instance_ancestors(node, args):
                if ancestor.node is interface_node:
                    if self._check_args(interface_node, ancestor.args, self._args_for(interface_node, sup.args), assumptions):
                        return True

        required = self.ancestors.interface_methods(interface_node, self._args_for(interface_node, sup.args))
        for name, expected in required.items():
            provided = self.ancestors.lookup_method(node, name, scope, args)
            if not isinstance(provided, OverloadSet) or provided.visibility == Visibility.PRIVATE:
                logger.debug("%s does not provide %s required by %s", sub, name, sup.name)
                return False
            for wanted in expected.signatures:
                wanted = map_signature(wanted, lambda n: bind_self(n, sub, instance_type) if isinstance(n, SpecialType) else None)
                if not any(
                    self._signature_compatible(
                        map_signature(
                            candidate,
                            lambda n: bind_self(n, sub, instance_type) if isinstance(n, SpecialType) else None,
                        ),
                        wanted,
                        assumptions,
                    )
                    for candidate in provided.signatures
                ):
                    return False
        return True

    # -- signatures -------------------------------------------------------

    def _signature_compatible(self, sub: MethodSignature, sup: MethodSignature, assumptions: Assumptions) -> bool:
        sub = _erase_method_vars(sub)
        sup = _erase_method_vars(sup)

        if not arity_overlaps(sub.arity_range(), sup.arity_range()):
            return False

        sub_positional = _positional_types(sub)
        sup_positional = _positional_types(sup)
        for index in range(max(len(sub_positional[0]), len(sup_positional[0]))):
            expected = _positional_at(sup_positional, index)
            accepted = _positional_at(sub_positional, index)
            if expected is not None and accepted is not None and not self._check(expected, accepted, assumptions):
                return False
        if sub.rest is not None and sup.rest is not None:
            if not self._check(sup.rest.type, sub.rest.type, assumptions):
                return False

        for param in sub.required_keywords:
            if sup.keyword_param(param.name) is None:
                return False
        for param in sup.keyword:
            if param.kind == ParamKind.KEYWORD_REST:
                if sub.keyword_rest is not None and not self._check(param.type, sub.keyword_rest.type, assumptions):
                    return False
                continue
            accepted = sub.keyword_param(param.name) or sub.keyword_rest
            if accepted is None:
                return False
            if not self._check(param.type, accepted.type, assumptions):
                return False

        if sub.block is not None and sub.block.required:
            if sup.block is None or not sup.block.required:
                return False
        if sub.block is not None and sup.block is not None:
            # The block handed to `sup` is called the way `sub` calls its block.
            if not self._signature_compatible(sup.block.signature, sub.block.signature, assumptions):
                return False

        return self._check(sub.return_type, sup.return_type, assumptions)

    def _match_call(self, index: int, signature: MethodSignature, call: CallSite) -> OverloadMatch | None:
        bindings = self._bind_method_vars(signature, call)
        signature = _instantiate_method_vars(signature, bindings)

        count = len(call.positional)
        minimum, maximum = signature.arity_range()
        if count < minimum or (maximum is not None and count > maximum):
            return None
        for argument, param in zip(call.positional, _distribute(signature, count)):
            if not self._check(argument, param.type, frozenset()):
                return None

        provided = dict(call.keywords)
        for name, argument in call.keywords:
            param = signature.keyword_param(name) or signature.keyword_rest
            if param is None or not self._check(argument, param.type, frozenset()):
                return None
        for param in signature.required_keywords:
            if param.name not in provided:
                return None

        if signature.block is not None and signature.block.required and call.block is None:
            return None
        if call.block is not None and signature.block is not None and not is_untyped(call.block):
            if not isinstance(call.block, ProcType):
                return None
            if not self._signature_compatible(call.block.signature, signature.block.signature, frozenset()):
                return None

        return OverloadMatch(
            index=index,
            signature=signature,
            return_type=signature.return_type,
            bindings=tuple(bindings.items()),
        )

    def _bind_method_vars(self, signature: MethodSignature, call: CallSite) -> dict[str, TypeExpr]:
        """Bind method type variables that appear bare as a parameter type to the first argument passed there."""
        names = {param.name for param in signature.type_params}
        if not names:
            return {}
        bindings: dict[str, TypeExpr] = {}
        count = len(call.positional)
        minimum, maximum = signature.arity_range()
        if count >= minimum and (maximum is None or count <= maximum):
            for argument, param in zip(call.positional, _distribute(signature, count)):
                if isinstance(param.type, TypeVar) and param.type.name in names:
                    bindings.setdefault(param.type.name, argument)
        for name, argument in call.keywords:
            param = signature.keyword_param(name) or signature.keyword_rest
            if param is not None and isinstance(param.type, TypeVar) and param.type.name in names:
                bindings.setdefault(param.type.name, argument)
        return bindings


def _same_shape(left: object, right: object) -> bool:
    """Equality where `untyped` matches any type at any depth."""
    if left == right:
        return True
    if is_untyped(left) or is_untyped(right):
        return True
    if type(left) is not type(right):
        return False
    if isinstance(left, tuple):
        return len(left) == len(right) and all(_same_shape(a, b) for a, b in zip(left, right))
    if is_dataclass(left):
        return all(_same_shape(getattr(left, item.name), getattr(right, item.name)) for item in fields(left))
    return False


def _is_special(type_expr: TypeExpr, kind: SpecialKind) -> bool:
    return isinstance(type_expr, SpecialType) and type_expr.kind == kind


def _instantiate_method_vars(signature: MethodSignature, bindings: Mapping[str, TypeExpr]) -> MethodSignature:
    """Replace method-level type variables with their bindings; unbound ones compare as untyped."""
    if not signature.type_params:
        return signature
    mapping = {param.name: bindings.get(param.name, UNTYPED) for param in signature.type_params}
    return substitute_signature(replace(signature, type_params=()), mapping)


def _erase_method_vars(signature: MethodSignature) -> MethodSignature:
    return _instantiate_method_vars(signature, {})


def _positional_types(signature: MethodSignature) -> tuple[list[TypeExpr], TypeExpr | None]:
    fixed = [param.type for param in signature.leading_required + signature.optional_positionals]
    fixed.extend(param.type for param in signature.trailing_required)
    rest = signature.rest.type if signature.rest is not None else None
    return fixed, rest


def _positional_at(positional: tuple[list[TypeExpr], TypeExpr | None], index: int) -> TypeExpr | None:
    fixed, rest = positional
    if index < len(fixed):
        return fixed[index]
    return rest


def _distribute(signature: MethodSignature, count: int) -> list[Parameter]:
    """Parameters receiving each of `count` positional arguments, in argument order."""
    leading = list(signature.leading_required)
    trailing = list(signature.trailing_required)
    optional = list(signature.optional_positionals)
    middle = count - len(leading) - len(trailing)

    params = leading[:]
    filled = optional[:middle]
    params.extend(filled)
    extra = middle - len(filled)
    if extra > 0 and signature.rest is not None:
        params.extend([signature.rest] * extra)
    params.extend(trailing)
    return params

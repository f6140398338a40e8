from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import replace

from sigdb.signatures import BlockSignature, MethodSignature, Parameter
from sigdb.types import *


def map_type(type_expr: TypeExpr, fn: Callable[[TypeExpr], TypeExpr | None]) -> TypeExpr:
    """Rebuild `type_expr` bottom-up; `fn` may return a replacement or None to keep recursing."""
    replacement = fn(type_expr)
    if replacement is not None:
        return replacement

    if isinstance(type_expr, NominalType):
        return NominalType(type_expr.name, tuple(map_type(arg, fn) for arg in type_expr.args))
    if isinstance(type_expr, InterfaceType):
        return InterfaceType(type_expr.name, tuple(map_type(arg, fn) for arg in type_expr.args))
    if isinstance(type_expr, AliasType):
        return AliasType(type_expr.name, tuple(map_type(arg, fn) for arg in type_expr.args))
    if isinstance(type_expr, UnionType):
        return UnionType(tuple(map_type(member, fn) for member in type_expr.members))
    if isinstance(type_expr, OptionalType):
        return OptionalType(map_type(type_expr.inner, fn))
    if isinstance(type_expr, TupleType):
        return TupleType(tuple(map_type(element, fn) for element in type_expr.elements))
    if isinstance(type_expr, RecordType):
        return RecordType(tuple((key, map_type(value, fn)) for key, value in type_expr.fields))
    if isinstance(type_expr, ProcType):
        return ProcType(map_signature(type_expr.signature, fn))
    return type_expr


def map_signature(signature: MethodSignature, fn: Callable[[TypeExpr], TypeExpr | None]) -> MethodSignature:
    def map_param(param: Parameter) -> Parameter:
        return replace(param, type=map_type(param.type, fn))

    block = signature.block
    if block is not None:
        block = BlockSignature(
            signature=map_signature(block.signature, fn),
            required=block.required,
            self_type=map_type(block.self_type, fn) if block.self_type is not None else None,
        )

    return MethodSignature(
        positional=tuple(map_param(param) for param in signature.positional),
        keyword=tuple(map_param(param) for param in signature.keyword),
        return_type=map_type(signature.return_type, fn),
        block=block,
        type_params=signature.type_params,
    )


def substitute(type_expr: TypeExpr, mapping: Mapping[str, TypeExpr]) -> TypeExpr:
    if not mapping:
        return type_expr

    def replace_var(node: TypeExpr) -> TypeExpr | None:
        if isinstance(node, TypeVar):
            return mapping.get(node.name, node)
        if isinstance(node, ProcType) and node.signature.type_params:
            return ProcType(substitute_signature(node.signature, mapping))
        return None

    return map_type(type_expr, replace_var)


def substitute_signature(signature: MethodSignature, mapping: Mapping[str, TypeExpr]) -> MethodSignature:
    # Method-level type parameters shadow the outer mapping.
    shadowed = {param.name for param in signature.type_params}
    inner = {name: value for name, value in mapping.items() if name not in shadowed}
    if not inner:
        return signature
    return map_signature(signature, lambda node: _substitute_or_none(node, inner))


def _substitute_or_none(node: TypeExpr, mapping: Mapping[str, TypeExpr]) -> TypeExpr | None:
    if isinstance(node, TypeVar):
        return mapping.get(node.name, node)
    if isinstance(node, ProcType):
        return ProcType(substitute_signature(node.signature, mapping))
    return None


def bind_self(type_expr: TypeExpr, self_type: TypeExpr | None, instance_type: TypeExpr | None = None,
              class_type: TypeExpr | None = None) -> TypeExpr:
    """Replace `self`, `instance` and `class` with concrete receiver types where given."""
    bindings = {
        SpecialKind.SELF: self_type,
        SpecialKind.INSTANCE: instance_type if instance_type is not None else self_type,
        SpecialKind.CLASS: class_type,
    }

    def replace_special(node: TypeExpr) -> TypeExpr | None:
        if isinstance(node, SpecialType) and bindings.get(node.kind) is not None:
            return bindings[node.kind]
        return None

    return map_type(type_expr, replace_special)


def iter_types(type_expr: TypeExpr) -> Iterator[TypeExpr]:
    yield type_expr
    if isinstance(type_expr, (NominalType, InterfaceType, AliasType)):
        for arg in type_expr.args:
            yield from iter_types(arg)
    elif isinstance(type_expr, UnionType):
        for member in type_expr.members:
            yield from iter_types(member)
    elif isinstance(type_expr, OptionalType):
        yield from iter_types(type_expr.inner)
    elif isinstance(type_expr, TupleType):
        for element in type_expr.elements:
            yield from iter_types(element)
    elif isinstance(type_expr, RecordType):
        for _, value in type_expr.fields:
            yield from iter_types(value)
    elif isinstance(type_expr, ProcType):
        for inner in signature_types(type_expr.signature):
            yield from iter_types(inner)


def signature_types(signature: MethodSignature) -> Iterator[TypeExpr]:
    for param in signature.positional:
        yield param.type
    for param in signature.keyword:
        yield param.type
    if signature.block is not None:
        yield from signature_types(signature.block.signature)
        if signature.block.self_type is not None:
            yield signature.block.self_type
    yield signature.return_type
    for type_param in signature.type_params:
        if type_param.upper_bound is not None:
            yield type_param.upper_bound


def free_type_vars(type_expr: TypeExpr) -> set[str]:
    return {node.name for node in iter_types(type_expr) if isinstance(node, TypeVar)}

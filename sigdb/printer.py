from __future__ import annotations

import json
import re

from sigdb.signatures import BlockSignature, MethodSignature, Parameter, ParamKind
from sigdb.types import *


SIMPLE_SYMBOL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*[?!]?$")
SIMPLE_RECORD_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def format_type(type_expr: TypeExpr) -> str:
    if isinstance(type_expr, (NominalType, InterfaceType, AliasType)):
        if not type_expr.args:
            return str(type_expr.name)
        args = ", ".join(format_type(arg) for arg in type_expr.args)
        return f"{type_expr.name}[{args}]"

    if isinstance(type_expr, SingletonType):
        return f"singleton({type_expr.name})"

    if isinstance(type_expr, TypeVar):
        return type_expr.name

    if isinstance(type_expr, UnionType):
        return " | ".join(_format_union_member(member) for member in type_expr.members)

    if isinstance(type_expr, OptionalType):
        inner = type_expr.inner
        if isinstance(inner, (UnionType, ProcType)):
            return f"({format_type(inner)})?"
        return f"{format_type(inner)}?"

    if isinstance(type_expr, LiteralType):
        return _format_literal(type_expr)

    if isinstance(type_expr, TupleType):
        if not type_expr.elements:
            return "[ ]"
        return "[" + ", ".join(format_type(element) for element in type_expr.elements) + "]"

    if isinstance(type_expr, RecordType):
        if not type_expr.fields:
            return "{ }"
        fields = ", ".join(f"{_format_record_key(key)} {format_type(value)}" for key, value in type_expr.fields)
        return "{ " + fields + " }"

    if isinstance(type_expr, SpecialType):
        return type_expr.kind.value

    if isinstance(type_expr, ProcType):
        return "^" + format_method_type(type_expr.signature)

    raise TypeError(f"Unsupported type expression: {type(type_expr).__name__}")


def format_method_type(signature: MethodSignature) -> str:
    parts: list[str] = []
    if signature.type_params:
        parts.append("[" + ", ".join(_format_type_param(param) for param in signature.type_params) + "]")
    parts.append(_format_params(signature))
    if signature.block is not None:
        parts.append(_format_block(signature.block))
    parts.append("-> " + _format_return(signature.return_type))
    return " ".join(parts)


def format_type_params(params: tuple[TypeParam, ...] | list[TypeParam]) -> str:
    if not params:
        return ""
    return "[" + ", ".join(_format_type_param(param) for param in params) + "]"


def _format_type_param(param: TypeParam) -> str:
    prefix = ""
    if param.unchecked:
        prefix += "unchecked "
    if param.variance == Variance.COVARIANT:
        prefix += "out "
    elif param.variance == Variance.CONTRAVARIANT:
        prefix += "in "
    text = prefix + param.name
    if param.upper_bound is not None:
        text += " < " + format_type(param.upper_bound)
    return text


def _format_params(signature: MethodSignature) -> str:
    params = [_format_param(param) for param in signature.positional]
    params.extend(_format_param(param) for param in signature.keyword)
    return "(" + ", ".join(params) + ")"


def _format_param(param: Parameter) -> str:
    type_text = format_type(param.type)
    if param.kind in {ParamKind.KEYWORD_REQUIRED, ParamKind.KEYWORD_OPTIONAL}:
        prefix = "?" if param.kind == ParamKind.KEYWORD_OPTIONAL else ""
        return f"{prefix}{param.name}: {type_text}"

    prefix = {
        ParamKind.REQUIRED: "",
        ParamKind.OPTIONAL: "?",
        ParamKind.REST: "*",
        ParamKind.KEYWORD_REST: "**",
    }[param.kind]
    text = prefix + type_text
    if param.name is not None:
        text += " " + param.name
    return text


def _format_block(block: BlockSignature) -> str:
    inner = _format_params(block.signature)
    if block.self_type is not None:
        inner += f" [self: {format_type(block.self_type)}]"
    inner += " -> " + _format_return(block.signature.return_type)
    prefix = "" if block.required else "?"
    return prefix + "{ " + inner + " }"


def _format_return(type_expr: TypeExpr) -> str:
    if isinstance(type_expr, UnionType):
        return f"({format_type(type_expr)})"
    return format_type(type_expr)


def _format_union_member(member: TypeExpr) -> str:
    if isinstance(member, (ProcType, UnionType)):
        return f"({format_type(member)})"
    return format_type(member)


def _format_literal(literal: LiteralType) -> str:
    if literal.kind == LiteralKind.STRING:
        return json.dumps(literal.value, ensure_ascii=False)
    if literal.kind == LiteralKind.SYMBOL:
        value = str(literal.value)
        if SIMPLE_SYMBOL_RE.match(value):
            return f":{value}"
        return ":" + json.dumps(value, ensure_ascii=False)
    if literal.kind == LiteralKind.BOOL:
        return "true" if literal.value else "false"
    return str(literal.value)


def _format_record_key(key: str) -> str:
    if SIMPLE_RECORD_KEY_RE.match(key):
        return f"{key}:"
    return json.dumps(key, ensure_ascii=False) + " =>"

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sigdb.signatures import MethodSignature


@dataclass(frozen=True)
class TypeName:
    path: tuple[str, ...]
    absolute: bool = False

    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError("TypeName requires at least one path component")

    @classmethod
    def parse(cls, text: str) -> "TypeName":
        absolute = text.startswith("::")
        body = text[2:] if absolute else text
        parts = tuple(part for part in body.split("::"))
        if not parts or any(not part for part in parts):
            raise ValueError(f"Invalid type name '{text}'")
        return cls(path=parts, absolute=absolute)

    @property
    def name(self) -> str:
        return self.path[-1]

    @property
    def namespace(self) -> tuple[str, ...]:
        return self.path[:-1]

    @property
    def is_interface(self) -> bool:
        return self.name.startswith("_") and len(self.name) > 1 and self.name[1].isupper()

    @property
    def is_alias(self) -> bool:
        return self.name[0].islower() or (self.name[0] == "_" and not self.is_interface)

    def to_absolute(self) -> "TypeName":
        return TypeName(path=self.path, absolute=True)

    def child(self, name: str) -> "TypeName":
        return TypeName(path=self.path + (name,), absolute=self.absolute)

    def __str__(self) -> str:
        text = "::".join(self.path)
        return f"::{text}" if self.absolute else text


class Variance(str, Enum):
    COVARIANT = "covariant"
    CONTRAVARIANT = "contravariant"
    INVARIANT = "invariant"


class SpecialKind(str, Enum):
    SELF = "self"
    INSTANCE = "instance"
    CLASS = "class"
    VOID = "void"
    UNTYPED = "untyped"
    BOOL = "bool"
    TOP = "top"
    BOTTOM = "bot"
    NIL = "nil"


class LiteralKind(str, Enum):
    STRING = "string"
    SYMBOL = "symbol"
    INT = "int"
    BOOL = "bool"


@dataclass(frozen=True)
class NominalType:
    name: TypeName
    args: tuple["TypeExpr", ...] = ()


@dataclass(frozen=True)
class InterfaceType:
    name: TypeName
    args: tuple["TypeExpr", ...] = ()


@dataclass(frozen=True)
class AliasType:
    name: TypeName
    args: tuple["TypeExpr", ...] = ()


@dataclass(frozen=True)
class SingletonType:
    name: TypeName


@dataclass(frozen=True)
class TypeVar:
    name: str


@dataclass(frozen=True)
class UnionType:
    members: tuple["TypeExpr", ...]


@dataclass(frozen=True)
class OptionalType:
    inner: "TypeExpr"


@dataclass(frozen=True)
class LiteralType:
    kind: LiteralKind
    value: str | int | bool


@dataclass(frozen=True)
class TupleType:
    elements: tuple["TypeExpr", ...] = ()


@dataclass(frozen=True)
class RecordType:
    fields: tuple[tuple[str, "TypeExpr"], ...] = ()

    def field_map(self) -> dict[str, "TypeExpr"]:
        return dict(self.fields)


@dataclass(frozen=True)
class SpecialType:
    kind: SpecialKind


@dataclass(frozen=True)
class ProcType:
    signature: "MethodSignature"


TypeExpr = (
    NominalType
    | InterfaceType
    | AliasType
    | SingletonType
    | TypeVar
    | UnionType
    | OptionalType
    | LiteralType
    | TupleType
    | RecordType
    | SpecialType
    | ProcType
)


@dataclass(frozen=True)
class TypeParam:
    name: str
    variance: Variance = Variance.INVARIANT
    unchecked: bool = False
    upper_bound: TypeExpr | None = None


UNTYPED = SpecialType(SpecialKind.UNTYPED)
VOID = SpecialType(SpecialKind.VOID)
NIL = SpecialType(SpecialKind.NIL)
BOOL = SpecialType(SpecialKind.BOOL)
TOP = SpecialType(SpecialKind.TOP)
BOTTOM = SpecialType(SpecialKind.BOTTOM)
SELF = SpecialType(SpecialKind.SELF)
INSTANCE = SpecialType(SpecialKind.INSTANCE)
CLASS = SpecialType(SpecialKind.CLASS)


def nominal(name: str, *args: TypeExpr) -> NominalType:
    return NominalType(name=TypeName.parse(name), args=tuple(args))


def interface(name: str, *args: TypeExpr) -> InterfaceType:
    return InterfaceType(name=TypeName.parse(name), args=tuple(args))


def union(*members: TypeExpr) -> TypeExpr:
    flat: list[TypeExpr] = []
    for member in members:
        if isinstance(member, UnionType):
            flat.extend(member.members)
        else:
            flat.append(member)
    if len(flat) == 1:
        return flat[0]
    return UnionType(members=tuple(flat))


def desugar_optional(type_expr: TypeExpr) -> TypeExpr:
    if isinstance(type_expr, OptionalType):
        return union(type_expr.inner, NIL)
    return type_expr


def is_untyped(type_expr: TypeExpr) -> bool:
    return isinstance(type_expr, SpecialType) and type_expr.kind == SpecialKind.UNTYPED

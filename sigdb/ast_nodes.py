from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sigdb.lexer import SourceSpan
from sigdb.signatures import MethodSignature, Visibility
from sigdb.types import TypeExpr, TypeName, TypeParam


class MethodKind(str, Enum):
    INSTANCE = "instance"
    SINGLETON = "singleton"
    SINGLETON_INSTANCE = "singleton_instance"


class AttributeKind(str, Enum):
    READER = "reader"
    WRITER = "writer"
    ACCESSOR = "accessor"


@dataclass(frozen=True)
class OverloadDecl:
    signature: MethodSignature
    annotations: list[str]
    span: SourceSpan


@dataclass(frozen=True)
class MethodDefDecl:
    name: str
    kind: MethodKind
    overloads: list[OverloadDecl]
    overloading: bool
    visibility: Visibility | None
    annotations: list[str]
    span: SourceSpan


@dataclass(frozen=True)
class AliasDecl:
    new_name: str
    old_name: str
    kind: MethodKind
    span: SourceSpan


@dataclass(frozen=True)
class AttributeDecl:
    name: str
    attr_kind: AttributeKind
    type: TypeExpr
    kind: MethodKind
    visibility: Visibility | None
    span: SourceSpan


@dataclass(frozen=True)
class InstanceVariableDecl:
    name: str
    type: TypeExpr
    kind: MethodKind
    span: SourceSpan


@dataclass(frozen=True)
class MixinDecl:
    relation: str
    target: TypeExpr
    span: SourceSpan


@dataclass(frozen=True)
class VisibilityDecl:
    visibility: Visibility
    span: SourceSpan


@dataclass(frozen=True)
class ConstantDecl:
    name: TypeName
    type: TypeExpr
    span: SourceSpan


@dataclass(frozen=True)
class GlobalDecl:
    name: str
    type: TypeExpr
    span: SourceSpan


@dataclass(frozen=True)
class TypeAliasDecl:
    name: TypeName
    type_params: list[TypeParam]
    type: TypeExpr
    span: SourceSpan


@dataclass(frozen=True)
class ClassDecl:
    name: TypeName
    type_params: list[TypeParam]
    superclass: TypeExpr | None
    members: list["Member"]
    annotations: list[str]
    span: SourceSpan


@dataclass(frozen=True)
class ModuleDecl:
    name: TypeName
    type_params: list[TypeParam]
    self_types: list[TypeExpr]
    members: list["Member"]
    annotations: list[str]
    span: SourceSpan


@dataclass(frozen=True)
class InterfaceDecl:
    name: TypeName
    type_params: list[TypeParam]
    members: list["Member"]
    annotations: list[str]
    span: SourceSpan


Declaration = (
    ClassDecl
    | ModuleDecl
    | InterfaceDecl
    | ConstantDecl
    | GlobalDecl
    | TypeAliasDecl
)


Member = (
    MethodDefDecl
    | AliasDecl
    | AttributeDecl
    | InstanceVariableDecl
    | MixinDecl
    | VisibilityDecl
    | Declaration
)


@dataclass(frozen=True)
class SignatureFile:
    path: str
    declarations: list[Declaration]
    span: SourceSpan

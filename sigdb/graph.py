from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from sigdb.lexer import SourceSpan
from sigdb.signatures import MethodSignature, Overload, OverloadSet, Scope, Visibility
from sigdb.types import InterfaceType, NominalType, TypeExpr, TypeName, TypeParam

logger = logging.getLogger(__name__)


Context = tuple[TypeName, ...]


class DeclKind(str, Enum):
    CLASS = "class"
    MODULE = "module"
    INTERFACE = "interface"


class MixinRelation(str, Enum):
    INCLUDE = "include"
    EXTEND = "extend"
    PREPEND = "prepend"


@dataclass(frozen=True)
class MemberKey:
    name: str
    scope: Scope = Scope.INSTANCE
    visibility: Visibility = Visibility.PUBLIC

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("MemberKey requires a method name")
        # Scope/Visibility(...) raise ValueError for anything outside the enums.
        object.__setattr__(self, "scope", Scope(self.scope))
        object.__setattr__(self, "visibility", Visibility(self.visibility))


@dataclass(frozen=True)
class TypeRef:
    """A type written in a declaration, kept with the lexical context it has to be resolved in."""

    type: TypeExpr
    context: Context = ()
    span: SourceSpan | None = field(default=None, compare=False)


@dataclass(frozen=True)
class Mixin:
    relation: MixinRelation
    target: TypeExpr
    context: Context = ()
    span: SourceSpan | None = field(default=None, compare=False)


@dataclass(frozen=True)
class ConstantEntry:
    name: TypeName
    type: TypeExpr
    context: Context = ()
    span: SourceSpan | None = field(default=None, compare=False)


@dataclass(frozen=True)
class TypeAliasEntry:
    name: TypeName
    type_params: tuple[TypeParam, ...]
    type: TypeExpr
    context: Context = ()
    span: SourceSpan | None = field(default=None, compare=False)


@dataclass(frozen=True)
class AttributeEntry:
    name: str
    kind: str
    type: TypeExpr
    scope: Scope
    context: Context = ()


@dataclass(frozen=True)
class MethodAlias:
    new_name: str
    old_name: str
    scope: Scope
    span: SourceSpan | None = field(default=None, compare=False)


class GraphError(ValueError):
    def __init__(self, message: str, span: SourceSpan | None = None):
        if span is not None:
            super().__init__(f"{message} at {span.start.path}:{span.start.line}:{span.start.column}")
        else:
            super().__init__(message)
        self.message = message
        self.span = span


class KindConflict(GraphError):
    pass


class SuperclassConflict(GraphError):
    pass


class GenericArityError(GraphError):
    pass


class MissingNamespace(GraphError):
    pass


class Namespace:
    def __init__(self, name: TypeName):
        self.name = name
        self.nested: dict[str, DeclarationNode] = {}
        self.constants: dict[str, ConstantEntry] = {}
        self.type_aliases: dict[str, TypeAliasEntry] = {}

    @property
    def path(self) -> tuple[str, ...]:
        return self.name.path if self.name.path != ("",) else ()

    @property
    def is_root(self) -> bool:
        return False


class RootNamespace(Namespace):
    def __init__(self) -> None:
        super().__init__(TypeName(path=("",), absolute=True))

    @property
    def is_root(self) -> bool:
        return True

    def __repr__(self) -> str:
        return "RootNamespace()"


class DeclarationNode(Namespace):
    def __init__(self, kind: DeclKind, name: TypeName, type_params: tuple[TypeParam, ...] = ()):
        super().__init__(name)
        self.kind = kind
        self.type_params: tuple[TypeParam, ...] = tuple(type_params)
        self.superclass: TypeRef | None = None
        self.mixins: list[Mixin] = []
        self.self_types: list[TypeRef] = []
        self.instance_variables: dict[tuple[str, Scope], TypeRef] = {}
        self.attributes: dict[tuple[str, Scope], AttributeEntry] = {}
        self.method_aliases: dict[tuple[str, Scope], MethodAlias] = {}
        self.annotations: list[str] = []
        self.locations: list[SourceSpan] = []
        self._members: dict[tuple[str, Scope], OverloadSet] = {}

    def __repr__(self) -> str:
        return f"DeclarationNode({self.kind.value} {self.name})"

    @property
    def members(self) -> dict[MemberKey, OverloadSet]:
        return {
            MemberKey(name=overloads.name, scope=overloads.scope, visibility=overloads.visibility): overloads
            for overloads in self._members.values()
        }

    def member(self, name: str, scope: Scope = Scope.INSTANCE) -> OverloadSet | None:
        return self._members.get((name, Scope(scope)))

    def member_names(self, scope: Scope = Scope.INSTANCE) -> list[str]:
        return [name for name, member_scope in self._members if member_scope == scope]

    def mixins_of(self, relation: MixinRelation) -> list[Mixin]:
        return [mixin for mixin in self.mixins if mixin.relation == relation]

    def type_param_names(self) -> list[str]:
        return [param.name for param in self.type_params]


class DeclarationGraph:
    """Owns every class, module and interface node of a corpus.

    Nodes are keyed by their absolute qualified path. Reopening a declaration
    returns the existing node; all mutators validate before they mutate, so a
    rejected call leaves the graph untouched.
    """

    def __init__(self, *, dedupe_overloads: bool = True):
        self.root = RootNamespace()
        self.globals: dict[str, TypeRef] = {}
        self.dedupe_overloads = dedupe_overloads
        self._nodes: dict[tuple[str, ...], DeclarationNode] = {}

    # -- lookup -----------------------------------------------------------

    def get(self, name: TypeName | str) -> DeclarationNode | None:
        if isinstance(name, str):
            name = TypeName.parse(name)
        return self._nodes.get(name.path)

    def namespace(self, path: tuple[str, ...]) -> Namespace | None:
        if not path:
            return self.root
        return self._nodes.get(path)

    def namespace_for(self, name: TypeName, span: SourceSpan | None = None) -> Namespace:
        """The namespace a qualified constant or alias name is declared in."""
        namespace = self.namespace(name.namespace)
        if namespace is None:
            raise MissingNamespace(f"Cannot find namespace '{TypeName(name.namespace, absolute=True)}' for '{name}'", span)
        return namespace

    def nodes(self) -> list[DeclarationNode]:
        return list(self._nodes.values())

    def __contains__(self, name: TypeName | str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._nodes)

    # -- declarations -----------------------------------------------------

    def declare(
        self,
        kind: DeclKind | str,
        qualified_name: TypeName | str,
        type_params: tuple[TypeParam, ...] | list[TypeParam] = (),
        *,
        span: SourceSpan | None = None,
    ) -> DeclarationNode:
        kind = DeclKind(kind)
        if isinstance(qualified_name, str):
            qualified_name = TypeName.parse(qualified_name)
        name = qualified_name.to_absolute()
        type_params = tuple(type_params)

        if kind == DeclKind.INTERFACE and not name.is_interface:
            raise GraphError(f"Interface name '{name}' must start with '_' and an uppercase letter", span)
        if kind != DeclKind.INTERFACE and not name.name[0].isupper():
            raise GraphError(f"{kind.value.capitalize()} name '{name}' must start with an uppercase letter", span)

        parent = self.namespace(name.namespace)
        if parent is None:
            raise MissingNamespace(f"Cannot find namespace '{TypeName(name.namespace, absolute=True)}' for '{name}'", span)

        existing = parent.nested.get(name.name)
        if existing is not None:
            if existing.kind != kind:
                raise KindConflict(
                    f"'{name}' is already declared as a {existing.kind.value}, cannot redeclare it as a {kind.value}",
                    span,
                )
            if type_params and existing.type_params and len(type_params) != len(existing.type_params):
                raise GenericArityError(
                    f"Type parameters of '{name}' differ from its previous declaration "
                    f"({len(existing.type_params)} vs {len(type_params)})",
                    span,
                )
            if type_params and not existing.type_params:
                existing.type_params = type_params
            if span is not None:
                existing.locations.append(span)
            logger.debug("reopened %s %s", kind.value, name)
            return existing

        if name.name in parent.constants:
            raise KindConflict(f"'{name}' is already declared as a constant", span)

        node = DeclarationNode(kind, name, type_params)
        if span is not None:
            node.locations.append(span)
        parent.nested[name.name] = node
        self._nodes[name.path] = node
        logger.debug("declared %s %s", kind.value, name)
        return node

    def add_member(
        self,
        node: DeclarationNode,
        key: MemberKey,
        signature: MethodSignature,
        *,
        context: tuple[TypeName, ...] = (),
        replace: bool = False,
        overloading: bool = False,
        annotations: tuple[str, ...] = (),
        span: SourceSpan | None = None,
    ) -> OverloadSet:
        if node.kind == DeclKind.INTERFACE and key.scope == Scope.SINGLETON:
            raise GraphError(f"Interface '{node.name}' cannot declare singleton method '{key.name}'", span)

        overload = Overload(signature=signature, context=tuple(context), annotations=tuple(annotations), span=span)
        existing = node.member(key.name, key.scope)

        if existing is None or replace:
            overloads = (overload,)
        elif self.dedupe_overloads and any(
            current.signature == signature for current in existing.overloads
        ):
            logger.debug("skipped duplicate overload of %s#%s", node.name, key.name)
            overloads = existing.overloads
        else:
            overloads = existing.overloads + (overload,)

        updated = OverloadSet(
            name=key.name,
            owner=node.name,
            scope=key.scope,
            visibility=key.visibility,
            overloads=overloads,
            overloading=overloading or (existing is not None and not replace and existing.overloading),
        )
        node._members[(key.name, key.scope)] = updated
        return updated

    def add_mixin(
        self,
        node: DeclarationNode,
        relation: MixinRelation | str,
        target: TypeExpr,
        *,
        context: tuple[TypeName, ...] = (),
        span: SourceSpan | None = None,
    ) -> Mixin:
        relation = MixinRelation(relation)
        if not isinstance(target, (NominalType, InterfaceType)):
            raise GraphError(f"Invalid {relation.value} target in '{node.name}'", span)
        if node.kind == DeclKind.INTERFACE:
            if relation != MixinRelation.INCLUDE or not isinstance(target, InterfaceType):
                raise GraphError(f"Interface '{node.name}' can only include other interfaces", span)
        elif isinstance(target, InterfaceType) and relation != MixinRelation.INCLUDE:
            raise GraphError(f"Interface '{target.name}' can only be included, not {relation.value}ed", span)

        mixin = Mixin(relation=relation, target=target, context=tuple(context), span=span)
        if mixin in node.mixins:
            return mixin
        node.mixins.append(mixin)
        return mixin

    def set_superclass(
        self,
        node: DeclarationNode,
        type_expr: TypeExpr,
        *,
        context: tuple[TypeName, ...] = (),
        span: SourceSpan | None = None,
    ) -> TypeRef:
        if node.kind != DeclKind.CLASS:
            raise GraphError(f"Only classes have a superclass, '{node.name}' is a {node.kind.value}", span)
        if not isinstance(type_expr, NominalType):
            raise GraphError(f"Superclass of '{node.name}' must be a class type", span)

        if node.superclass is not None:
            if node.superclass.type != type_expr:
                raise SuperclassConflict(
                    f"Superclass mismatch for '{node.name}'",
                    span,
                )
            return node.superclass

        node.superclass = TypeRef(type=type_expr, context=tuple(context), span=span)
        return node.superclass

    def add_self_type(
        self,
        node: DeclarationNode,
        type_expr: TypeExpr,
        *,
        context: tuple[TypeName, ...] = (),
        span: SourceSpan | None = None,
    ) -> None:
        if node.kind != DeclKind.MODULE:
            raise GraphError(f"Only modules declare self types, '{node.name}' is a {node.kind.value}", span)
        ref = TypeRef(type=type_expr, context=tuple(context), span=span)
        if ref not in node.self_types:
            node.self_types.append(ref)

    def add_constant(
        self,
        namespace: Namespace,
        name: str,
        type_expr: TypeExpr,
        *,
        context: tuple[TypeName, ...] = (),
        span: SourceSpan | None = None,
    ) -> ConstantEntry:
        qualified = TypeName(path=namespace.path + (name,), absolute=True)
        if name in namespace.nested:
            raise KindConflict(f"'{qualified}' is already declared as a {namespace.nested[name].kind.value}", span)

        entry = ConstantEntry(name=qualified, type=type_expr, context=tuple(context), span=span)
        existing = namespace.constants.get(name)
        if existing is not None and existing.type != type_expr:
            raise KindConflict(f"Constant '{qualified}' is already declared with a different type", span)
        namespace.constants[name] = entry
        return entry

    def add_type_alias(
        self,
        namespace: Namespace,
        name: str,
        type_params: tuple[TypeParam, ...] | list[TypeParam],
        type_expr: TypeExpr,
        *,
        context: tuple[TypeName, ...] = (),
        span: SourceSpan | None = None,
    ) -> TypeAliasEntry:
        qualified = TypeName(path=namespace.path + (name,), absolute=True)
        entry = TypeAliasEntry(
            name=qualified,
            type_params=tuple(type_params),
            type=type_expr,
            context=tuple(context),
            span=span,
        )
        existing = namespace.type_aliases.get(name)
        if existing is not None and (existing.type != entry.type or existing.type_params != entry.type_params):
            raise KindConflict(f"Type alias '{qualified}' is already declared with a different definition", span)
        namespace.type_aliases[name] = entry
        return entry

    def add_instance_variable(
        self,
        node: DeclarationNode,
        name: str,
        type_expr: TypeExpr,
        *,
        scope: Scope = Scope.INSTANCE,
        context: tuple[TypeName, ...] = (),
        span: SourceSpan | None = None,
    ) -> TypeRef:
        if node.kind == DeclKind.INTERFACE:
            raise GraphError(f"Interface '{node.name}' cannot declare instance variables", span)
        ref = TypeRef(type=type_expr, context=tuple(context), span=span)
        existing = node.instance_variables.get((name, scope))
        if existing is not None and existing.type != type_expr:
            raise GraphError(f"Instance variable '{name}' of '{node.name}' is already declared with a different type", span)
        node.instance_variables[(name, scope)] = ref
        return ref

    def add_attribute(self, node: DeclarationNode, entry: AttributeEntry) -> None:
        node.attributes[(entry.name, entry.scope)] = entry

    def add_method_alias(
        self,
        node: DeclarationNode,
        new_name: str,
        old_name: str,
        *,
        scope: Scope = Scope.INSTANCE,
        span: SourceSpan | None = None,
    ) -> MethodAlias:
        if new_name == old_name:
            raise GraphError(f"Method alias '{new_name}' of '{node.name}' refers to itself", span)
        alias = MethodAlias(new_name=new_name, old_name=old_name, scope=scope, span=span)
        node.method_aliases[(new_name, scope)] = alias
        return alias

    def add_global(self, name: str, type_expr: TypeExpr, *, span: SourceSpan | None = None) -> TypeRef:
        existing = self.globals.get(name)
        if existing is not None and existing.type != type_expr:
            raise GraphError(f"Global '{name}' is already declared with a different type", span)
        ref = TypeRef(type=type_expr, span=span)
        self.globals[name] = ref
        return ref

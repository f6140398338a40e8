from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sigdb.ast_nodes import *
from sigdb.diagnostics import Diagnostic, DiagnosticCode
from sigdb.graph import (
    AttributeEntry,
    DeclarationGraph,
    DeclarationNode,
    DeclKind,
    GenericArityError,
    GraphError,
    KindConflict,
    MemberKey,
    MissingNamespace,
    SuperclassConflict,
)
from sigdb.lexer import LexerError
from sigdb.parser import ParserError, parse_source
from sigdb.resolver import NameResolver
from sigdb.signatures import MethodSignature, Parameter, Scope, Visibility
from sigdb.types import TypeName

logger = logging.getLogger(__name__)


REPLACE_ANNOTATION = "replace"

ERROR_CODES = (
    (KindConflict, DiagnosticCode.KIND_CONFLICT),
    (SuperclassConflict, DiagnosticCode.SUPERCLASS_CONFLICT),
    (GenericArityError, DiagnosticCode.GENERIC_ARITY),
)


@dataclass(frozen=True)
class _Pending:
    declaration: Declaration
    context: tuple[TypeName, ...]


class SignatureLoader:
    """Populates a declaration graph from parsed signature files.

    Each rejected declaration becomes a diagnostic and loading continues with
    the next one. Declarations whose enclosing namespace is not declared yet
    are retried once the rest of the batch has been loaded.
    """

    def __init__(self, graph: DeclarationGraph, resolver: NameResolver | None = None):
        self.graph = graph
        self.resolver = resolver or NameResolver(graph)
        self.diagnostics: list[Diagnostic] = []

    def load_source(self, source: str, path: str = "<memory>") -> list[Diagnostic]:
        return self.load_sources([(source, path)])

    def load_sources(self, sources: Iterable[tuple[str, str]]) -> list[Diagnostic]:
        files: list[SignatureFile] = []
        diagnostics: list[Diagnostic] = []
        for source, path in sources:
            try:
                files.append(parse_source(source, source_path=path))
            except (LexerError, ParserError) as exc:
                logger.warning("failed to parse %s: %s", path, exc)
                diagnostics.append(Diagnostic(DiagnosticCode.SYNTAX, exc.message, exc.span))
        self.diagnostics.extend(diagnostics)
        return diagnostics + self.load(files)

    def load(self, files: Iterable[SignatureFile]) -> list[Diagnostic]:
        start = len(self.diagnostics)
        pending: list[_Pending] = []
        for signature_file in files:
            logger.debug("loading %s", signature_file.path)
            for declaration in signature_file.declarations:
                self._load_declaration(declaration, (), pending)

        while pending:
            retry, pending = pending, []
            for entry in retry:
                self._load_declaration(entry.declaration, entry.context, pending)
            if len(pending) == len(retry):
                break

        for entry in pending:
            self._load_declaration(entry.declaration, entry.context, None)
        return self.diagnostics[start:]

    # -- declarations -----------------------------------------------------

    def _load_declaration(
        self,
        declaration: Declaration,
        context: tuple[TypeName, ...],
        pending: list[_Pending] | None,
    ) -> None:
        try:
            if isinstance(declaration, (ClassDecl, ModuleDecl, InterfaceDecl)):
                self._load_container(declaration, context, pending)
            elif isinstance(declaration, ConstantDecl):
                qualified = _qualify(declaration.name, context)
                namespace = self.graph.namespace_for(qualified, declaration.span)
                self.graph.add_constant(
                    namespace, qualified.name, declaration.type, context=context, span=declaration.span
                )
            elif isinstance(declaration, TypeAliasDecl):
                qualified = _qualify(declaration.name, context)
                namespace = self.graph.namespace_for(qualified, declaration.span)
                self.graph.add_type_alias(
                    namespace,
                    qualified.name,
                    declaration.type_params,
                    declaration.type,
                    context=context,
                    span=declaration.span,
                )
            elif isinstance(declaration, GlobalDecl):
                self.graph.add_global(declaration.name, declaration.type, span=declaration.span)
        except MissingNamespace as exc:
            if pending is None:
                self._report(exc)
            else:
                pending.append(_Pending(declaration, context))
        except GraphError as exc:
            self._report(exc)

    def _load_container(
        self,
        declaration: ClassDecl | ModuleDecl | InterfaceDecl,
        context: tuple[TypeName, ...],
        pending: list[_Pending] | None,
    ) -> None:
        if isinstance(declaration, ClassDecl):
            kind = DeclKind.CLASS
        elif isinstance(declaration, ModuleDecl):
            kind = DeclKind.MODULE
        else:
            kind = DeclKind.INTERFACE

        qualified = _qualify(declaration.name, context)
        existing = self.graph.get(qualified)
        superclass = declaration.superclass if isinstance(declaration, ClassDecl) else None
        if (
            superclass is not None
            and existing is not None
            and existing.kind == DeclKind.CLASS
            and existing.superclass is not None
        ):
            # Both sides are compared as resolved now, so `Bar` inside `module A` and `A::Bar` agree.
            recorded = self.resolver.absolutize(existing.superclass.type, existing.superclass.context)
            if recorded != self.resolver.absolutize(superclass, context):
                # Rejected before `declare` so a conflicting reopening leaves no trace on the node.
                raise SuperclassConflict(f"Superclass mismatch for '{qualified}'", declaration.span)
            superclass = None

        node = self.graph.declare(kind, qualified, declaration.type_params, span=declaration.span)
        for annotation in declaration.annotations:
            if annotation not in node.annotations:
                node.annotations.append(annotation)

        if superclass is not None:
            self.graph.set_superclass(node, superclass, context=context, span=declaration.span)
        if isinstance(declaration, ModuleDecl):
            for self_type in declaration.self_types:
                self.graph.add_self_type(node, self_type, context=context, span=declaration.span)

        self._load_members(node, declaration.members, context + (node.name,), pending)

    def _load_members(
        self,
        node: DeclarationNode,
        members: list[Member],
        context: tuple[TypeName, ...],
        pending: list[_Pending] | None,
    ) -> None:
        section = Visibility.PUBLIC
        for member in members:
            if isinstance(member, VisibilityDecl):
                section = member.visibility
                continue
            if isinstance(member, (ClassDecl, ModuleDecl, InterfaceDecl, ConstantDecl, TypeAliasDecl, GlobalDecl)):
                self._load_declaration(member, context, pending)
                continue
            try:
                self._load_member(node, member, context, section)
            except GraphError as exc:
                self._report(exc)

    def _load_member(
        self,
        node: DeclarationNode,
        member: Member,
        context: tuple[TypeName, ...],
        section: Visibility,
    ) -> None:
        if isinstance(member, MethodDefDecl):
            for key in _method_keys(member.kind, member.name, member.visibility, section):
                self._add_method(node, key, member, context)
        elif isinstance(member, MixinDecl):
            self.graph.add_mixin(node, member.relation, member.target, context=context, span=member.span)
        elif isinstance(member, AliasDecl):
            scope = Scope.SINGLETON if member.kind == MethodKind.SINGLETON else Scope.INSTANCE
            self.graph.add_method_alias(node, member.new_name, member.old_name, scope=scope, span=member.span)
        elif isinstance(member, InstanceVariableDecl):
            scope = Scope.SINGLETON if member.kind == MethodKind.SINGLETON else Scope.INSTANCE
            self.graph.add_instance_variable(
                node, member.name, member.type, scope=scope, context=context, span=member.span
            )
        elif isinstance(member, AttributeDecl):
            self._add_attribute(node, member, context, section)

    def _add_method(
        self,
        node: DeclarationNode,
        key: MemberKey,
        member: MethodDefDecl,
        context: tuple[TypeName, ...],
    ) -> None:
        replace = REPLACE_ANNOTATION in member.annotations
        for index, overload in enumerate(member.overloads):
            self.graph.add_member(
                node,
                key,
                overload.signature,
                context=context,
                replace=replace and index == 0,
                overloading=member.overloading,
                annotations=tuple(member.annotations) + tuple(overload.annotations),
                span=overload.span,
            )

    def _add_attribute(
        self,
        node: DeclarationNode,
        member: AttributeDecl,
        context: tuple[TypeName, ...],
        section: Visibility,
    ) -> None:
        scope = Scope.SINGLETON if member.kind == MethodKind.SINGLETON else Scope.INSTANCE
        if scope == Scope.SINGLETON:
            visibility = member.visibility or Visibility.PUBLIC
        else:
            visibility = member.visibility or section

        ivar = f"@{member.name}"
        if (ivar, scope) not in node.instance_variables:
            self.graph.add_instance_variable(node, ivar, member.type, scope=scope, context=context, span=member.span)
        if member.attr_kind in (AttributeKind.READER, AttributeKind.ACCESSOR):
            self.graph.add_member(
                node,
                MemberKey(member.name, scope, visibility),
                MethodSignature(return_type=member.type),
                context=context,
                span=member.span,
            )
        if member.attr_kind in (AttributeKind.WRITER, AttributeKind.ACCESSOR):
            self.graph.add_member(
                node,
                MemberKey(f"{member.name}=", scope, visibility),
                MethodSignature(positional=(Parameter(member.type, name=member.name),), return_type=member.type),
                context=context,
                span=member.span,
            )
        self.graph.add_attribute(
            node,
            AttributeEntry(name=member.name, kind=member.attr_kind.value, type=member.type, scope=scope, context=context),
        )

    def _report(self, exc: GraphError) -> None:
        code = DiagnosticCode.INVALID_DECLARATION
        for error_type, error_code in ERROR_CODES:
            if isinstance(exc, error_type):
                code = error_code
                break
        logger.warning("rejected declaration: %s", exc)
        self.diagnostics.append(Diagnostic(code, exc.message, exc.span))


def _qualify(name: TypeName, context: tuple[TypeName, ...]) -> TypeName:
    if name.absolute or not context:
        return name.to_absolute()
    return TypeName(path=context[-1].path + name.path, absolute=True)


def _method_keys(
    kind: MethodKind,
    name: str,
    visibility: Visibility | None,
    section: Visibility,
) -> list[MemberKey]:
    if kind == MethodKind.SINGLETON:
        return [MemberKey(name, Scope.SINGLETON, visibility or Visibility.PUBLIC)]
    if kind == MethodKind.SINGLETON_INSTANCE:
        return [
            MemberKey(name, Scope.SINGLETON, Visibility.PUBLIC),
            MemberKey(name, Scope.INSTANCE, Visibility.PRIVATE),
        ]
    return [MemberKey(name, Scope.INSTANCE, visibility or section)]

from __future__ import annotations

from dataclasses import dataclass

from sigdb.ast_nodes import *
from sigdb.lexer import SourceSpan, Token, lex
from sigdb.signatures import BlockSignature, MethodSignature, Parameter, ParamKind, Visibility
from sigdb.tokens import NAME_KEYWORD_TOKENS, OPERATOR_NAME_TOKENS, TokenKind
from sigdb.types import *


SPECIAL_TYPE_TOKENS: dict[TokenKind, SpecialKind] = {
    TokenKind.SELF: SpecialKind.SELF,
    TokenKind.INSTANCE: SpecialKind.INSTANCE,
    TokenKind.CLASS: SpecialKind.CLASS,
    TokenKind.VOID: SpecialKind.VOID,
    TokenKind.UNTYPED: SpecialKind.UNTYPED,
    TokenKind.BOOL: SpecialKind.BOOL,
    TokenKind.TOP: SpecialKind.TOP,
    TokenKind.BOT: SpecialKind.BOTTOM,
    TokenKind.NIL: SpecialKind.NIL,
}

VISIBILITY_TOKENS: dict[TokenKind, Visibility] = {
    TokenKind.PUBLIC: Visibility.PUBLIC,
    TokenKind.PRIVATE: Visibility.PRIVATE,
    TokenKind.PROTECTED: Visibility.PROTECTED,
}

MIXIN_TOKENS = {TokenKind.INCLUDE: "include", TokenKind.EXTEND: "extend", TokenKind.PREPEND: "prepend"}

ATTRIBUTE_TOKENS = {
    TokenKind.ATTR_READER: AttributeKind.READER,
    TokenKind.ATTR_WRITER: AttributeKind.WRITER,
    TokenKind.ATTR_ACCESSOR: AttributeKind.ACCESSOR,
}

NAME_TOKENS = {TokenKind.IDENT, TokenKind.CONST} | NAME_KEYWORD_TOKENS

STRING_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "e": "\x1b",
    "b": "\b",
    "f": "\f",
    "s": " ",
}


class ParserError(ValueError):
    def __init__(self, message: str, span: SourceSpan):
        super().__init__(f"{message} at {span.start.path}:{span.start.line}:{span.start.column}")
        self.message = message
        self.span = span


@dataclass
class TokenStream:
    tokens: list[Token]
    index: int = 0

    def __post_init__(self) -> None:
        if not self.tokens:
            raise ValueError("TokenStream requires at least one token (EOF)")

    def is_at_end(self) -> bool:
        return self.peek().kind == TokenKind.EOF

    def peek(self, offset: int = 0) -> Token:
        target = self.index + offset
        if target < 0:
            return self.tokens[0]
        if target >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[target]

    def previous(self) -> Token:
        return self.peek(-1)

    def advance(self) -> Token:
        current = self.peek()
        if not self.is_at_end():
            self.index += 1
        return current

    def check(self, kind: TokenKind) -> bool:
        return self.peek().kind == kind

    def check_any(self, *kinds: TokenKind) -> bool:
        return self.peek().kind in kinds

    def match(self, *kinds: TokenKind) -> bool:
        if self.check_any(*kinds):
            self.advance()
            return True
        return False

    def expect(self, kind: TokenKind, message: str) -> Token:
        if self.check(kind):
            return self.advance()
        raise ParserError(message, self.peek().span)

    def adjacent(self, offset: int = 0) -> bool:
        """True when the token at `offset` starts exactly where the preceding token ends."""
        left = self.peek(offset - 1)
        right = self.peek(offset)
        return left.span.end.offset == right.span.start.offset


def _span_from(start: Token, stream: TokenStream) -> SourceSpan:
    return SourceSpan(start=start.span.start, end=stream.previous().span.end)


class SignatureParser:
    def __init__(self, stream: TokenStream, *, type_vars: tuple[str, ...] | list[str] = ()):
        self.stream = stream
        self.type_var_scopes: list[set[str]] = [set(type_vars)]

    # -- declarations -----------------------------------------------------

    def parse_file(self, path: str) -> SignatureFile:
        stream = self.stream
        start = stream.peek().span.start
        declarations: list[Declaration] = []

        while not stream.is_at_end():
            annotations = self._parse_annotations()
            declarations.append(self._parse_declaration(annotations))

        end = stream.peek().span.end
        return SignatureFile(path=path, declarations=declarations, span=SourceSpan(start=start, end=end))

    def _parse_declaration(self, annotations: list[str]) -> Declaration:
        stream = self.stream
        token = stream.peek()

        if stream.match(TokenKind.CLASS):
            return self._parse_class_decl(token, annotations)
        if stream.match(TokenKind.MODULE):
            return self._parse_module_decl(token, annotations)
        if stream.match(TokenKind.INTERFACE_KW):
            return self._parse_interface_decl(token, annotations)
        if stream.match(TokenKind.TYPE):
            return self._parse_type_alias_decl(token)
        if stream.check(TokenKind.GVAR):
            return self._parse_global_decl()
        if stream.check_any(TokenKind.CONST, TokenKind.COLON2):
            return self._parse_constant_decl()

        raise ParserError("Expected declaration", token.span)

    def _parse_class_decl(self, class_token: Token, annotations: list[str]) -> ClassDecl:
        stream = self.stream
        name = self._parse_decl_name(TokenKind.CONST, "Expected class name")
        type_params = self._parse_type_params(allow_variance=True)

        saved = self._enter_declaration_scope(type_params)
        try:
            superclass = None
            if stream.match(TokenKind.LT):
                superclass = self._parse_class_reference("Expected superclass name")
            members = self._parse_members(class_token, is_interface=False)
        finally:
            self.type_var_scopes = saved

        return ClassDecl(
            name=name,
            type_params=type_params,
            superclass=superclass,
            members=members,
            annotations=annotations,
            span=_span_from(class_token, stream),
        )

    def _parse_module_decl(self, module_token: Token, annotations: list[str]) -> ModuleDecl:
        stream = self.stream
        name = self._parse_decl_name(TokenKind.CONST, "Expected module name")
        type_params = self._parse_type_params(allow_variance=True)

        saved = self._enter_declaration_scope(type_params)
        try:
            self_types: list[TypeExpr] = []
            if stream.match(TokenKind.COLON):
                while True:
                    self_types.append(self._parse_class_reference("Expected module self type"))
                    if not stream.match(TokenKind.COMMA):
                        break
            members = self._parse_members(module_token, is_interface=False)
        finally:
            self.type_var_scopes = saved

        return ModuleDecl(
            name=name,
            type_params=type_params,
            self_types=self_types,
            members=members,
            annotations=annotations,
            span=_span_from(module_token, stream),
        )

    def _parse_interface_decl(self, interface_token: Token, annotations: list[str]) -> InterfaceDecl:
        stream = self.stream
        name = self._parse_decl_name(TokenKind.INTERFACE, "Expected interface name")
        type_params = self._parse_type_params(allow_variance=True)

        saved = self._enter_declaration_scope(type_params)
        try:
            members = self._parse_members(interface_token, is_interface=True)
        finally:
            self.type_var_scopes = saved

        return InterfaceDecl(
            name=name,
            type_params=type_params,
            members=members,
            annotations=annotations,
            span=_span_from(interface_token, stream),
        )

    def _parse_type_alias_decl(self, type_token: Token) -> TypeAliasDecl:
        stream = self.stream
        name = self._parse_decl_name(TokenKind.IDENT, "Expected type alias name")
        type_params = self._parse_type_params(allow_variance=True)
        stream.expect(TokenKind.ASSIGN, "Expected '=' after type alias name")

        saved = self._enter_declaration_scope(type_params)
        try:
            body = self.parse_type()
        finally:
            self.type_var_scopes = saved

        return TypeAliasDecl(name=name, type_params=type_params, type=body, span=_span_from(type_token, stream))

    def _parse_global_decl(self) -> GlobalDecl:
        stream = self.stream
        name_token = stream.advance()
        stream.expect(TokenKind.COLON, "Expected ':' after global name")
        type_expr = self.parse_type()
        return GlobalDecl(name=name_token.lexeme, type=type_expr, span=_span_from(name_token, stream))

    def _parse_constant_decl(self) -> ConstantDecl:
        stream = self.stream
        start = stream.peek()
        name = self._parse_decl_name(TokenKind.CONST, "Expected constant name")
        stream.expect(TokenKind.COLON, "Expected ':' after constant name")
        type_expr = self.parse_type()
        return ConstantDecl(name=name, type=type_expr, span=_span_from(start, stream))

    def _parse_decl_name(self, last_kind: TokenKind, message: str) -> TypeName:
        stream = self.stream
        absolute = stream.match(TokenKind.COLON2)
        parts: list[str] = []

        while stream.check(TokenKind.CONST) and stream.peek(1).kind == TokenKind.COLON2:
            parts.append(stream.advance().lexeme)
            stream.advance()

        token = stream.expect(last_kind, message)
        parts.append(token.lexeme)
        return TypeName(path=tuple(parts), absolute=absolute)

    def _parse_class_reference(self, message: str) -> TypeExpr:
        stream = self.stream
        token = stream.peek()
        if not stream.check_any(TokenKind.CONST, TokenKind.COLON2, TokenKind.INTERFACE):
            raise ParserError(message, token.span)
        target = self._parse_named_type()
        if not isinstance(target, (NominalType, InterfaceType)):
            raise ParserError(message, token.span)
        return target

    # -- members ----------------------------------------------------------

    def _parse_members(self, opener: Token, *, is_interface: bool) -> list[Member]:
        stream = self.stream
        members: list[Member] = []

        while not stream.check(TokenKind.END):
            if stream.is_at_end():
                raise ParserError("Unterminated declaration body", opener.span)

            annotations = self._parse_annotations()
            token = stream.peek()

            if stream.match(TokenKind.DEF):
                members.append(self._parse_method_def(token, visibility=None, annotations=annotations))
                continue

            if stream.match(TokenKind.INCLUDE, TokenKind.EXTEND, TokenKind.PREPEND):
                relation = MIXIN_TOKENS[token.kind]
                if is_interface and relation != "include":
                    raise ParserError(f"Interfaces cannot {relation} modules", token.span)
                target = self._parse_class_reference(f"Expected module name after '{relation}'")
                members.append(MixinDecl(relation=relation, target=target, span=_span_from(token, stream)))
                continue

            if stream.match(TokenKind.ALIAS):
                members.append(self._parse_alias(token))
                continue

            if is_interface:
                raise ParserError("Expected method, include or alias in interface body", token.span)

            if token.kind in VISIBILITY_TOKENS:
                stream.advance()
                visibility = VISIBILITY_TOKENS[token.kind]
                # `private def foo` only applies inline when both sit on the same line.
                same_line = stream.peek().span.start.line == token.span.start.line
                if same_line and stream.match(TokenKind.DEF):
                    members.append(
                        self._parse_method_def(stream.previous(), visibility=visibility, annotations=annotations)
                    )
                elif same_line and stream.check_any(*ATTRIBUTE_TOKENS):
                    members.append(self._parse_attribute(stream.advance(), visibility=visibility))
                else:
                    members.append(VisibilityDecl(visibility=visibility, span=token.span))
                continue

            if token.kind in ATTRIBUTE_TOKENS:
                stream.advance()
                members.append(self._parse_attribute(token, visibility=None))
                continue

            if stream.check(TokenKind.IVAR) or (
                stream.check(TokenKind.SELF)
                and stream.peek(1).kind == TokenKind.DOT
                and stream.peek(2).kind == TokenKind.IVAR
            ):
                members.append(self._parse_instance_variable())
                continue

            if token.kind in {
                TokenKind.CLASS,
                TokenKind.MODULE,
                TokenKind.INTERFACE_KW,
                TokenKind.TYPE,
                TokenKind.CONST,
                TokenKind.COLON2,
                TokenKind.GVAR,
            }:
                members.append(self._parse_nested_declaration(annotations))
                continue

            raise ParserError("Unexpected token in declaration body", token.span)

        stream.expect(TokenKind.END, "Expected 'end'")
        return members

    def _parse_nested_declaration(self, annotations: list[str]) -> Declaration:
        saved = self.type_var_scopes
        self.type_var_scopes = [set()]
        try:
            return self._parse_declaration(annotations)
        finally:
            self.type_var_scopes = saved

    def _parse_method_def(
        self,
        def_token: Token,
        *,
        visibility: Visibility | None,
        annotations: list[str],
    ) -> MethodDefDecl:
        stream = self.stream
        kind = self._parse_method_receiver()
        name = self._parse_method_name()
        stream.expect(TokenKind.COLON, "Expected ':' after method name")

        overloads: list[OverloadDecl] = []
        overloading = False
        while True:
            overload_annotations = self._parse_annotations()
            start = stream.peek()
            if stream.match(TokenKind.ELLIPSIS):
                overloading = True
                break
            signature = self.parse_method_signature(allow_type_params=True)
            overloads.append(
                OverloadDecl(signature=signature, annotations=overload_annotations, span=_span_from(start, stream))
            )
            if not stream.match(TokenKind.PIPE):
                break

        if not overloads:
            raise ParserError("Method definition requires at least one overload before '...'", def_token.span)

        return MethodDefDecl(
            name=name,
            kind=kind,
            overloads=overloads,
            overloading=overloading,
            visibility=visibility,
            annotations=annotations,
            span=_span_from(def_token, stream),
        )

    def _parse_method_receiver(self) -> MethodKind:
        stream = self.stream
        if stream.check(TokenKind.SELF):
            if stream.peek(1).kind == TokenKind.DOT:
                stream.advance()
                stream.advance()
                return MethodKind.SINGLETON
            if stream.peek(1).kind == TokenKind.QUESTION and stream.peek(2).kind == TokenKind.DOT:
                stream.advance()
                stream.advance()
                stream.advance()
                return MethodKind.SINGLETON_INSTANCE
        return MethodKind.INSTANCE

    def _parse_method_name(self) -> str:
        stream = self.stream
        token = stream.peek()

        if token.kind in NAME_TOKENS:
            stream.advance()
            name = token.lexeme
            if stream.check_any(TokenKind.QUESTION, TokenKind.BANG, TokenKind.ASSIGN) and stream.adjacent():
                name += stream.advance().lexeme
            return name

        if token.kind in OPERATOR_NAME_TOKENS:
            parts = [stream.advance().lexeme]
            while stream.peek().kind in OPERATOR_NAME_TOKENS and stream.adjacent():
                parts.append(stream.advance().lexeme)
            return "".join(parts)

        raise ParserError("Expected method name", token.span)

    def _parse_alias(self, alias_token: Token) -> AliasDecl:
        new_kind = self._parse_method_receiver()
        new_name = self._parse_method_name()
        old_kind = self._parse_method_receiver()
        old_name = self._parse_method_name()
        if new_kind != old_kind:
            raise ParserError("Alias must not mix singleton and instance methods", alias_token.span)
        return AliasDecl(new_name=new_name, old_name=old_name, kind=new_kind, span=_span_from(alias_token, self.stream))

    def _parse_attribute(self, attr_token: Token, *, visibility: Visibility | None) -> AttributeDecl:
        stream = self.stream
        kind = self._parse_method_receiver()
        if kind == MethodKind.SINGLETON_INSTANCE:
            raise ParserError("Attributes cannot be declared with 'self?.'", attr_token.span)
        name_token = stream.peek()
        if name_token.kind not in NAME_TOKENS:
            raise ParserError("Expected attribute name", name_token.span)
        stream.advance()

        if stream.match(TokenKind.LPAREN):
            stream.match(TokenKind.IVAR)
            stream.expect(TokenKind.RPAREN, "Expected ')' after attribute variable")

        stream.expect(TokenKind.COLON, "Expected ':' after attribute name")
        type_expr = self.parse_type()
        return AttributeDecl(
            name=name_token.lexeme,
            attr_kind=ATTRIBUTE_TOKENS[attr_token.kind],
            type=type_expr,
            kind=kind,
            visibility=visibility,
            span=_span_from(attr_token, stream),
        )

    def _parse_instance_variable(self) -> InstanceVariableDecl:
        stream = self.stream
        start = stream.peek()
        kind = MethodKind.INSTANCE
        if stream.match(TokenKind.SELF):
            stream.expect(TokenKind.DOT, "Expected '.' after 'self'")
            kind = MethodKind.SINGLETON
        name_token = stream.expect(TokenKind.IVAR, "Expected instance variable name")
        stream.expect(TokenKind.COLON, "Expected ':' after instance variable name")
        type_expr = self.parse_type()
        return InstanceVariableDecl(name=name_token.lexeme, type=type_expr, kind=kind, span=_span_from(start, stream))

    def _parse_annotations(self) -> list[str]:
        annotations: list[str] = []
        while self.stream.check(TokenKind.ANNOTATION):
            annotations.append(self.stream.advance().lexeme.strip())
        return annotations

    # -- type parameters --------------------------------------------------

    def _parse_type_params(self, *, allow_variance: bool) -> list[TypeParam]:
        stream = self.stream
        if not stream.match(TokenKind.LBRACKET):
            return []

        params: list[TypeParam] = []
        names: set[str] = set()
        self.type_var_scopes.append(names)
        try:
            while True:
                start = stream.peek()
                unchecked = stream.match(TokenKind.UNCHECKED)
                variance = Variance.INVARIANT
                if stream.match(TokenKind.OUT):
                    variance = Variance.COVARIANT
                elif stream.match(TokenKind.IN):
                    variance = Variance.CONTRAVARIANT
                if not allow_variance and (unchecked or variance != Variance.INVARIANT):
                    raise ParserError("Method type parameters cannot declare variance", start.span)

                name_token = stream.expect(TokenKind.CONST, "Expected type parameter name")
                if name_token.lexeme in names:
                    raise ParserError(f"Duplicate type parameter '{name_token.lexeme}'", name_token.span)
                names.add(name_token.lexeme)

                upper_bound = None
                if stream.match(TokenKind.LT):
                    upper_bound = self.parse_type()

                params.append(
                    TypeParam(
                        name=name_token.lexeme,
                        variance=variance,
                        unchecked=unchecked,
                        upper_bound=upper_bound,
                    )
                )
                if not stream.match(TokenKind.COMMA):
                    break
        finally:
            self.type_var_scopes.pop()

        stream.expect(TokenKind.RBRACKET, "Expected ']' after type parameters")
        return params

    def _enter_declaration_scope(self, type_params: list[TypeParam]) -> list[set[str]]:
        saved = self.type_var_scopes
        self.type_var_scopes = [{param.name for param in type_params}]
        return saved

    def _is_type_var(self, name: str) -> bool:
        return any(name in scope for scope in self.type_var_scopes)

    # -- method types -----------------------------------------------------

    def parse_method_signature(self, *, allow_type_params: bool) -> MethodSignature:
        stream = self.stream
        start = stream.peek()

        type_params: list[TypeParam] = []
        if allow_type_params and stream.check(TokenKind.LBRACKET):
            type_params = self._parse_type_params(allow_variance=False)

        self.type_var_scopes.append({param.name for param in type_params})
        try:
            positional: list[Parameter] = []
            keyword: list[Parameter] = []
            if stream.match(TokenKind.LPAREN):
                positional, keyword = self._parse_params()

            block = None
            if stream.check(TokenKind.QUESTION) and stream.peek(1).kind == TokenKind.LBRACE:
                stream.advance()
                block = self._parse_block(required=False)
            elif stream.check(TokenKind.LBRACE):
                block = self._parse_block(required=True)

            stream.expect(TokenKind.ARROW, "Expected '->' before return type")
            return_type = self.parse_optional_type()
        finally:
            self.type_var_scopes.pop()

        try:
            return MethodSignature(
                positional=tuple(positional),
                keyword=tuple(keyword),
                return_type=return_type,
                block=block,
                type_params=tuple(type_params),
            )
        except ValueError as error:
            raise ParserError(str(error), start.span) from error

    def _parse_params(self) -> tuple[list[Parameter], list[Parameter]]:
        stream = self.stream
        positional: list[Parameter] = []
        keyword: list[Parameter] = []

        while not stream.check(TokenKind.RPAREN):
            token = stream.peek()

            if stream.match(TokenKind.STAR2):
                param_type = self.parse_type()
                keyword.append(Parameter(type=param_type, kind=ParamKind.KEYWORD_REST, name=self._parse_param_name()))
            elif self._at_keyword_label(0):
                label = stream.advance().lexeme
                stream.advance()
                keyword.append(Parameter(type=self.parse_type(), kind=ParamKind.KEYWORD_REQUIRED, name=label))
            elif stream.check(TokenKind.QUESTION) and self._at_keyword_label(1):
                stream.advance()
                label = stream.advance().lexeme
                stream.advance()
                keyword.append(Parameter(type=self.parse_type(), kind=ParamKind.KEYWORD_OPTIONAL, name=label))
            else:
                if keyword:
                    raise ParserError("Positional parameter after keyword parameter", token.span)
                kind = ParamKind.REQUIRED
                if stream.match(TokenKind.QUESTION):
                    kind = ParamKind.OPTIONAL
                elif stream.match(TokenKind.STAR):
                    kind = ParamKind.REST
                param_type = self.parse_type()
                positional.append(Parameter(type=param_type, kind=kind, name=self._parse_param_name()))

            if not stream.match(TokenKind.COMMA):
                break

        stream.expect(TokenKind.RPAREN, "Expected ')' after parameters")
        return positional, keyword

    def _at_keyword_label(self, offset: int) -> bool:
        stream = self.stream
        label = stream.peek(offset)
        colon = stream.peek(offset + 1)
        return (
            label.kind in ({TokenKind.IDENT} | NAME_KEYWORD_TOKENS)
            and colon.kind == TokenKind.COLON
            and label.span.end.offset == colon.span.start.offset
        )

    def _parse_param_name(self) -> str | None:
        stream = self.stream
        token = stream.peek()
        if token.kind == TokenKind.IDENT:
            return stream.advance().lexeme
        if token.kind in NAME_KEYWORD_TOKENS and stream.peek(1).kind in {TokenKind.COMMA, TokenKind.RPAREN}:
            return stream.advance().lexeme
        return None

    def _parse_block(self, *, required: bool) -> BlockSignature:
        stream = self.stream
        lbrace = stream.expect(TokenKind.LBRACE, "Expected '{' to start block")

        positional: list[Parameter] = []
        keyword: list[Parameter] = []
        if stream.match(TokenKind.LPAREN):
            positional, keyword = self._parse_params()

        self_type = None
        if stream.match(TokenKind.LBRACKET):
            stream.expect(TokenKind.SELF, "Expected 'self' in block self binding")
            stream.expect(TokenKind.COLON, "Expected ':' after 'self'")
            self_type = self.parse_type()
            stream.expect(TokenKind.RBRACKET, "Expected ']' after block self binding")

        stream.expect(TokenKind.ARROW, "Expected '->' in block signature")
        return_type = self.parse_optional_type()
        stream.expect(TokenKind.RBRACE, "Expected '}' after block signature")

        try:
            signature = MethodSignature(positional=tuple(positional), keyword=tuple(keyword), return_type=return_type)
        except ValueError as error:
            raise ParserError(str(error), lbrace.span) from error
        return BlockSignature(signature=signature, required=required, self_type=self_type)

    # -- types ------------------------------------------------------------

    def parse_type(self) -> TypeExpr:
        members = [self.parse_optional_type()]
        while self.stream.match(TokenKind.PIPE):
            members.append(self.parse_optional_type())
        return union(*members)

    def parse_optional_type(self) -> TypeExpr:
        type_expr = self._parse_primary_type()
        while self.stream.check(TokenKind.QUESTION) and self.stream.peek(1).kind != TokenKind.LBRACE:
            self.stream.advance()
            type_expr = OptionalType(inner=type_expr)
        return type_expr

    def _parse_primary_type(self) -> TypeExpr:
        stream = self.stream
        token = stream.peek()

        if stream.match(TokenKind.LPAREN):
            inner = self.parse_type()
            stream.expect(TokenKind.RPAREN, "Expected ')' after type")
            return inner

        if stream.match(TokenKind.LBRACKET):
            elements: list[TypeExpr] = []
            while not stream.check(TokenKind.RBRACKET):
                elements.append(self.parse_type())
                if not stream.match(TokenKind.COMMA):
                    break
            stream.expect(TokenKind.RBRACKET, "Expected ']' after tuple type")
            return TupleType(elements=tuple(elements))

        if stream.match(TokenKind.LBRACE):
            return self._parse_record_type(token)

        if stream.match(TokenKind.CARET):
            return ProcType(signature=self.parse_method_signature(allow_type_params=False))

        if stream.match(TokenKind.SINGLETON):
            stream.expect(TokenKind.LPAREN, "Expected '(' after 'singleton'")
            name = self._parse_decl_name(TokenKind.CONST, "Expected class name in singleton type")
            stream.expect(TokenKind.RPAREN, "Expected ')' after singleton type")
            return SingletonType(name=name)

        special = SPECIAL_TYPE_TOKENS.get(token.kind)
        if special is not None:
            stream.advance()
            return SpecialType(kind=special)

        if stream.match(TokenKind.TRUE):
            return LiteralType(kind=LiteralKind.BOOL, value=True)
        if stream.match(TokenKind.FALSE):
            return LiteralType(kind=LiteralKind.BOOL, value=False)

        if stream.match(TokenKind.INT_LIT):
            return LiteralType(kind=LiteralKind.INT, value=int(token.lexeme.replace("_", "")))

        if stream.check(TokenKind.MINUS) and stream.peek(1).kind == TokenKind.INT_LIT and stream.adjacent(1):
            stream.advance()
            number = stream.advance()
            return LiteralType(kind=LiteralKind.INT, value=-int(number.lexeme.replace("_", "")))

        if stream.match(TokenKind.STRING_LIT):
            return LiteralType(kind=LiteralKind.STRING, value=unescape_string(token.lexeme))

        if stream.match(TokenKind.SYMBOL_LIT):
            body = token.lexeme[1:]
            if body[:1] in {'"', "'"}:
                body = unescape_string(body)
            return LiteralType(kind=LiteralKind.SYMBOL, value=body)

        if stream.check_any(TokenKind.CONST, TokenKind.COLON2, TokenKind.INTERFACE, TokenKind.IDENT):
            return self._parse_named_type()

        raise ParserError("Expected type", token.span)

    def _parse_record_type(self, lbrace: Token) -> RecordType:
        stream = self.stream
        fields: list[tuple[str, TypeExpr]] = []
        seen: set[str] = set()

        while not stream.check(TokenKind.RBRACE):
            key_token = stream.peek()
            if self._at_keyword_label(0) or (
                key_token.kind == TokenKind.CONST
                and stream.peek(1).kind == TokenKind.COLON
                and stream.adjacent(1)
            ):
                key = stream.advance().lexeme
                stream.advance()
            elif key_token.kind in {TokenKind.STRING_LIT, TokenKind.SYMBOL_LIT}:
                stream.advance()
                body = key_token.lexeme[1:] if key_token.kind == TokenKind.SYMBOL_LIT else key_token.lexeme
                key = unescape_string(body) if body[:1] in {'"', "'"} else body
                stream.expect(TokenKind.FAT_ARROW, "Expected '=>' after record key")
            else:
                raise ParserError("Expected record field name", key_token.span)

            if key in seen:
                raise ParserError(f"Duplicate record field '{key}'", key_token.span)
            seen.add(key)
            fields.append((key, self.parse_type()))
            if not stream.match(TokenKind.COMMA):
                break

        stream.expect(TokenKind.RBRACE, "Expected '}' after record type")
        return RecordType(fields=tuple(fields))

    def _parse_named_type(self) -> TypeExpr:
        stream = self.stream
        start = stream.peek()
        absolute = stream.match(TokenKind.COLON2)
        parts: list[str] = []
        last_kind = TokenKind.CONST

        while True:
            token = stream.peek()
            if token.kind == TokenKind.CONST:
                stream.advance()
                parts.append(token.lexeme)
                last_kind = TokenKind.CONST
                if stream.check(TokenKind.COLON2) and stream.peek(1).kind in {
                    TokenKind.CONST,
                    TokenKind.INTERFACE,
                    TokenKind.IDENT,
                }:
                    stream.advance()
                    continue
                break
            if token.kind in {TokenKind.INTERFACE, TokenKind.IDENT}:
                stream.advance()
                parts.append(token.lexeme)
                last_kind = token.kind
                break
            raise ParserError("Expected type name", token.span)

        name = TypeName(path=tuple(parts), absolute=absolute)
        args: tuple[TypeExpr, ...] = ()
        if stream.match(TokenKind.LBRACKET):
            arg_list: list[TypeExpr] = []
            while True:
                arg_list.append(self.parse_type())
                if not stream.match(TokenKind.COMMA):
                    break
            stream.expect(TokenKind.RBRACKET, "Expected ']' after type arguments")
            args = tuple(arg_list)

        if last_kind == TokenKind.INTERFACE:
            return InterfaceType(name=name, args=args)
        if last_kind == TokenKind.IDENT:
            return AliasType(name=name, args=args)
        if not absolute and len(parts) == 1 and self._is_type_var(parts[0]):
            if args:
                raise ParserError(f"Type variable '{parts[0]}' cannot take type arguments", start.span)
            return TypeVar(name=parts[0])
        return NominalType(name=name, args=args)


def unescape_string(lexeme: str) -> str:
    quote = lexeme[0]
    body = lexeme[1:-1]
    if quote == "'":
        return body.replace("\\'", "'").replace("\\\\", "\\")

    chars: list[str] = []
    index = 0
    while index < len(body):
        ch = body[index]
        if ch != "\\" or index + 1 >= len(body):
            chars.append(ch)
            index += 1
            continue

        esc = body[index + 1]
        if esc == "u" and index + 6 <= len(body):
            code = int(body[index + 2 : index + 6], 16)
            index += 6
            # a high surrogate followed by a low one encodes a single code point
            if 0xD800 <= code < 0xDC00 and body[index : index + 2] == "\\u" and index + 6 <= len(body):
                low = int(body[index + 2 : index + 6], 16)
                if 0xDC00 <= low < 0xE000:
                    code = 0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)
                    index += 6
            chars.append(chr(code))
            continue
        chars.append(STRING_ESCAPES.get(esc, esc))
        index += 2
    return "".join(chars)


def parse(tokens: list[Token], path: str | None = None) -> SignatureFile:
    source_path = path if path is not None else tokens[0].span.start.path if tokens else "<memory>"
    return SignatureParser(TokenStream(tokens)).parse_file(source_path)


def parse_source(source: str, source_path: str = "<memory>") -> SignatureFile:
    return parse(lex(source, source_path=source_path), path=source_path)


def parse_type(source: str, *, type_vars: tuple[str, ...] | list[str] = ()) -> TypeExpr:
    parser = SignatureParser(TokenStream(lex(source, source_path="<type>")), type_vars=type_vars)
    type_expr = parser.parse_type()
    if not parser.stream.is_at_end():
        raise ParserError("Unexpected token after type", parser.stream.peek().span)
    return type_expr


def parse_method_type(source: str, *, type_vars: tuple[str, ...] | list[str] = ()) -> MethodSignature:
    parser = SignatureParser(TokenStream(lex(source, source_path="<method>")), type_vars=type_vars)
    signature = parser.parse_method_signature(allow_type_params=True)
    if not parser.stream.is_at_end():
        raise ParserError("Unexpected token after method type", parser.stream.peek().span)
    return signature

import pytest

from sigdb.lexer import LexerError, lex
from sigdb.tokens import TokenKind


def test_lex_class_header_with_generics_and_superclass() -> None:
    kinds = [token.kind for token in lex("class Foo[out T] < Bar[T]")]
    assert kinds == [
        TokenKind.CLASS,
        TokenKind.CONST,
        TokenKind.LBRACKET,
        TokenKind.OUT,
        TokenKind.CONST,
        TokenKind.RBRACKET,
        TokenKind.LT,
        TokenKind.CONST,
        TokenKind.LBRACKET,
        TokenKind.CONST,
        TokenKind.RBRACKET,
        TokenKind.EOF,
    ]


def test_lex_method_signature_punctuation() -> None:
    source = "def foo: (?Integer, *String, **untyped) ?{ () -> void } -> bool"
    kinds = [token.kind for token in lex(source)]
    assert kinds == [
        TokenKind.DEF,
        TokenKind.IDENT,
        TokenKind.COLON,
        TokenKind.LPAREN,
        TokenKind.QUESTION,
        TokenKind.CONST,
        TokenKind.COMMA,
        TokenKind.STAR,
        TokenKind.CONST,
        TokenKind.COMMA,
        TokenKind.STAR2,
        TokenKind.UNTYPED,
        TokenKind.RPAREN,
        TokenKind.QUESTION,
        TokenKind.LBRACE,
        TokenKind.LPAREN,
        TokenKind.RPAREN,
        TokenKind.ARROW,
        TokenKind.VOID,
        TokenKind.RBRACE,
        TokenKind.ARROW,
        TokenKind.BOOL,
        TokenKind.EOF,
    ]


def test_lex_interface_names_and_variables() -> None:
    tokens = lex("_ToS @name $stdout")
    assert [(token.kind, token.lexeme) for token in tokens[:-1]] == [
        (TokenKind.INTERFACE, "_ToS"),
        (TokenKind.IVAR, "@name"),
        (TokenKind.GVAR, "$stdout"),
    ]


def test_lex_symbol_literal_is_distinguished_from_keyword_label() -> None:
    tokens = lex("name: :sym | :ok?")
    assert [token.kind for token in tokens] == [
        TokenKind.IDENT,
        TokenKind.COLON,
        TokenKind.SYMBOL_LIT,
        TokenKind.PIPE,
        TokenKind.SYMBOL_LIT,
        TokenKind.EOF,
    ]
    assert tokens[2].lexeme == ":sym"
    assert tokens[4].lexeme == ":ok?"


def test_lex_scope_operator_is_not_a_symbol() -> None:
    kinds = [token.kind for token in lex("::Foo::Bar")]
    assert kinds == [TokenKind.COLON2, TokenKind.CONST, TokenKind.COLON2, TokenKind.CONST, TokenKind.EOF]


def test_lex_annotation_keeps_inner_text() -> None:
    tokens = lex("%a{replace} def to_s: () -> String")
    assert tokens[0].kind == TokenKind.ANNOTATION
    assert tokens[0].lexeme == "replace"
    assert tokens[1].kind == TokenKind.DEF


def test_lex_three_and_two_char_operators() -> None:
    kinds = [token.kind for token in lex("<=> === ... -> => ** <<")]
    assert kinds == [
        TokenKind.SPACESHIP,
        TokenKind.EQEQEQ,
        TokenKind.ELLIPSIS,
        TokenKind.ARROW,
        TokenKind.FAT_ARROW,
        TokenKind.STAR2,
        TokenKind.LSHIFT,
        TokenKind.EOF,
    ]


def test_lex_skips_comments_and_tracks_lines() -> None:
    tokens = lex("# leading comment\nclass Foo # trailing\nend\n", source_path="core.rbs")
    assert [token.kind for token in tokens] == [TokenKind.CLASS, TokenKind.CONST, TokenKind.END, TokenKind.EOF]
    assert tokens[0].span.start.line == 2
    assert tokens[2].span.start.line == 3
    assert tokens[0].span.start.path == "core.rbs"


def test_lex_integer_and_string_literals() -> None:
    tokens = lex("1_000 \"a\\\"b\" 'c'")
    assert [(token.kind, token.lexeme) for token in tokens[:-1]] == [
        (TokenKind.INT_LIT, "1_000"),
        (TokenKind.STRING_LIT, '"a\\"b"'),
        (TokenKind.STRING_LIT, "'c'"),
    ]


def test_lex_rejects_unterminated_string() -> None:
    with pytest.raises(LexerError, match="Unterminated string literal"):
        lex('"abc')


def test_lex_rejects_unknown_character() -> None:
    with pytest.raises(LexerError, match=r"Unexpected character ';' at <memory>:1:7"):
        lex("class ;")

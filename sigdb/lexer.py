from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sigdb.tokens import (
    KEYWORDS,
    ONE_CHAR_TOKENS,
    THREE_CHAR_TOKENS,
    TWO_CHAR_TOKENS,
    TokenKind,
)


ANNOTATION_CLOSERS = {"{": "}", "[": "]", "(": ")", "<": ">", "|": "|"}
QUOTES = "\"'"


@dataclass(frozen=True)
class SourcePos:
    path: str
    offset: int
    line: int
    column: int


@dataclass(frozen=True)
class SourceSpan:
    start: SourcePos
    end: SourcePos


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    lexeme: str
    span: SourceSpan


class LexerError(ValueError):
    def __init__(self, message: str, span: SourceSpan):
        super().__init__(f"{message} at {span.start.path}:{span.start.line}:{span.start.column}")
        self.message = message
        self.span = span


def _word_start(ch: str) -> bool:
    return ch == "_" or ch.isalpha()


def _word_char(ch: str) -> bool:
    return ch == "_" or ch.isalnum()


class Lexer:
    """Cursor over a signature source, producing tokens with 1-based line/column spans."""

    def __init__(self, source: str, source_path: str = "<memory>"):
        self.source = source
        self.source_path = source_path
        self.offset = 0
        self.line = 1
        self.column = 1

    def lex(self) -> list[Token]:
        tokens: list[Token] = []
        self._skip_trivia()
        while self.offset < len(self.source):
            tokens.append(self._next_token())
            self._skip_trivia()

        end = self._here()
        tokens.append(Token(TokenKind.EOF, "", SourceSpan(end, end)))
        return tokens

    def _next_token(self) -> Token:
        start = self._here()
        ch = self._char()

        if _word_start(ch):
            return self._word(start)
        if ch.isdigit():
            self._take_while(lambda c: c.isdigit() or c == "_")
            return self._emit(TokenKind.INT_LIT, start)
        if ch in QUOTES:
            return self._quoted(start)
        if ch in "@$" and _word_start(self._char(1)):
            self._step()
            self._take_while(_word_char)
            return self._emit(TokenKind.IVAR if ch == "@" else TokenKind.GVAR, start)
        if ch == "%" and self._char(1) == "a" and self._char(2) in ANNOTATION_CLOSERS:
            return self._annotation(start)
        if ch == ":" and self._at_symbol():
            return self._symbol(start)

        for width, table in ((3, THREE_CHAR_TOKENS), (2, TWO_CHAR_TOKENS), (1, ONE_CHAR_TOKENS)):
            text = self.source[self.offset : self.offset + width]
            kind = table.get(text)
            if kind is not None:
                self._step(width)
                return self._emit(kind, start)

        raise LexerError(f"Unexpected character '{ch}'", SourceSpan(start, start))

    def _skip_trivia(self) -> None:
        while True:
            ch = self._char()
            if ch in " \t\r\n":
                self._step()
            elif ch == "#":
                self._take_while(lambda c: c != "\n")
            else:
                return

    def _word(self, start: SourcePos) -> Token:
        text = self._take_while(_word_char)
        if text[0].isupper():
            kind = TokenKind.CONST
        elif text[0] == "_" and text[1:2].isupper():
            kind = TokenKind.INTERFACE
        else:
            kind = KEYWORDS.get(text, TokenKind.IDENT)
        return self._emit(kind, start)

    def _quoted(self, start: SourcePos) -> Token:
        quote = self._step()
        while True:
            ch = self._char()
            if ch == "\0" or ch == "\n":
                break
            self._step()
            if ch == quote:
                return self._emit(TokenKind.STRING_LIT, start)
            if ch == "\\":
                if self._char() == "\0":
                    break
                self._step()
        raise LexerError("Unterminated string literal", SourceSpan(start, self._here()))

    def _at_symbol(self) -> bool:
        following = self._char(1)
        if not (_word_start(following) or following in QUOTES):
            return False
        if self.offset == 0:
            return True
        before = self.source[self.offset - 1]
        return before != ":" and not _word_char(before)

    def _symbol(self, start: SourcePos) -> Token:
        self._step()
        if self._char() in QUOTES:
            body = self._quoted(self._here())
            return Token(TokenKind.SYMBOL_LIT, ":" + body.lexeme, SourceSpan(start, self._here()))

        self._take_while(_word_char)
        # :empty? and :save! but not the setter form :name=
        if self._char() in "?!" and self._char(1) != "=":
            self._step()
        return self._emit(TokenKind.SYMBOL_LIT, start)

    def _annotation(self, start: SourcePos) -> Token:
        self._step(2)
        opener = self._step()
        closer = ANNOTATION_CLOSERS[opener]
        nested = opener != closer
        depth = 0
        body_start = self.offset

        while self.offset < len(self.source):
            ch = self._char()
            if ch == closer and depth == 0:
                body = self.source[body_start : self.offset]
                self._step()
                return Token(TokenKind.ANNOTATION, body, SourceSpan(start, self._here()))
            if nested and ch == opener:
                depth += 1
            elif nested and ch == closer:
                depth -= 1
            self._step()

        raise LexerError("Unterminated annotation", SourceSpan(start, self._here()))

    def _char(self, ahead: int = 0) -> str:
        index = self.offset + ahead
        if index >= len(self.source):
            return "\0"
        return self.source[index]

    def _step(self, count: int = 1) -> str:
        consumed = self.source[self.offset : self.offset + count]
        for ch in consumed:
            if ch == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        self.offset += len(consumed)
        return consumed

    def _take_while(self, accept: Callable[[str], bool]) -> str:
        begin = self.offset
        while self.offset < len(self.source) and accept(self.source[self.offset]):
            self._step()
        return self.source[begin : self.offset]

    def _here(self) -> SourcePos:
        return SourcePos(self.source_path, self.offset, self.line, self.column)

    def _emit(self, kind: TokenKind, start: SourcePos) -> Token:
        return Token(kind, self.source[start.offset : self.offset], SourceSpan(start, self._here()))


def lex(source: str, source_path: str = "<memory>") -> list[Token]:
    return Lexer(source, source_path).lex()

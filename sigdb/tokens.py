from __future__ import annotations

from enum import Enum


class TokenKind(str, Enum):
    EOF = "EOF"

    IDENT = "IDENT"
    CONST = "CONST"
    INTERFACE = "INTERFACE"
    IVAR = "IVAR"
    GVAR = "GVAR"
    INT_LIT = "INT_LIT"
    STRING_LIT = "STRING_LIT"
    SYMBOL_LIT = "SYMBOL_LIT"
    ANNOTATION = "ANNOTATION"

    CLASS = "CLASS"
    MODULE = "MODULE"
    INTERFACE_KW = "INTERFACE_KW"
    END = "END"
    DEF = "DEF"
    INCLUDE = "INCLUDE"
    EXTEND = "EXTEND"
    PREPEND = "PREPEND"
    ALIAS = "ALIAS"
    ATTR_READER = "ATTR_READER"
    ATTR_WRITER = "ATTR_WRITER"
    ATTR_ACCESSOR = "ATTR_ACCESSOR"
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"
    PROTECTED = "PROTECTED"
    TYPE = "TYPE"
    UNCHECKED = "UNCHECKED"
    OUT = "OUT"
    IN = "IN"
    SINGLETON = "SINGLETON"

    SELF = "SELF"
    INSTANCE = "INSTANCE"
    VOID = "VOID"
    UNTYPED = "UNTYPED"
    BOOL = "BOOL"
    TOP = "TOP"
    BOT = "BOT"
    NIL = "NIL"
    TRUE = "TRUE"
    FALSE = "FALSE"

    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    LBRACE = "LBRACE"
    RBRACE = "RBRACE"
    LBRACKET = "LBRACKET"
    RBRACKET = "RBRACKET"
    COMMA = "COMMA"
    DOT = "DOT"
    COLON = "COLON"
    COLON2 = "COLON2"
    ARROW = "ARROW"
    PIPE = "PIPE"
    AMP = "AMP"
    QUESTION = "QUESTION"
    STAR = "STAR"
    STAR2 = "STAR2"
    CARET = "CARET"
    ASSIGN = "ASSIGN"
    BANG = "BANG"
    AT = "AT"

    PLUS = "PLUS"
    MINUS = "MINUS"
    SLASH = "SLASH"
    PERCENT = "PERCENT"
    TILDE = "TILDE"
    BACKTICK = "BACKTICK"
    LT = "LT"
    GT = "GT"
    LTE = "LTE"
    GTE = "GTE"
    EQEQ = "EQEQ"
    EQEQEQ = "EQEQEQ"
    NEQ = "NEQ"
    MATCH = "MATCH"
    NMATCH = "NMATCH"
    SPACESHIP = "SPACESHIP"
    LSHIFT = "LSHIFT"
    RSHIFT = "RSHIFT"
    ELLIPSIS = "ELLIPSIS"
    FAT_ARROW = "FAT_ARROW"


KEYWORDS: dict[str, TokenKind] = {
    "class": TokenKind.CLASS,
    "module": TokenKind.MODULE,
    "interface": TokenKind.INTERFACE_KW,
    "end": TokenKind.END,
    "def": TokenKind.DEF,
    "include": TokenKind.INCLUDE,
    "extend": TokenKind.EXTEND,
    "prepend": TokenKind.PREPEND,
    "alias": TokenKind.ALIAS,
    "attr_reader": TokenKind.ATTR_READER,
    "attr_writer": TokenKind.ATTR_WRITER,
    "attr_accessor": TokenKind.ATTR_ACCESSOR,
    "public": TokenKind.PUBLIC,
    "private": TokenKind.PRIVATE,
    "protected": TokenKind.PROTECTED,
    "type": TokenKind.TYPE,
    "unchecked": TokenKind.UNCHECKED,
    "out": TokenKind.OUT,
    "in": TokenKind.IN,
    "singleton": TokenKind.SINGLETON,
    "self": TokenKind.SELF,
    "instance": TokenKind.INSTANCE,
    "void": TokenKind.VOID,
    "untyped": TokenKind.UNTYPED,
    "bool": TokenKind.BOOL,
    "top": TokenKind.TOP,
    "bot": TokenKind.BOT,
    "nil": TokenKind.NIL,
    "true": TokenKind.TRUE,
    "false": TokenKind.FALSE,
}


THREE_CHAR_TOKENS: dict[str, TokenKind] = {
    "<=>": TokenKind.SPACESHIP,
    "===": TokenKind.EQEQEQ,
    "...": TokenKind.ELLIPSIS,
}


TWO_CHAR_TOKENS: dict[str, TokenKind] = {
    "->": TokenKind.ARROW,
    "=>": TokenKind.FAT_ARROW,
    "::": TokenKind.COLON2,
    "**": TokenKind.STAR2,
    "==": TokenKind.EQEQ,
    "!=": TokenKind.NEQ,
    "=~": TokenKind.MATCH,
    "!~": TokenKind.NMATCH,
    "<=": TokenKind.LTE,
    ">=": TokenKind.GTE,
    "<<": TokenKind.LSHIFT,
    ">>": TokenKind.RSHIFT,
}


ONE_CHAR_TOKENS: dict[str, TokenKind] = {
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    "[": TokenKind.LBRACKET,
    "]": TokenKind.RBRACKET,
    ",": TokenKind.COMMA,
    ".": TokenKind.DOT,
    ":": TokenKind.COLON,
    "|": TokenKind.PIPE,
    "&": TokenKind.AMP,
    "?": TokenKind.QUESTION,
    "*": TokenKind.STAR,
    "^": TokenKind.CARET,
    "=": TokenKind.ASSIGN,
    "!": TokenKind.BANG,
    "@": TokenKind.AT,
    "+": TokenKind.PLUS,
    "-": TokenKind.MINUS,
    "/": TokenKind.SLASH,
    "%": TokenKind.PERCENT,
    "~": TokenKind.TILDE,
    "`": TokenKind.BACKTICK,
    "<": TokenKind.LT,
    ">": TokenKind.GT,
}


# Tokens that may be glued together (without whitespace) to spell an operator method name.
OPERATOR_NAME_TOKENS: set[TokenKind] = {
    TokenKind.PLUS,
    TokenKind.MINUS,
    TokenKind.STAR,
    TokenKind.STAR2,
    TokenKind.SLASH,
    TokenKind.PERCENT,
    TokenKind.TILDE,
    TokenKind.BACKTICK,
    TokenKind.CARET,
    TokenKind.AMP,
    TokenKind.PIPE,
    TokenKind.BANG,
    TokenKind.AT,
    TokenKind.LT,
    TokenKind.GT,
    TokenKind.LTE,
    TokenKind.GTE,
    TokenKind.EQEQ,
    TokenKind.EQEQEQ,
    TokenKind.NEQ,
    TokenKind.MATCH,
    TokenKind.NMATCH,
    TokenKind.SPACESHIP,
    TokenKind.LSHIFT,
    TokenKind.RSHIFT,
    TokenKind.LBRACKET,
    TokenKind.RBRACKET,
    TokenKind.ASSIGN,
}


# Keywords that are still legal as method, parameter or keyword-argument names.
NAME_KEYWORD_TOKENS: set[TokenKind] = set(KEYWORDS.values())

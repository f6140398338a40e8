from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sigdb.lexer import SourceSpan


class DiagnosticCode(str, Enum):
    SYNTAX = "syntax"
    KIND_CONFLICT = "kind-conflict"
    SUPERCLASS_CONFLICT = "superclass-conflict"
    GENERIC_ARITY = "generic-arity"
    INVALID_DECLARATION = "invalid-declaration"
    UNKNOWN_TYPE = "unknown-type"
    AMBIGUOUS_NAME = "ambiguous-name"
    INVALID_SUPERCLASS = "invalid-superclass"
    INVALID_MIXIN = "invalid-mixin"
    VARIANCE = "variance"
    INHERITANCE_CYCLE = "inheritance-cycle"
    RECURSIVE_ALIAS = "recursive-alias"


@dataclass(frozen=True)
class Diagnostic:
    code: DiagnosticCode
    message: str
    span: SourceSpan | None = None

    def __str__(self) -> str:
        if self.span is None:
            return f"[{self.code.value}] {self.message}"
        start = self.span.start
        return f"{start.path}:{start.line}:{start.column}: [{self.code.value}] {self.message}"

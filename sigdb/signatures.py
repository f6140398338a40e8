from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from sigdb.lexer import SourceSpan
from sigdb.types import VOID, TypeExpr, TypeName, TypeParam


class ParamKind(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    REST = "rest"
    KEYWORD_REQUIRED = "keyword_required"
    KEYWORD_OPTIONAL = "keyword_optional"
    KEYWORD_REST = "keyword_rest"


POSITIONAL_KINDS = {ParamKind.REQUIRED, ParamKind.OPTIONAL, ParamKind.REST}
KEYWORD_KINDS = {ParamKind.KEYWORD_REQUIRED, ParamKind.KEYWORD_OPTIONAL, ParamKind.KEYWORD_REST}


class Scope(str, Enum):
    INSTANCE = "instance"
    SINGLETON = "singleton"


class Visibility(str, Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"


@dataclass(frozen=True)
class Parameter:
    type: TypeExpr
    kind: ParamKind = ParamKind.REQUIRED
    name: str | None = None


@dataclass(frozen=True)
class BlockSignature:
    signature: "MethodSignature"
    required: bool = True
    self_type: TypeExpr | None = None


@dataclass(frozen=True)
class MethodSignature:
    """One overload: positional and keyword parameters, return type and optional block.

    Positional parameters follow the order required*, optional*, rest?, required*
    (the trailing required parameters bind after the rest). Keyword parameters
    may appear in any order but at most one keyword rest is allowed.
    """

    positional: tuple[Parameter, ...] = ()
    keyword: tuple[Parameter, ...] = ()
    return_type: TypeExpr = VOID
    block: BlockSignature | None = None
    type_params: tuple[TypeParam, ...] = ()

    def __post_init__(self) -> None:
        stage = 0
        for param in self.positional:
            if param.kind not in POSITIONAL_KINDS:
                raise ValueError(f"Parameter kind '{param.kind.value}' is not positional")
            if param.kind == ParamKind.REQUIRED:
                if stage == 1:
                    raise ValueError("Required positional parameter after optional parameter")
                if stage == 2:
                    stage = 3
            elif param.kind == ParamKind.OPTIONAL:
                if stage >= 2:
                    raise ValueError("Optional positional parameter after rest parameter")
                stage = 1
            else:
                if stage >= 2:
                    raise ValueError("Duplicate rest parameter")
                stage = 2

        keyword_names: set[str] = set()
        keyword_rest = 0
        for param in self.keyword:
            if param.kind not in KEYWORD_KINDS:
                raise ValueError(f"Parameter kind '{param.kind.value}' is not a keyword kind")
            if param.kind == ParamKind.KEYWORD_REST:
                keyword_rest += 1
                continue
            if param.name is None:
                raise ValueError("Keyword parameter requires a name")
            if param.name in keyword_names:
                raise ValueError(f"Duplicate keyword parameter '{param.name}'")
            keyword_names.add(param.name)
        if keyword_rest > 1:
            raise ValueError("Duplicate keyword rest parameter")

    @property
    def leading_required(self) -> tuple[Parameter, ...]:
        result = []
        for param in self.positional:
            if param.kind != ParamKind.REQUIRED:
                break
            result.append(param)
        return tuple(result)

    @property
    def optional_positionals(self) -> tuple[Parameter, ...]:
        return tuple(param for param in self.positional if param.kind == ParamKind.OPTIONAL)

    @property
    def rest(self) -> Parameter | None:
        return next((param for param in self.positional if param.kind == ParamKind.REST), None)

    @property
    def trailing_required(self) -> tuple[Parameter, ...]:
        leading = len(self.leading_required)
        return tuple(
            param for param in self.positional[leading:] if param.kind == ParamKind.REQUIRED
        )

    @property
    def required_keywords(self) -> tuple[Parameter, ...]:
        return tuple(param for param in self.keyword if param.kind == ParamKind.KEYWORD_REQUIRED)

    @property
    def keyword_rest(self) -> Parameter | None:
        return next((param for param in self.keyword if param.kind == ParamKind.KEYWORD_REST), None)

    def keyword_param(self, name: str) -> Parameter | None:
        return next(
            (param for param in self.keyword if param.name == name and param.kind != ParamKind.KEYWORD_REST),
            None,
        )

    def arity_range(self) -> tuple[int, int | None]:
        required = sum(1 for param in self.positional if param.kind == ParamKind.REQUIRED)
        if self.rest is not None:
            return required, None
        return required, required + len(self.optional_positionals)

    def accepts_keyword(self, name: str) -> bool:
        return self.keyword_param(name) is not None or self.keyword_rest is not None


def arity_overlaps(left: tuple[int, int | None], right: tuple[int, int | None]) -> bool:
    left_min, left_max = left
    right_min, right_max = right
    if left_max is not None and left_max < right_min:
        return False
    if right_max is not None and right_max < left_min:
        return False
    return True


@dataclass(frozen=True)
class Overload:
    signature: MethodSignature
    context: tuple[TypeName, ...] = ()
    annotations: tuple[str, ...] = ()
    span: SourceSpan | None = field(default=None, compare=False)


@dataclass(frozen=True)
class OverloadSet:
    name: str
    owner: TypeName
    scope: Scope
    visibility: Visibility
    overloads: tuple[Overload, ...]
    overloading: bool = False

    def __post_init__(self) -> None:
        if not self.overloads:
            raise ValueError(f"Overload set for '{self.name}' must not be empty")

    @property
    def signatures(self) -> tuple[MethodSignature, ...]:
        return tuple(overload.signature for overload in self.overloads)

    def __len__(self) -> int:
        return len(self.overloads)

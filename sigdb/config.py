from __future__ import annotations

from dataclasses import dataclass, field

from sigdb.types import TypeName


def _core(name: str) -> TypeName:
    return TypeName(path=(name,), absolute=True)


@dataclass(frozen=True)
class CoreNames:
    """Absolute names of the core classes the engine gives special meaning to."""

    basic_object: TypeName = _core("BasicObject")
    object: TypeName = _core("Object")
    module: TypeName = _core("Module")
    klass: TypeName = _core("Class")
    nil_class: TypeName = _core("NilClass")
    true_class: TypeName = _core("TrueClass")
    false_class: TypeName = _core("FalseClass")
    integer: TypeName = _core("Integer")
    string: TypeName = _core("String")
    symbol: TypeName = _core("Symbol")
    array: TypeName = _core("Array")
    hash: TypeName = _core("Hash")
    proc: TypeName = _core("Proc")


@dataclass(frozen=True)
class SessionConfig:
    core_names: CoreNames = field(default_factory=CoreNames)
    # Structurally equal overloads added twice (e.g. by reloading a file) are kept once.
    dedupe_overloads: bool = True

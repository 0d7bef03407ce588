from __future__ import annotations

import enum

from lsprotocol.types import CodeActionKind

QUICKFIX = CodeActionKind.QuickFix.value
SOURCE_FIX_ALL = CodeActionKind.SourceFixAll.value


def kind_value(kind: object) -> str:
    if kind is None:
        return ""
    if isinstance(kind, enum.Enum):
        return str(kind.value)
    return str(kind)


def kind_matches(kind: object, prefix: str) -> bool:
    """Hierarchical kind match: ``source.fixAll.eslint`` matches ``source.fixAll``."""
    value = kind_value(kind)
    return value == prefix or value.startswith(prefix + ".")

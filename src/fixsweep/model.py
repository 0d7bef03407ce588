from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Optional, TypeAlias, Union

from lsprotocol.types import CodeAction, Command, Diagnostic, Range

from fixsweep.invariants import never
from fixsweep.kinds import kind_value

Action: TypeAlias = Union[CodeAction, Command]
ProviderId: TypeAlias = Hashable


class ActionShape(str, Enum):
    EMPTY = "empty"
    EDIT = "edit"
    COMMAND = "command"
    EDIT_AND_COMMAND = "edit+command"
    BARE_COMMAND = "bare_command"


def shape_of(action: Action) -> ActionShape:
    if isinstance(action, Command):
        return ActionShape.BARE_COMMAND
    if not isinstance(action, CodeAction):
        never("unknown action type", action_type=type(action).__name__)
    if action.edit is not None and action.command is not None:
        return ActionShape.EDIT_AND_COMMAND
    if action.edit is not None:
        return ActionShape.EDIT
    if action.command is not None:
        return ActionShape.COMMAND
    return ActionShape.EMPTY


def action_title(action: Action) -> str:
    return action.title or ""


def action_kind(action: Action) -> str:
    if isinstance(action, Command):
        return ""
    return kind_value(action.kind)


def is_preferred(action: Action) -> bool:
    if isinstance(action, Command):
        return False
    return bool(action.is_preferred)


def is_disabled(action: Action) -> bool:
    if isinstance(action, Command):
        return False
    return action.disabled is not None


@dataclass(frozen=True)
class EditorDiagnostic:
    """A diagnostic in editor coordinates (zero-based lines, code point columns).

    ``original`` is the diagnostic exactly as the provider published it; its
    range is in the provider's encoding and wins over anything derived from
    the editor coordinates.
    """

    line: int
    column: int
    message: str = ""
    end_line: Optional[int] = None
    end_column: Optional[int] = None
    range: Optional[Range] = None
    original: Optional[Diagnostic] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class ActionItem:
    provider_id: ProviderId
    action: Action
    provider_name: str = ""
    range: Optional[Range] = None

    @property
    def title(self) -> str:
        return action_title(self.action)

    @property
    def preferred(self) -> bool:
        return is_preferred(self.action)


def ranking_key(item: ActionItem) -> tuple[int, str]:
    return (0 if item.preferred else 1, item.title)


def rank_items(items: list[ActionItem]) -> list[ActionItem]:
    """Preferred actions first, then ascending title; stable otherwise."""
    return sorted(items, key=ranking_key)


def dedupe_items(items: list[ActionItem]) -> list[ActionItem]:
    seen: set[tuple[ProviderId, str]] = set()
    unique: list[ActionItem] = []
    for item in items:
        key = (item.provider_id, item.title)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique

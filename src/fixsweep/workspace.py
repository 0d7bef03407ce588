"""In-memory documents and the workspace edit applier that mutates them."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from lsprotocol.types import (
    Position,
    TextDocumentEdit,
    TextEdit,
    WorkspaceEdit,
)

from fixsweep.ranges import from_client_character

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")

LANGUAGE_IDS = {
    ".c": "c",
    ".cpp": "cpp",
    ".css": "css",
    ".go": "go",
    ".h": "c",
    ".html": "html",
    ".java": "java",
    ".js": "javascript",
    ".json": "json",
    ".jsx": "javascriptreact",
    ".lua": "lua",
    ".md": "markdown",
    ".py": "python",
    ".rb": "ruby",
    ".rs": "rust",
    ".sh": "shellscript",
    ".toml": "toml",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".yaml": "yaml",
    ".yml": "yaml",
}


def language_id_for(path: Path) -> str:
    return LANGUAGE_IDS.get(path.suffix.lower(), "plaintext")


@dataclass
class TextBuffer:
    uri: str
    text: str
    language_id: str = "plaintext"
    version: int = 0

    @classmethod
    def from_path(cls, path: Path, language_id: str | None = None) -> TextBuffer:
        resolved = path.resolve()
        with resolved.open(encoding="utf-8", newline="") as handle:
            text = handle.read()
        return cls(
            uri=resolved.as_uri(),
            text=text,
            language_id=language_id or language_id_for(resolved),
        )

    @property
    def lines(self) -> list[str]:
        """Lines without terminators; a trailing newline adds no empty line."""
        lines = _LINE_BREAK.split(self.text)
        if len(lines) > 1 and lines[-1] == "":
            lines.pop()
        return lines

    def _line_starts(self) -> list[int]:
        return [0] + [match.end() for match in _LINE_BREAK.finditer(self.text)]

    def offset_at(self, position: Position, encoding: str) -> int:
        starts = self._line_starts()
        if position.line >= len(starts):
            return len(self.text)
        start = starts[position.line]
        if position.line + 1 < len(starts):
            line_text = _LINE_BREAK.sub("", self.text[start : starts[position.line + 1]])
        else:
            line_text = self.text[start:]
        return start + from_client_character(line_text, position.character, encoding)

    def apply_text_edits(self, edits: Iterable[TextEdit], encoding: str) -> None:
        """Apply edits expressed against the current text, bottom-up."""
        spans = []
        for index, edit in enumerate(edits):
            start = self.offset_at(edit.range.start, encoding)
            end = self.offset_at(edit.range.end, encoding)
            spans.append((start, index, max(start, end), edit.new_text))
        text = self.text
        for start, _, end, new_text in sorted(spans, reverse=True):
            text = text[:start] + new_text + text[end:]
        self.text = text
        self.version += 1


ChangeListener = Callable[[TextBuffer], None]


class BufferEditApplier:
    """Applies workspace edits to the buffers registered with it."""

    def __init__(self, buffers: Iterable[TextBuffer] = ()) -> None:
        self._buffers: dict[str, TextBuffer] = {buffer.uri: buffer for buffer in buffers}
        self._listeners: list[ChangeListener] = []

    def on_change(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _collect(self, edit: WorkspaceEdit) -> dict[str, list[TextEdit]] | None:
        grouped: dict[str, list[TextEdit]] = {}
        if edit.document_changes:
            for change in edit.document_changes:
                if not isinstance(change, TextDocumentEdit):
                    logger.warning("unsupported resource operation: %s", type(change).__name__)
                    return None
                grouped.setdefault(change.text_document.uri, []).extend(change.edits)
            return grouped
        for uri, edits in (edit.changes or {}).items():
            grouped.setdefault(uri, []).extend(edits)
        return grouped

    def apply_workspace_edit(self, edit: WorkspaceEdit, encoding: str) -> bool:
        grouped = self._collect(edit)
        if grouped is None:
            return False
        missing = [uri for uri in grouped if uri not in self._buffers]
        if missing:
            logger.warning("edit targets unknown document(s): %s", ", ".join(missing))
            return False
        for uri, edits in grouped.items():
            if not edits:
                continue
            buffer = self._buffers[uri]
            buffer.apply_text_edits(edits, encoding)
            for listener in self._listeners:
                listener(buffer)
        return True

"""Protocol ranges for diagnostics and whole documents.

Editor coordinates count code points. Providers count in the position
encoding they negotiated (utf-8, utf-16 or utf-32 code units), so every range
sent to a provider is converted with that provider's encoding.
"""

from __future__ import annotations

from typing import Sequence

from lsprotocol.types import Diagnostic, Position, PositionEncodingKind, Range

from fixsweep.model import EditorDiagnostic
from fixsweep.protocols import TextDocument


def client_units(chars: str, encoding: str) -> int:
    """Length of ``chars`` in the code units of ``encoding`` (utf-16 if unknown)."""
    if encoding == PositionEncodingKind.Utf32:
        return len(chars)
    if encoding == PositionEncodingKind.Utf8:
        return len(chars.encode("utf-8", errors="surrogatepass"))
    return len(chars.encode("utf-16-le", errors="surrogatepass")) // 2


def _line_text(lines: Sequence[str], line: int) -> str:
    if 0 <= line < len(lines):
        return lines[line].rstrip("\r\n")
    return ""


def to_client_position(lines: Sequence[str], line: int, column: int, encoding: str) -> Position:
    text = _line_text(lines, line)
    units = client_units(text[: max(column, 0)], encoding)
    # Columns past the end of the line stay past the end.
    overflow = max(column - len(text), 0)
    return Position(line=line, character=units + overflow)


def from_client_character(text: str, character: int, encoding: str) -> int:
    units = 0
    for index, char in enumerate(text):
        if units >= character:
            return index
        units += client_units(char, encoding)
    return len(text)


def diagnostic_range(
    diagnostic: EditorDiagnostic, document: TextDocument, encoding: str
) -> Range:
    if diagnostic.original is not None and diagnostic.original.range is not None:
        return diagnostic.original.range
    if diagnostic.range is not None:
        return diagnostic.range
    start_line = diagnostic.line or 0
    start_column = diagnostic.column or 0
    end_line = diagnostic.end_line if diagnostic.end_line is not None else start_line
    end_column = (
        diagnostic.end_column if diagnostic.end_column is not None else start_column + 1
    )
    lines = document.lines
    return Range(
        start=to_client_position(lines, start_line, start_column, encoding),
        end=to_client_position(lines, end_line, end_column, encoding),
    )


def document_range(document: TextDocument, encoding: str) -> Range:
    lines = document.lines
    last = max(len(lines) - 1, 0)
    last_column = len(_line_text(lines, last))
    return Range(
        start=Position(line=0, character=0),
        end=to_client_position(lines, last, last_column, encoding),
    )


def diagnostic_context(diagnostic: EditorDiagnostic, rng: Range) -> Diagnostic:
    """The diagnostic to send in a code action context."""
    if diagnostic.original is not None and diagnostic.original.range is not None:
        return diagnostic.original
    return Diagnostic(range=rng, message=diagnostic.message or "")

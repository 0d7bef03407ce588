"""Latest published diagnostics, converted to editor coordinates on demand."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from lsprotocol.types import Diagnostic

from fixsweep.model import EditorDiagnostic, ProviderId
from fixsweep.protocols import TextDocument
from fixsweep.ranges import from_client_character


@dataclass(frozen=True)
class _Publication:
    encoding: str
    diagnostics: tuple[Diagnostic, ...]


def _column(lines: list[str] | tuple[str, ...], line: int, character: int, encoding: str) -> int:
    if 0 <= line < len(lines):
        return from_client_character(lines[line], character, encoding)
    return character


def to_editor_diagnostic(
    diagnostic: Diagnostic, lines: list[str] | tuple[str, ...], encoding: str
) -> EditorDiagnostic:
    start = diagnostic.range.start
    end = diagnostic.range.end
    return EditorDiagnostic(
        line=start.line,
        column=_column(lines, start.line, start.character, encoding),
        end_line=end.line,
        end_column=_column(lines, end.line, end.character, encoding),
        message=diagnostic.message,
        original=diagnostic,
        source=diagnostic.source,
    )


class DiagnosticStore:
    def __init__(self) -> None:
        self._by_uri: dict[str, dict[ProviderId, _Publication]] = {}
        self._arrivals: dict[str, asyncio.Event] = {}

    def _arrival(self, uri: str) -> asyncio.Event:
        event = self._arrivals.get(uri)
        if event is None:
            event = self._arrivals[uri] = asyncio.Event()
        return event

    def publish(
        self,
        provider_id: ProviderId,
        uri: str,
        diagnostics: list[Diagnostic],
        encoding: str = "utf-16",
    ) -> None:
        self._by_uri.setdefault(uri, {})[provider_id] = _Publication(
            encoding=encoding, diagnostics=tuple(diagnostics)
        )
        self._arrival(uri).set()

    def forget(self, provider_id: ProviderId) -> None:
        for publications in self._by_uri.values():
            publications.pop(provider_id, None)

    async def wait_for(self, uri: str, timeout: float) -> bool:
        """Wait until some provider published for ``uri``; False on timeout."""
        try:
            await asyncio.wait_for(self._arrival(uri).wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def diagnostics_for(self, document: TextDocument) -> list[EditorDiagnostic]:
        lines = list(document.lines)
        snapshot: list[EditorDiagnostic] = []
        for publication in self._by_uri.get(document.uri, {}).values():
            for diagnostic in publication.diagnostics:
                snapshot.append(to_editor_diagnostic(diagnostic, lines, publication.encoding))
        return snapshot

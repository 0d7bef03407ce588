"""Contracts the remediation core needs from its host."""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

from lsprotocol.types import MessageType, WorkspaceEdit

from fixsweep.model import EditorDiagnostic, ProviderId


@runtime_checkable
class TextDocument(Protocol):
    uri: str

    @property
    def lines(self) -> Sequence[str]: ...


@runtime_checkable
class Provider(Protocol):
    id: ProviderId
    name: str

    @property
    def offset_encoding(self) -> str: ...

    def supports_method(self, method: str) -> bool: ...

    async def request(self, method: str, params: Any) -> Any:
        """Send ``method`` and return the result.

        Raises ProviderRequestError when the provider replies with an error.
        """
        ...


@runtime_checkable
class ProviderRegistry(Protocol):
    def providers_for(self, document: TextDocument) -> list[Provider]: ...

    def get(self, provider_id: ProviderId) -> Provider | None: ...


@runtime_checkable
class DiagnosticSource(Protocol):
    def diagnostics_for(self, document: TextDocument) -> list[EditorDiagnostic]: ...


@runtime_checkable
class EditApplier(Protocol):
    def apply_workspace_edit(self, edit: WorkspaceEdit, encoding: str) -> bool: ...


@runtime_checkable
class Selector(Protocol):
    async def select(
        self, entries: Sequence[str], *, prompt: str, multi: bool = True
    ) -> list[int]:
        """Return the indices of the chosen entries; empty when cancelled."""
        ...


@runtime_checkable
class NotificationSink(Protocol):
    def notify(self, message: str, severity: MessageType = MessageType.Info) -> None: ...

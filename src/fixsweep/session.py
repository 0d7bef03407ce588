from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from fixsweep.config import FixsweepSettings, ServerSpec
from fixsweep.diagnostics import DiagnosticStore
from fixsweep.exceptions import LspClientError
from fixsweep.host import RemediationHost
from fixsweep.lsp_client import StdioLanguageServer
from fixsweep.protocols import NotificationSink, Selector
from fixsweep.registry import StaticProviderRegistry
from fixsweep.workspace import BufferEditApplier, TextBuffer

logger = logging.getLogger(__name__)

ServerFactory = Callable[..., StdioLanguageServer]


class Session:
    """One file opened in every configured language server that handles it.

    Use as an async context manager: entering starts the servers, opens the
    buffer and waits for the first diagnostics; leaving shuts them down.
    """

    def __init__(
        self,
        path: Path,
        settings: FixsweepSettings,
        *,
        notifier: NotificationSink,
        selector: Selector | None = None,
        root: Path | None = None,
        server_factory: ServerFactory = StdioLanguageServer,
    ) -> None:
        self.path = path
        self.settings = settings
        self.root = (root or Path.cwd()).resolve()
        self.buffer = TextBuffer.from_path(path)
        self.original_text = self.buffer.text
        self.registry = StaticProviderRegistry()
        self.diagnostics = DiagnosticStore()
        self.edit_applier = BufferEditApplier([self.buffer])
        self.edit_applier.on_change(self._sync)
        self.servers: list[StdioLanguageServer] = []
        self._dropped: list[StdioLanguageServer] = []
        self._server_factory = server_factory
        self.host = RemediationHost(
            registry=self.registry,
            diagnostics=self.diagnostics,
            edit_applier=self.edit_applier,
            notifier=notifier,
            selector=selector,
            settings=settings,
        )

    @property
    def changed(self) -> bool:
        return self.buffer.text != self.original_text

    def _specs(self) -> list[ServerSpec]:
        return [spec for spec in self.settings.servers if spec.handles(self.buffer.language_id)]

    async def _start(self, spec: ServerSpec, index: int) -> None:
        server = self._server_factory(
            spec.name,
            spec.command,
            root_uri=self.root.as_uri(),
            provider_id=f"{spec.name}#{index}",
            edit_applier=self.edit_applier,
            diagnostics=self.diagnostics,
            request_timeout=self.settings.request_timeout,
        )
        try:
            await server.start()
        except LspClientError as exc:
            self.host.warn(f"Could not start {spec.name}: {exc}")
            await server.shutdown()
            return
        self.servers.append(server)
        self.registry.register(server, [self.buffer.uri])
        server.did_open(self.buffer)

    def _sync(self, buffer: TextBuffer) -> None:
        for server in list(self.servers):
            try:
                server.did_change(buffer)
            except LspClientError as exc:
                logger.warning("could not sync %s: %s", server.name, exc)
                self._drop(server)

    def _drop(self, server: StdioLanguageServer) -> None:
        self.servers.remove(server)
        self._dropped.append(server)
        self.registry.remove(server.id)
        self.diagnostics.forget(server.id)

    async def __aenter__(self) -> Session:
        for index, spec in enumerate(self._specs()):
            await self._start(spec, index)
        if self.servers:
            arrived = await self.diagnostics.wait_for(
                self.buffer.uri, self.settings.diagnostics_wait
            )
            if not arrived:
                logger.info("no diagnostics published for %s yet", self.buffer.uri)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        for server in self.servers:
            await server.shutdown()
            self.registry.remove(server.id)
        for server in self._dropped:
            await server.shutdown()
        self.servers.clear()
        self._dropped.clear()

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import os
from typing import Any, Awaitable, Callable

from cattrs.errors import BaseValidationError
from lsprotocol.converters import get_converter
from lsprotocol.types import (
    CODE_ACTION_RESOLVE,
    TEXT_DOCUMENT_CODE_ACTION,
    WORKSPACE_EXECUTE_COMMAND,
    ApplyWorkspaceEditParams,
    CodeAction,
    CodeActionKind,
    CodeActionOptions,
    Command,
    PublishDiagnosticsParams,
    ServerCapabilities,
)

from fixsweep.diagnostics import DiagnosticStore
from fixsweep.exceptions import LspClientError, ProviderRequestError
from fixsweep.kinds import kind_value
from fixsweep.protocols import EditApplier
from fixsweep.workspace import TextBuffer

logger = logging.getLogger(__name__)

_converter = get_converter()

METHOD_NOT_FOUND = -32601

_MALFORMED = (BaseValidationError, KeyError, TypeError, ValueError)

ProcessFactory = Callable[..., Awaitable[asyncio.subprocess.Process]]


def _client_capabilities() -> dict[str, Any]:
    return {
        "general": {"positionEncodings": ["utf-8", "utf-16", "utf-32"]},
        "textDocument": {
            "synchronization": {"didSave": False},
            "publishDiagnostics": {"relatedInformation": True},
            "codeAction": {
                "codeActionLiteralSupport": {
                    "codeActionKind": {"valueSet": [kind.value for kind in CodeActionKind]}
                },
                "isPreferredSupport": True,
                "disabledSupport": True,
                "dataSupport": True,
                "resolveSupport": {"properties": ["edit", "command"]},
            },
        },
        "workspace": {
            "applyEdit": True,
            "configuration": True,
            "workspaceEdit": {"documentChanges": True},
        },
        "window": {"workDoneProgress": True},
    }


async def _read_rpc(reader: asyncio.StreamReader) -> dict[str, Any]:
    try:
        head = await reader.readuntil(b"\r\n\r\n")
    except asyncio.IncompleteReadError as exc:
        raise LspClientError("LSP stream closed") from exc
    except asyncio.LimitOverrunError as exc:
        raise LspClientError("LSP header too long") from exc
    length = 0
    for line in head.split(b"\r\n"):
        if line.lower().startswith(b"content-length:"):
            try:
                length = int(line.split(b":", 1)[1].strip())
            except ValueError as exc:
                raise LspClientError("Invalid LSP Content-Length") from exc
            break
    if length <= 0:
        raise LspClientError("Invalid LSP Content-Length")
    try:
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError as exc:
        raise LspClientError("LSP stream closed") from exc
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise LspClientError("Invalid LSP message payload") from exc
    if not isinstance(message, dict):
        raise LspClientError("Invalid LSP message payload")
    return message


def _write_rpc(writer: asyncio.StreamWriter, message: dict[str, Any]) -> None:
    payload = json.dumps(message).encode("utf-8")
    header = f"Content-Length: {len(payload)}\r\n\r\n".encode("utf-8")
    writer.write(header + payload)


def structure_code_actions(result: Any) -> list[CodeAction | Command]:
    actions: list[CodeAction | Command] = []
    for item in result or ():
        if not isinstance(item, dict):
            continue
        # A Command literal carries its command name as a plain string.
        if isinstance(item.get("command"), str):
            actions.append(_converter.structure(item, Command))
        else:
            actions.append(_converter.structure(item, CodeAction))
    return actions


class StdioLanguageServer:
    """A language server subprocess speaking JSON-RPC over stdin/stdout."""

    def __init__(
        self,
        name: str,
        command: list[str],
        *,
        root_uri: str,
        provider_id: str | None = None,
        edit_applier: EditApplier | None = None,
        diagnostics: DiagnosticStore | None = None,
        request_timeout: float | None = None,
        process_factory: ProcessFactory = asyncio.create_subprocess_exec,
    ) -> None:
        self.id = provider_id or name
        self.name = name
        self.command = list(command)
        self.root_uri = root_uri
        self.edit_applier = edit_applier
        self.diagnostics = diagnostics
        self.request_timeout = request_timeout
        self.capabilities: ServerCapabilities | None = None
        self._process_factory = process_factory
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._registered: set[str] = set()
        self._encoding = "utf-16"

    @property
    def offset_encoding(self) -> str:
        return self._encoding

    # -- lifecycle -------------------------------------------------------

    async def start(self) -> None:
        try:
            self._process = await self._process_factory(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise LspClientError(f"could not start {self.name}: {exc}") from exc
        self._reader_task = asyncio.get_running_loop().create_task(self._read_loop())
        await self.initialize()

    async def initialize(self) -> ServerCapabilities:
        params = {
            "processId": os.getpid(),
            "rootUri": self.root_uri,
            "capabilities": _client_capabilities(),
            "clientInfo": {"name": "fixsweep"},
        }
        try:
            result = await self._call("initialize", params)
        except ProviderRequestError as exc:
            raise LspClientError(f"{self.name} refused to initialize: {exc}") from exc
        raw_capabilities = (result or {}).get("capabilities", {})
        try:
            self.capabilities = _converter.structure(raw_capabilities, ServerCapabilities)
        except _MALFORMED as exc:
            raise LspClientError(f"{self.name} sent unreadable capabilities: {exc}") from exc
        self._encoding = kind_value(self.capabilities.position_encoding) or "utf-16"
        self._notify("initialized", {})
        return self.capabilities

    async def shutdown(self, timeout: float = 5.0) -> None:
        process = self._process
        if process is None:
            return
        try:
            await asyncio.wait_for(self._call("shutdown", None), timeout)
            self._notify("exit", None)
            await asyncio.wait_for(process.wait(), timeout)
        except (LspClientError, ProviderRequestError, asyncio.TimeoutError) as exc:
            logger.info("%s did not shut down cleanly: %s", self.name, exc)
            if process.returncode is None:
                process.kill()
                await process.wait()
        finally:
            if self._reader_task is not None:
                self._reader_task.cancel()
            self._process = None

    # -- provider contract -----------------------------------------------

    def supports_method(self, method: str) -> bool:
        if method in self._registered:
            return True
        capabilities = self.capabilities
        if capabilities is None:
            return False
        if method == TEXT_DOCUMENT_CODE_ACTION:
            return bool(capabilities.code_action_provider)
        if method == CODE_ACTION_RESOLVE:
            provider = capabilities.code_action_provider
            return isinstance(provider, CodeActionOptions) and bool(provider.resolve_provider)
        if method == WORKSPACE_EXECUTE_COMMAND:
            return capabilities.execute_command_provider is not None
        return False

    async def request(self, method: str, params: Any) -> Any:
        try:
            result = await self._call(method, _converter.unstructure(params))
        except LspClientError as exc:
            raise ProviderRequestError(str(exc), method=method) from exc
        try:
            if method == TEXT_DOCUMENT_CODE_ACTION:
                return structure_code_actions(result)
            if method == CODE_ACTION_RESOLVE:
                # A bare command may come back as a bare command.
                resolved = structure_code_actions([result]) if result else []
                return resolved[0] if resolved else None
        except _MALFORMED as exc:
            raise ProviderRequestError(
                f"malformed {method} result from {self.name}: {exc}", method=method
            ) from exc
        return result

    # -- document sync ---------------------------------------------------

    def did_open(self, buffer: TextBuffer) -> None:
        self._notify(
            "textDocument/didOpen",
            {
                "textDocument": {
                    "uri": buffer.uri,
                    "languageId": buffer.language_id,
                    "version": buffer.version,
                    "text": buffer.text,
                }
            },
        )

    def did_change(self, buffer: TextBuffer) -> None:
        self._notify(
            "textDocument/didChange",
            {
                "textDocument": {"uri": buffer.uri, "version": buffer.version},
                "contentChanges": [{"text": buffer.text}],
            },
        )

    # -- transport -------------------------------------------------------

    def _writer(self) -> asyncio.StreamWriter:
        if self._process is None or self._process.stdin is None:
            raise LspClientError(f"{self.name} is not running")
        return self._process.stdin

    def _notify(self, method: str, params: Any) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        _write_rpc(self._writer(), message)

    async def _call(self, method: str, params: Any) -> Any:
        request_id = next(self._ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params
        try:
            writer = self._writer()
            _write_rpc(writer, message)
            await writer.drain()
            if self.request_timeout is None:
                return await future
            return await asyncio.wait_for(future, self.request_timeout)
        except asyncio.TimeoutError as exc:
            raise LspClientError(f"{method} to {self.name} timed out") from exc
        except (ConnectionError, OSError) as exc:
            raise LspClientError(f"{self.name} connection lost: {exc}") from exc
        finally:
            self._pending.pop(request_id, None)

    async def _read_loop(self) -> None:
        process = self._process
        assert process is not None and process.stdout is not None
        try:
            while True:
                message = await _read_rpc(process.stdout)
                self._dispatch(message)
        except LspClientError as exc:
            logger.info("%s stream ended: %s", self.name, exc)
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(LspClientError(f"{self.name} exited"))

    def _dispatch(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        if method is None:
            future = self._pending.get(message.get("id"))  # type: ignore[arg-type]
            if future is None or future.done():
                return
            error = message.get("error")
            if error:
                future.set_exception(
                    ProviderRequestError(
                        f"LSP error: {error.get('message', error)}",
                        code=error.get("code"),
                    )
                )
            else:
                future.set_result(message.get("result"))
            return
        if "id" in message:
            self._answer(message["id"], method, message.get("params"))
            return
        self._on_notification(method, message.get("params"))

    def _answer(self, request_id: Any, method: str, params: Any) -> None:
        response: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id}
        if method == "workspace/applyEdit":
            response["result"] = {"applied": self._apply_edit(params)}
        elif method == "workspace/configuration":
            response["result"] = [None for _ in (params or {}).get("items", [])]
        elif method == "client/registerCapability":
            for registration in (params or {}).get("registrations", []):
                self._registered.add(registration.get("method", ""))
            response["result"] = None
        elif method in ("client/unregisterCapability", "window/workDoneProgress/create"):
            response["result"] = None
        else:
            response["error"] = {"code": METHOD_NOT_FOUND, "message": f"unsupported: {method}"}
        _write_rpc(self._writer(), response)

    def _apply_edit(self, params: Any) -> bool:
        if self.edit_applier is None:
            return False
        try:
            request = _converter.structure(params, ApplyWorkspaceEditParams)
        except _MALFORMED as exc:
            logger.warning("%s sent a malformed workspace/applyEdit: %s", self.name, exc)
            return False
        return self.edit_applier.apply_workspace_edit(request.edit, self.offset_encoding)

    def _on_notification(self, method: str, params: Any) -> None:
        if method == "textDocument/publishDiagnostics" and self.diagnostics is not None:
            try:
                published = _converter.structure(params, PublishDiagnosticsParams)
            except _MALFORMED as exc:
                logger.warning("%s published malformed diagnostics: %s", self.name, exc)
                return
            self.diagnostics.publish(
                self.id, published.uri, list(published.diagnostics), self.offset_encoding
            )
        elif method in ("window/showMessage", "window/logMessage"):
            logger.debug("%s: %s", self.name, (params or {}).get("message", ""))

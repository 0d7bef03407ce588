from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

from fixsweep.lsp_client import StdioLanguageServer

Reply = dict[str, Any] | None
Handler = Callable[[Any], Reply]


def rpc_frame(message: dict[str, Any]) -> bytes:
    body = json.dumps(message).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("utf-8")
    return header + body


class _FakeStdin:
    def __init__(self, process: FakeServerProcess) -> None:
        self._process = process
        self._buffer = b""

    def write(self, data: bytes) -> None:
        self._buffer += data
        while True:
            head_end = self._buffer.find(b"\r\n\r\n")
            if head_end < 0:
                return
            length = 0
            for line in self._buffer[:head_end].split(b"\r\n"):
                if line.lower().startswith(b"content-length:"):
                    length = int(line.split(b":", 1)[1].strip())
            body_start = head_end + 4
            if len(self._buffer) < body_start + length:
                return
            body = self._buffer[body_start : body_start + length]
            self._buffer = self._buffer[body_start + length :]
            self._process.receive(json.loads(body.decode("utf-8")))

    async def drain(self) -> None:
        return None


class FakeServerProcess:
    """Stands in for a language server subprocess.

    Requests written to stdin are answered through ``handlers``: a handler
    returns ``{"result": ...}`` or ``{"error": ...}``, or None to stay silent.
    Unknown requests get a method-not-found error.
    """

    def __init__(
        self,
        capabilities: dict[str, Any] | None = None,
        handlers: dict[str, Handler] | None = None,
    ) -> None:
        self.stdout = asyncio.StreamReader()
        self.stdin = _FakeStdin(self)
        self.returncode: int | None = None
        self.received: list[dict[str, Any]] = []
        self.argv: tuple[str, ...] = ()
        self.handlers: dict[str, Handler] = {
            "initialize": lambda _params: {"result": {"capabilities": capabilities or {}}},
            "shutdown": lambda _params: {"result": None},
        }
        self.handlers.update(handlers or {})
        self._exited = asyncio.Event()

    def receive(self, message: dict[str, Any]) -> None:
        self.received.append(message)
        method = message.get("method")
        if method == "exit":
            self._finish(0)
            return
        if method is None:
            return
        handler = self.handlers.get(method)
        if "id" not in message:
            # A notification handler may answer with a server-initiated message.
            pushed = handler(message.get("params")) if handler else None
            if pushed is not None:
                self.send(pushed)
            return
        if handler is None:
            reply: Reply = {"error": {"code": -32601, "message": f"no {method}"}}
        else:
            reply = handler(message.get("params"))
        if reply is not None:
            self.send({"id": message["id"], **reply})

    def send(self, message: dict[str, Any]) -> None:
        self.stdout.feed_data(rpc_frame({"jsonrpc": "2.0", **message}))

    def close_stream(self) -> None:
        self.stdout.feed_eof()

    def _finish(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
            self.stdout.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def kill(self) -> None:
        self._finish(-9)

    def methods(self) -> list[str]:
        return [message["method"] for message in self.received if "method" in message]

    def notifications(self, method: str) -> list[Any]:
        return [
            message.get("params")
            for message in self.received
            if message.get("method") == method and "id" not in message
        ]

    def response_to(self, request_id: Any) -> dict[str, Any] | None:
        for message in self.received:
            if "method" not in message and message.get("id") == request_id:
                return message
        return None


def process_factory(process: FakeServerProcess):
    async def _factory(*argv: str, **_kwargs: Any) -> FakeServerProcess:
        process.argv = argv
        return process

    return _factory


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


SAMPLE_SOURCE = "import os\nx = 1\n"

UNUSED_IMPORT = {
    "range": {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 9}},
    "message": "`os` imported but unused",
}


def publish_on_open(params: dict[str, Any]) -> dict[str, Any]:
    return {
        "method": "textDocument/publishDiagnostics",
        "params": {"uri": params["textDocument"]["uri"], "diagnostics": [UNUSED_IMPORT]},
    }


def fix_all_actions(params: dict[str, Any]) -> dict[str, Any]:
    """Offer one fix-all that drops the first line; nothing else."""
    if params["context"].get("only") != ["source.fixAll"]:
        return {"result": []}
    uri = params["textDocument"]["uri"]
    return {
        "result": [
            {
                "title": "Fix all",
                "kind": "source.fixAll",
                "edit": {
                    "changes": {
                        uri: [
                            {
                                "range": {
                                    "start": {"line": 0, "character": 0},
                                    "end": {"line": 1, "character": 0},
                                },
                                "newText": "",
                            }
                        ]
                    }
                },
            }
        ]
    }


class FakeServerFactory:
    """Builds clients wired to fake processes; names in ``broken`` fail to spawn."""

    def __init__(self, *, broken: tuple[str, ...] = ()) -> None:
        self.broken = set(broken)
        self.processes: dict[str, FakeServerProcess] = {}

    def __call__(self, name: str, command: list[str], **kwargs: Any) -> StdioLanguageServer:
        if name in self.broken:

            async def refuse(*_argv: str, **_kw: Any) -> Any:
                raise FileNotFoundError(command[0])

            return StdioLanguageServer(name, command, process_factory=refuse, **kwargs)
        process = FakeServerProcess(
            {"codeActionProvider": True},
            {
                "textDocument/didOpen": publish_on_open,
                "textDocument/codeAction": fix_all_actions,
            },
        )
        self.processes[name] = process
        return StdioLanguageServer(
            name, command, process_factory=process_factory(process), **kwargs
        )

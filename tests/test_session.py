from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from lsprotocol.types import Diagnostic, MessageType

from fixsweep.config import FixsweepSettings, ServerSpec
from fixsweep.exceptions import LspClientError
from fixsweep.orchestrator import apply_all
from fixsweep.session import Session

from tests.harness.lsp_harness import SAMPLE_SOURCE, FakeServerFactory
from tests.harness.provider_harness import RecordingSink, make_range


def _settings(*servers: ServerSpec) -> FixsweepSettings:
    return FixsweepSettings(
        servers=list(servers), settle_delay_ms=0, diagnostics_wait_ms=1000
    )


def _sample(tmp_path: Path) -> Path:
    path = tmp_path / "sample.py"
    path.write_text(SAMPLE_SOURCE, encoding="utf-8")
    return path


def test_session_starts_matching_servers_and_collects_diagnostics(tmp_path: Path) -> None:
    factory = FakeServerFactory()
    settings = _settings(
        ServerSpec(name="py", command=["py-ls"], languages=["python"]),
        ServerSpec(name="lua", command=["lua-ls"], languages=["lua"]),
    )

    async def scenario() -> None:
        async with Session(
            _sample(tmp_path),
            settings,
            notifier=RecordingSink(),
            root=tmp_path,
            server_factory=factory,
        ) as session:
            assert [server.id for server in session.servers] == ["py#0"]
            [provider] = session.registry.providers_for(session.buffer)
            assert provider.id == "py#0"
            [diagnostic] = session.diagnostics.diagnostics_for(session.buffer)
            assert diagnostic.message == "`os` imported but unused"
        assert session.servers == []
        assert session.registry.all() == []

    asyncio.run(scenario())
    assert list(factory.processes) == ["py"]
    assert factory.processes["py"].returncode == 0


def test_session_applies_fix_all_and_syncs_servers(tmp_path: Path) -> None:
    factory = FakeServerFactory()
    settings = _settings(ServerSpec(name="py", command=["py-ls"]))

    async def scenario() -> Session:
        async with Session(
            _sample(tmp_path),
            settings,
            notifier=RecordingSink(),
            root=tmp_path,
            server_factory=factory,
        ) as session:
            outcome = await apply_all(session.host, session.buffer)
            assert outcome.fix_all_applied == 1
            assert outcome.quickfix_applied == 0
        return session

    session = asyncio.run(scenario())
    assert session.changed
    assert session.buffer.text == "x = 1\n"
    assert session.original_text == SAMPLE_SOURCE
    [change] = factory.processes["py"].notifications("textDocument/didChange")
    assert change["contentChanges"] == [{"text": "x = 1\n"}]


def test_session_warns_and_skips_server_that_fails_to_start(tmp_path: Path) -> None:
    factory = FakeServerFactory(broken=("broken",))
    sink = RecordingSink()
    settings = _settings(
        ServerSpec(name="broken", command=["missing-ls"]),
        ServerSpec(name="py", command=["py-ls"]),
    )

    async def scenario() -> None:
        async with Session(
            _sample(tmp_path), settings, notifier=sink, root=tmp_path, server_factory=factory
        ) as session:
            assert [server.id for server in session.servers] == ["py#1"]

    asyncio.run(scenario())
    [(severity, text)] = sink.messages
    assert severity == MessageType.Warning
    assert text.startswith("Could not start broken")


def test_session_drops_server_that_cannot_be_synced(tmp_path: Path) -> None:
    factory = FakeServerFactory()
    settings = _settings(ServerSpec(name="py", command=["py-ls"]))
    stale = Diagnostic(range=make_range(1, 0, 1), message="stale")

    class _Closed:
        id = "closed"
        name = "closed"
        offset_encoding = "utf-16"

        def __init__(self) -> None:
            self.changes = 0
            self.shut_down = False

        def did_change(self, _buffer: Any) -> None:
            self.changes += 1
            raise LspClientError("closed is not running")

        async def shutdown(self) -> None:
            self.shut_down = True

    closed = _Closed()

    async def scenario() -> None:
        async with Session(
            _sample(tmp_path),
            settings,
            notifier=RecordingSink(),
            root=tmp_path,
            server_factory=factory,
        ) as session:
            session.registry.register(closed, [session.buffer.uri])  # type: ignore[arg-type]
            session.servers.append(closed)  # type: ignore[arg-type]
            session.diagnostics.publish("closed", session.buffer.uri, [stale])
            session._sync(session.buffer)
            session._sync(session.buffer)
            assert closed not in session.servers
            assert session.registry.get("closed") is None
            messages = [d.message for d in session.diagnostics.diagnostics_for(session.buffer)]
            assert "stale" not in messages
            assert [server.id for server in session.servers] == ["py#0"]

    asyncio.run(scenario())
    assert closed.changes == 1
    assert closed.shut_down

from __future__ import annotations

import asyncio
import difflib
import re
import shlex
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import typer
from lsprotocol.types import MessageType

from fixsweep.config import FixsweepSettings, ServerSpec, load_settings
from fixsweep.exceptions import ConfigError
from fixsweep.logging_config import setup_logging
from fixsweep.orchestrator import apply_all
from fixsweep.picker import browse
from fixsweep.session import Session

app = typer.Typer(add_completion=False, help="Apply language server fixes to a file.")

_SEVERITY_COLORS = {
    MessageType.Error: typer.colors.RED,
    MessageType.Warning: typer.colors.YELLOW,
}


class EchoNotificationSink:
    def __init__(self, echo_fn: Callable[..., None] = typer.secho) -> None:
        self._echo = echo_fn
        self.messages: list[tuple[MessageType, str]] = []

    def notify(self, message: str, severity: MessageType = MessageType.Info) -> None:
        self.messages.append((severity, message))
        self._echo(
            message,
            fg=_SEVERITY_COLORS.get(severity),
            err=severity in (MessageType.Error, MessageType.Warning),
        )


def parse_selection(raw: str, count: int, *, multi: bool = True) -> list[int]:
    """Turn ``"1, 3-4"`` into zero-based indices, ignoring anything out of range."""
    picked: list[int] = []
    for token in re.split(r"[,\s]+", raw.strip()):
        if not token:
            continue
        start, _, end = token.partition("-")
        if not start.isdigit() or (end and not end.isdigit()):
            continue
        first = int(start)
        last = int(end) if end else first
        for number in range(first, last + 1):
            index = number - 1
            if 0 <= index < count and index not in picked:
                picked.append(index)
    return picked if multi else picked[:1]


class PromptSelector:
    def __init__(
        self,
        prompt_fn: Callable[..., str] = typer.prompt,
        echo_fn: Callable[[str], None] = typer.echo,
    ) -> None:
        self._prompt = prompt_fn
        self._echo = echo_fn

    def _ask(self, entries: Sequence[str], prompt: str, multi: bool) -> list[int]:
        self._echo(prompt)
        for number, entry in enumerate(entries, start=1):
            self._echo(f"{number:>3}. {entry}")
        hint = "numbers or ranges, comma separated" if multi else "one number"
        raw = self._prompt(f"Apply ({hint}; empty to cancel)", default="", show_default=False)
        return parse_selection(raw, len(entries), multi=multi)

    async def select(
        self, entries: Sequence[str], *, prompt: str, multi: bool = True
    ) -> list[int]:
        return await asyncio.to_thread(self._ask, entries, prompt, multi)


def _server_specs(commands: Sequence[str]) -> list[ServerSpec]:
    specs = []
    for raw in commands:
        argv = shlex.split(raw)
        if not argv:
            raise typer.BadParameter("empty --server command")
        specs.append(ServerSpec(name=Path(argv[0]).name, command=argv))
    return specs


def _settings(
    root: Path,
    config: Optional[Path],
    servers: Optional[List[str]],
    log_level: Optional[str],
) -> FixsweepSettings:
    overrides: dict[str, object] = {}
    if log_level:
        overrides["log_level"] = log_level
    try:
        settings = load_settings(root=root, config_path=config, overrides=overrides)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if servers:
        settings = settings.model_copy(update={"servers": _server_specs(servers)})
    if not settings.servers:
        raise typer.BadParameter(
            "no language servers configured; pass --server or add [[fixsweep.servers]]"
        )
    setup_logging(level=settings.log_level, json_logs=settings.json_logs)
    return settings


def _finish(session: Session, *, dry_run: bool) -> None:
    if not session.changed:
        return
    if dry_run:
        diff = difflib.unified_diff(
            session.original_text.splitlines(keepends=True),
            session.buffer.text.splitlines(keepends=True),
            fromfile=str(session.path),
            tofile=str(session.path),
        )
        typer.echo("".join(diff), nl=False)
        return
    with session.path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(session.buffer.text)
    typer.echo(f"Wrote {session.path}")


async def _run_apply(path: Path, root: Path, settings: FixsweepSettings, dry_run: bool) -> int:
    sink = EchoNotificationSink()
    async with Session(path, settings, notifier=sink, root=root) as session:
        outcome = await apply_all(session.host, session.buffer)
    _finish(session, dry_run=dry_run)
    return outcome.total


async def _run_browse(path: Path, root: Path, settings: FixsweepSettings, dry_run: bool) -> int:
    sink = EchoNotificationSink()
    async with Session(
        path, settings, notifier=sink, selector=PromptSelector(), root=root
    ) as session:
        outcome = await browse(session.host, session.buffer)
    _finish(session, dry_run=dry_run)
    return outcome.applied


@app.command("apply")
def apply_command(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    server: Optional[List[str]] = typer.Option(
        None, "--server", help="Language server command line (repeatable); overrides config."
    ),
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print a diff instead of writing."),
    log_level: Optional[str] = typer.Option(None, "--log-level"),
) -> None:
    """Apply every fix-all action, then every remaining quick fix."""
    settings = _settings(root, config, server, log_level)
    asyncio.run(_run_apply(path, root, settings, dry_run))


@app.command("browse")
def browse_command(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    server: Optional[List[str]] = typer.Option(
        None, "--server", help="Language server command line (repeatable); overrides config."
    ),
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print a diff instead of writing."),
    log_level: Optional[str] = typer.Option(None, "--log-level"),
) -> None:
    """List quick fixes for the file and apply the ones you choose."""
    settings = _settings(root, config, server, log_level)
    asyncio.run(_run_browse(path, root, settings, dry_run))


def main() -> None:  # pragma: no cover
    app()

"""Concurrent code action queries across providers.

Every request of a query is in flight at once; replies are folded into one
result list by a countdown that completes the batch exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from lsprotocol.types import (
    TEXT_DOCUMENT_CODE_ACTION,
    CodeActionContext,
    CodeActionKind,
    CodeActionParams,
    Range,
    TextDocumentIdentifier,
)

from fixsweep.exceptions import ProviderRequestError
from fixsweep.kinds import QUICKFIX, SOURCE_FIX_ALL, kind_matches
from fixsweep.model import (
    Action,
    ActionItem,
    EditorDiagnostic,
    action_kind,
    is_disabled,
    is_preferred,
)
from fixsweep.protocols import Provider, TextDocument
from fixsweep.ranges import diagnostic_context, diagnostic_range, document_range

logger = logging.getLogger(__name__)

ActionFilter = Callable[[Action], bool]


def _accept_all(action: Action) -> bool:
    return True


@dataclass(frozen=True)
class FanoutJob:
    provider: Provider
    params: CodeActionParams
    accept: ActionFilter = _accept_all
    range: Range | None = None


class RequestBatch:
    """Countdown over outstanding replies with an optional grace timeout.

    When the timeout fires first the batch completes with what it has;
    requests still in flight keep running but their replies are dropped.
    """

    def __init__(self, *, timeout: float | None = None) -> None:
        self.timeout = timeout
        self.pending = 0
        self.results: list[ActionItem] = []
        self._done: asyncio.Future[list[ActionItem]] = (
            asyncio.get_running_loop().create_future()
        )
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def completed(self) -> bool:
        return self._done.done()

    def launch(self, job: FanoutJob) -> None:
        self.pending += 1
        task = asyncio.get_running_loop().create_task(self._run(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, job: FanoutJob) -> None:
        reply = None
        try:
            reply = await job.provider.request(TEXT_DOCUMENT_CODE_ACTION, job.params)
        except ProviderRequestError as exc:
            logger.info("code action request to %s failed: %s", job.provider.name, exc)
        finally:
            self._settle(job, reply)

    def _settle(self, job: FanoutJob, reply: Sequence[Action] | None) -> None:
        self.pending -= 1
        if self.completed:
            logger.debug("dropping late reply from %s", job.provider.name)
            return
        for action in reply or ():
            if is_disabled(action) or not job.accept(action):
                continue
            self.results.append(
                ActionItem(
                    provider_id=job.provider.id,
                    provider_name=job.provider.name,
                    action=action,
                    range=job.range,
                )
            )
        if self.pending == 0:
            self._complete()

    def _complete(self) -> None:
        if not self._done.done():
            self._done.set_result(list(self.results))

    async def wait(self) -> list[ActionItem]:
        if self.pending == 0:
            self._complete()
        if self.timeout is None:
            return await self._done
        try:
            return await asyncio.wait_for(asyncio.shield(self._done), self.timeout)
        except asyncio.TimeoutError:
            logger.info("fan-out timed out with %d request(s) outstanding", self.pending)
            self._complete()
            return self._done.result()


async def fan_out(jobs: Iterable[FanoutJob], *, timeout: float | None = None) -> list[ActionItem]:
    batch = RequestBatch(timeout=timeout)
    for job in jobs:
        batch.launch(job)
    return await batch.wait()


def _only(kind: str) -> list[CodeActionKind | str]:
    try:
        return [CodeActionKind(kind)]
    except ValueError:
        return [kind]


def code_action_providers(providers: Iterable[Provider]) -> list[Provider]:
    return [p for p in providers if p.supports_method(TEXT_DOCUMENT_CODE_ACTION)]


async def query_document_fixes(
    providers: Iterable[Provider],
    document: TextDocument,
    *,
    kind: str = SOURCE_FIX_ALL,
    timeout: float | None = 0.1,
) -> list[ActionItem]:
    def accept(action: Action) -> bool:
        return kind_matches(action_kind(action), kind)

    jobs = []
    for provider in code_action_providers(providers):
        params = CodeActionParams(
            text_document=TextDocumentIdentifier(uri=document.uri),
            range=document_range(document, provider.offset_encoding),
            context=CodeActionContext(diagnostics=[], only=_only(kind)),
        )
        jobs.append(FanoutJob(provider=provider, params=params, accept=accept))
    return await fan_out(jobs, timeout=timeout)


def _quickfix_like(kind: str) -> ActionFilter:
    def accept(action: Action) -> bool:
        return kind_matches(action_kind(action), kind) or is_preferred(action)

    return accept


async def query_point_fixes(
    providers: Iterable[Provider],
    document: TextDocument,
    diagnostics: Sequence[EditorDiagnostic],
    *,
    strict: bool,
    kind: str = QUICKFIX,
) -> list[ActionItem]:
    """One request per (provider, diagnostic) pair.

    Strict queries ask for ``only=[kind]`` and trust the reply; best-effort
    queries ask for everything and keep matching or preferred actions.
    """
    accept = _accept_all if strict else _quickfix_like(kind)
    jobs = []
    for provider in code_action_providers(providers):
        for diagnostic in diagnostics:
            rng = diagnostic_range(diagnostic, document, provider.offset_encoding)
            context = CodeActionContext(
                diagnostics=[diagnostic_context(diagnostic, rng)],
                only=_only(kind) if strict else None,
            )
            params = CodeActionParams(
                text_document=TextDocumentIdentifier(uri=document.uri),
                range=rng,
                context=context,
            )
            jobs.append(FanoutJob(provider=provider, params=params, accept=accept, range=rng))
    return await fan_out(jobs)


async def query_point_fixes_with_fallback(
    providers: Sequence[Provider],
    document: TextDocument,
    diagnostics: Sequence[EditorDiagnostic],
    *,
    kind: str = QUICKFIX,
) -> list[ActionItem]:
    if not diagnostics:
        return []
    strict = await query_point_fixes(providers, document, diagnostics, strict=True, kind=kind)
    if strict:
        return strict
    logger.debug("strict point-fix query empty; retrying best effort")
    return await query_point_fixes(providers, document, diagnostics, strict=False, kind=kind)

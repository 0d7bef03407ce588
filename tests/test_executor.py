from __future__ import annotations

import asyncio

from lsprotocol.types import (
    CODE_ACTION_RESOLVE,
    TEXT_DOCUMENT_CODE_ACTION,
    WORKSPACE_EXECUTE_COMMAND,
    CodeAction,
    Command,
)

from fixsweep.executor import apply_sequentially
from fixsweep.model import ActionItem
from fixsweep.registry import StaticProviderRegistry

from tests.harness.provider_harness import DOC_URI, FakeProvider, RecordingEditApplier


def _resolve_to_command(action: CodeAction) -> CodeAction:
    return CodeAction(
        title=action.title,
        command=Command(title=action.title, command=f"run.{action.title}"),
    )


def test_next_item_waits_for_previous_apply() -> None:
    log: list[tuple] = []
    slow = FakeProvider(
        "slow",
        methods=(TEXT_DOCUMENT_CODE_ACTION, CODE_ACTION_RESOLVE, WORKSPACE_EXECUTE_COMMAND),
        resolver=_resolve_to_command,
        delays={WORKSPACE_EXECUTE_COMMAND: 0.02},
        log=log,
    )
    fast = FakeProvider(
        "fast",
        methods=(TEXT_DOCUMENT_CODE_ACTION, CODE_ACTION_RESOLVE, WORKSPACE_EXECUTE_COMMAND),
        resolver=_resolve_to_command,
        log=log,
    )
    registry = StaticProviderRegistry()
    registry.register(slow, [DOC_URI])
    registry.register(fast, [DOC_URI])
    items = [
        ActionItem(provider_id="slow", action=CodeAction(title="first")),
        ActionItem(provider_id="fast", action=CodeAction(title="second")),
        ActionItem(provider_id="slow", action=CodeAction(title="third")),
    ]

    count = asyncio.run(apply_sequentially(items, registry, RecordingEditApplier()))

    assert count == 3
    events = [(method, phase, label) for _, method, phase, label in log]
    assert events == [
        (CODE_ACTION_RESOLVE, "start", "first"),
        (CODE_ACTION_RESOLVE, "done", "first"),
        (WORKSPACE_EXECUTE_COMMAND, "start", "run.first"),
        (WORKSPACE_EXECUTE_COMMAND, "done", "run.first"),
        (CODE_ACTION_RESOLVE, "start", "second"),
        (CODE_ACTION_RESOLVE, "done", "second"),
        (WORKSPACE_EXECUTE_COMMAND, "start", "run.second"),
        (WORKSPACE_EXECUTE_COMMAND, "done", "run.second"),
        (CODE_ACTION_RESOLVE, "start", "third"),
        (CODE_ACTION_RESOLVE, "done", "third"),
        (WORKSPACE_EXECUTE_COMMAND, "start", "run.third"),
        (WORKSPACE_EXECUTE_COMMAND, "done", "run.third"),
    ]


def test_items_for_missing_providers_are_skipped_and_not_counted() -> None:
    present = FakeProvider("present")
    registry = StaticProviderRegistry()
    registry.register(present, [DOC_URI])
    items = [
        ActionItem(provider_id="gone", action=Command(title="a", command="a")),
        ActionItem(provider_id="present", action=Command(title="b", command="b")),
    ]
    count = asyncio.run(apply_sequentially(items, registry, RecordingEditApplier()))
    assert count == 1
    assert [p.command for p in present.requests_for(WORKSPACE_EXECUTE_COMMAND)] == ["b"]


def test_empty_list_applies_nothing() -> None:
    registry = StaticProviderRegistry()
    assert asyncio.run(apply_sequentially([], registry, RecordingEditApplier())) == 0

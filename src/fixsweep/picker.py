from __future__ import annotations

from dataclasses import dataclass, field

from lsprotocol.types import Position

from fixsweep.executor import apply_sequentially
from fixsweep.fanout import code_action_providers, query_point_fixes_with_fallback
from fixsweep.host import RemediationHost
from fixsweep.model import ActionItem
from fixsweep.orchestrator import NO_PROVIDERS_MESSAGE, NO_QUICKFIXES_MESSAGE
from fixsweep.protocols import TextDocument

PICKER_PROMPT = "Document quickfixes"
NO_DIAGNOSTICS_MESSAGE = "No diagnostics in document"
NO_CODE_ACTION_PROVIDERS_MESSAGE = "No language servers support code actions"


@dataclass(frozen=True)
class BrowseOutcome:
    entries: list[str] = field(default_factory=list)
    chosen: list[ActionItem] = field(default_factory=list)
    applied: int = 0
    message: str = ""


def format_entry(item: ActionItem) -> str:
    start = item.range.start if item.range is not None else Position(line=0, character=0)
    return (
        f"[{item.provider_name or 'lsp'}] {item.title or '(untitled)'}"
        f" @{start.line + 1}:{start.character + 1}"
    )


async def browse(host: RemediationHost, document: TextDocument) -> BrowseOutcome:
    """Let the user pick point fixes for the document and apply the picks."""
    providers = host.registry.providers_for(document)
    if not providers:
        host.warn(NO_PROVIDERS_MESSAGE)
        return BrowseOutcome(message=NO_PROVIDERS_MESSAGE)
    diagnostics = host.diagnostics.diagnostics_for(document)
    if not diagnostics:
        host.info(NO_DIAGNOSTICS_MESSAGE)
        return BrowseOutcome(message=NO_DIAGNOSTICS_MESSAGE)
    if not code_action_providers(providers):
        host.warn(NO_CODE_ACTION_PROVIDERS_MESSAGE)
        return BrowseOutcome(message=NO_CODE_ACTION_PROVIDERS_MESSAGE)

    items = await query_point_fixes_with_fallback(
        providers, document, diagnostics, kind=host.settings.point_fix_kind
    )
    if not items:
        host.info(NO_QUICKFIXES_MESSAGE)
        return BrowseOutcome(message=NO_QUICKFIXES_MESSAGE)

    entries = [format_entry(item) for item in items]
    if host.selector is None:
        host.warn("No selection interface available")
        return BrowseOutcome(entries=entries, message="No selection interface available")
    picked = await host.selector.select(entries, prompt=PICKER_PROMPT, multi=True)
    chosen = [items[index] for index in picked if 0 <= index < len(items)]
    if not chosen:
        return BrowseOutcome(entries=entries)
    applied = await apply_sequentially(chosen, host.registry, host.edit_applier)
    message = f"Applied {applied} quickfix action(s)"
    host.info(message)
    return BrowseOutcome(entries=entries, chosen=chosen, applied=applied, message=message)

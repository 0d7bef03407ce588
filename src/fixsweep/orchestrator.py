from __future__ import annotations

from dataclasses import dataclass

from fixsweep.executor import apply_sequentially
from fixsweep.fanout import query_document_fixes, query_point_fixes_with_fallback
from fixsweep.host import RemediationHost
from fixsweep.model import ActionItem, dedupe_items, rank_items
from fixsweep.protocols import Provider, TextDocument

NO_PROVIDERS_MESSAGE = "No language servers attached to document"
NO_QUICKFIXES_MESSAGE = "No quickfix actions found"


@dataclass(frozen=True)
class ApplyAllOutcome:
    fix_all_applied: int = 0
    quickfix_applied: int = 0
    message: str = ""

    @property
    def total(self) -> int:
        return self.fix_all_applied + self.quickfix_applied


async def _point_fixes(
    host: RemediationHost, providers: list[Provider], document: TextDocument
) -> list[ActionItem]:
    diagnostics = host.diagnostics.diagnostics_for(document)
    return await query_point_fixes_with_fallback(
        providers, document, diagnostics, kind=host.settings.point_fix_kind
    )


async def apply_all(host: RemediationHost, document: TextDocument) -> ApplyAllOutcome:
    """Apply every document-wide fix, then every remaining point fix."""
    providers = host.registry.providers_for(document)
    if not providers:
        host.warn(NO_PROVIDERS_MESSAGE)
        return ApplyAllOutcome(message=NO_PROVIDERS_MESSAGE)

    settings = host.settings
    fix_alls = await query_document_fixes(
        providers,
        document,
        kind=settings.document_fix_kind,
        timeout=settings.fanout_grace or None,
    )
    if not fix_alls:
        quickfixes = await _point_fixes(host, providers, document)
        if not quickfixes:
            host.info(NO_QUICKFIXES_MESSAGE)
            return ApplyAllOutcome(message=NO_QUICKFIXES_MESSAGE)
        m = await apply_sequentially(rank_items(quickfixes), host.registry, host.edit_applier)
        message = f"Applied {m} quickfix action(s)"
        host.info(message)
        return ApplyAllOutcome(quickfix_applied=m, message=message)

    n = await apply_sequentially(
        rank_items(dedupe_items(fix_alls)), host.registry, host.edit_applier
    )
    # Providers republish diagnostics asynchronously after edits.
    await host.sleep(settings.settle_delay)
    # Per-diagnostic fixes may share a title, so they are not deduplicated.
    quickfixes = await _point_fixes(host, providers, document)
    if not quickfixes:
        message = f"Applied {n} fixAll action(s); no quickfixes left."
        host.info(message)
        return ApplyAllOutcome(fix_all_applied=n, message=message)
    m = await apply_sequentially(rank_items(quickfixes), host.registry, host.edit_applier)
    message = f"Applied {n} fixAll + {m} quickfix action(s)"
    host.info(message)
    return ApplyAllOutcome(fix_all_applied=n, quickfix_applied=m, message=message)

from __future__ import annotations

import logging
from typing import Iterable

from fixsweep.applier import apply_action
from fixsweep.model import ActionItem
from fixsweep.protocols import EditApplier, ProviderRegistry
from fixsweep.resolver import resolve_action

logger = logging.getLogger(__name__)


async def apply_sequentially(
    items: Iterable[ActionItem],
    registry: ProviderRegistry,
    edit_applier: EditApplier,
) -> int:
    """Resolve and apply each item in order; returns how many were applied.

    An item starts only after the previous one finished, since each edit may
    shift the positions later actions were computed against. Items whose
    provider has gone away are skipped and not counted.
    """
    applied = 0
    for item in items:
        provider = registry.get(item.provider_id)
        if provider is None:
            logger.debug("skipping %r: provider %r is gone", item.title, item.provider_id)
            continue
        resolved = await resolve_action(provider, item.action)
        await apply_action(provider, resolved, edit_applier)
        applied += 1
    return applied

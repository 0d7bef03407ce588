from __future__ import annotations

import logging

from lsprotocol.types import CODE_ACTION_RESOLVE, CodeAction, Command

from fixsweep.exceptions import ProviderRequestError
from fixsweep.model import Action, ActionShape, action_title, shape_of
from fixsweep.protocols import Provider

logger = logging.getLogger(__name__)

_SPECIFIED = frozenset(
    {ActionShape.EDIT, ActionShape.COMMAND, ActionShape.EDIT_AND_COMMAND}
)


async def resolve_action(provider: Provider, action: Action) -> Action | None:
    """Return a fully specified action, or None when resolution failed.

    Actions carrying an edit or a structured command are returned as they
    are. Everything else, bare commands included, goes to
    ``codeAction/resolve`` when the provider advertises it.
    """
    if shape_of(action) in _SPECIFIED:
        return action
    if not provider.supports_method(CODE_ACTION_RESOLVE):
        return action
    try:
        resolved = await provider.request(CODE_ACTION_RESOLVE, action)
    except ProviderRequestError as exc:
        logger.info(
            "resolve failed for %r from %s: %s", action_title(action), provider.name, exc
        )
        return None
    if isinstance(resolved, (CodeAction, Command)):
        return resolved
    return action

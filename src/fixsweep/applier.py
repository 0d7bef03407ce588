from __future__ import annotations

import logging

from lsprotocol.types import WORKSPACE_EXECUTE_COMMAND, Command, ExecuteCommandParams

from fixsweep.exceptions import ProviderRequestError
from fixsweep.invariants import never
from fixsweep.model import Action, ActionShape, shape_of
from fixsweep.protocols import EditApplier, Provider

logger = logging.getLogger(__name__)


def _command_params(action: Action) -> ExecuteCommandParams | None:
    shape = shape_of(action)
    if shape is ActionShape.BARE_COMMAND:
        if not isinstance(action, Command):
            never("bare command shape without a command", action=action)
        return ExecuteCommandParams(command=action.command, arguments=[])
    if shape in (ActionShape.COMMAND, ActionShape.EDIT_AND_COMMAND):
        command = action.command
        if not isinstance(command, Command):
            never("command shape without a command", command=command)
        return ExecuteCommandParams(
            command=command.command, arguments=list(command.arguments or [])
        )
    return None


async def apply_action(
    provider: Provider, action: Action | None, edit_applier: EditApplier
) -> None:
    """Apply the edit, then run the command; returns once both are done.

    ``None`` stands for an action whose resolution failed and is a no-op.
    """
    if action is None:
        return
    shape = shape_of(action)
    if shape in (ActionShape.EDIT, ActionShape.EDIT_AND_COMMAND):
        edit = getattr(action, "edit")
        if not edit_applier.apply_workspace_edit(edit, provider.offset_encoding):
            logger.warning("edit for %r was not applied", action.title)
    params = _command_params(action)
    if params is None:
        return
    try:
        await provider.request(WORKSPACE_EXECUTE_COMMAND, params)
    except ProviderRequestError as exc:
        logger.warning("command %s failed on %s: %s", params.command, provider.name, exc)

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from lsprotocol.types import MessageType

from fixsweep.config import FixsweepSettings
from fixsweep.protocols import (
    DiagnosticSource,
    EditApplier,
    NotificationSink,
    ProviderRegistry,
    Selector,
)

logger = logging.getLogger(__name__)


@dataclass
class RemediationHost:
    """Everything an orchestrator borrows from its environment for one run."""

    registry: ProviderRegistry
    diagnostics: DiagnosticSource
    edit_applier: EditApplier
    notifier: NotificationSink
    selector: Selector | None = None
    settings: FixsweepSettings = field(default_factory=FixsweepSettings)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def info(self, message: str) -> None:
        logger.info(message)
        self.notifier.notify(message, MessageType.Info)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.notifier.notify(message, MessageType.Warning)

from __future__ import annotations

from typing import Iterable

from fixsweep.model import ProviderId
from fixsweep.protocols import Provider, TextDocument


class StaticProviderRegistry:
    """Providers keyed by id, each attached to a set of document URIs."""

    def __init__(self) -> None:
        self._providers: dict[ProviderId, Provider] = {}
        self._attached: dict[ProviderId, set[str]] = {}

    def register(self, provider: Provider, uris: Iterable[str] = ()) -> None:
        self._providers[provider.id] = provider
        self._attached.setdefault(provider.id, set()).update(uris)

    def remove(self, provider_id: ProviderId) -> Provider | None:
        self._attached.pop(provider_id, None)
        return self._providers.pop(provider_id, None)

    def get(self, provider_id: ProviderId) -> Provider | None:
        return self._providers.get(provider_id)

    def all(self) -> list[Provider]:
        return list(self._providers.values())

    def providers_for(self, document: TextDocument) -> list[Provider]:
        return [
            provider
            for provider_id, provider in self._providers.items()
            if document.uri in self._attached.get(provider_id, ())
        ]

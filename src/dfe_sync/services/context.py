"""Per-location operation context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dfe_sync.config import Config, LocationConfig
    from dfe_sync.state_store import StateStore, SyncCursor


@dataclass(frozen=True)
class LocationContext:
    """Channel reference plus cursor handle for one business location.

    Passed explicitly into every operation instead of living in module
    state, so several locations can be driven side by side.
    """

    channel: LocationConfig
    store: StateStore

    @classmethod
    def for_location(cls, config: Config, location: str | None, store: StateStore) -> LocationContext:
        """Resolve a location name. Raises ConfigurationError if unusable."""
        return cls(channel=config.get_location(location), store=store)

    @property
    def name(self) -> str:
        return self.channel.name

    def read_cursor(self) -> str:
        """Last consumed NSU (15 digits)."""
        return self.store.get_last_nsu(self.name)

    def advance_cursor(self, last_nsu: str, max_nsu: str | None = None) -> SyncCursor:
        """Persist a new cursor position (never moves backwards)."""
        return self.store.advance_cursor(self.name, last_nsu, max_nsu)

"""
In-memory stand-ins for the catalog store and provider families.
"""

from collections.abc import AsyncIterator, Sequence

from aiproxy.core.exceptions import CallerNotFoundError
from aiproxy.services.ai.types import (
    CallerPreference,
    CatalogSnapshot,
    GlobalSettings,
    RawImageResult,
    StreamEvent,
)

CALLER_ID = "caller-1"


class InMemoryCatalog:
    """Catalog reader backed by a fixed snapshot."""

    def __init__(
        self,
        snapshot: CatalogSnapshot,
        preferences: dict[str, CallerPreference] | None = None,
    ):
        self.snapshot = snapshot
        self.preferences = preferences if preferences is not None else {}

    async def load_snapshot(self) -> CatalogSnapshot:
        return self.snapshot

    async def load_global_settings(self) -> GlobalSettings:
        return self.snapshot.settings

    async def get_caller_preference(self, caller_id: str) -> CallerPreference:
        if caller_id not in self.preferences:
            raise CallerNotFoundError("User profile not found.")
        return self.preferences[caller_id]


class ScriptedProvider:
    """Stands in for a provider family; replays scripted output."""

    def __init__(
        self,
        events: Sequence[StreamEvent] = (),
        error: Exception | None = None,
        text: str = "",
        images: Sequence[RawImageResult] = (),
    ):
        self.events = list(events)
        self.error = error
        self.text = text
        self.images = list(images)
        self.closed = False

    async def stream_text(self) -> AsyncIterator[StreamEvent]:
        try:
            for event in self.events:
                yield event
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True

    async def generate_text(self) -> str:
        if self.error is not None:
            raise self.error
        return self.text

    async def generate_images(self) -> list[RawImageResult]:
        if self.error is not None:
            raise self.error
        return self.images


"""Read-only queries over the event history."""

from collections import Counter
from datetime import datetime
from typing import Optional
from uuid import UUID

from farmledger.models.common import as_utc
from farmledger.models.livestock import AnimalEvent, EventType
from farmledger.services.storage import EntityStore


class EventQueries:
    """
    Event history lookups.

    GUARANTEES:
    - Only returns real events from storage
    - Soft-deleted events are never counted
    """

    def __init__(self, store: EntityStore):
        self._store = store

    async def timeline(self, farm_id: UUID, target_id: UUID) -> list[AnimalEvent]:
        """A target's events, oldest first."""
        return await self._store.find(
            AnimalEvent,
            farm_id,
            {"target_id": target_id},
            order_by="event_date",
        )

    async def counts_by_type(
        self,
        farm_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict[EventType, int]:
        """Number of events of each type with event_date in [start, end]."""
        filters = {}
        if start is not None:
            filters["event_date__gte"] = as_utc(start)
        if end is not None:
            filters["event_date__lte"] = as_utc(end)

        events = await self._store.find(AnimalEvent, farm_id, filters)
        counts = Counter(event.event_type for event in events)
        return {event_type: counts.get(event_type, 0) for event_type in EventType}

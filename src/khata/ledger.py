"""Append-only finance event store.

Events are never updated. The only deletion is the cascade triggered when an
area is removed.
"""

import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

from pydantic import BaseModel

from .models.event import SCHEMA_VERSION, EventType, FinanceEvent

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def newest_first(events: Iterable[FinanceEvent]) -> list[FinanceEvent]:
    """Sort by creation time, newest first; ties keep log order."""
    return sorted(events, key=lambda e: e.created_at, reverse=True)


class EventStore(ABC):
    """Append-only repository of finance events.

    Subclasses provide persistence; event construction, lookups and ordering
    live here so every backing behaves the same way.
    """

    def __init__(
        self,
        device_id: str,
        account_id: str = "default",
        created_by: str = "owner",
        clock: Optional[Clock] = None,
    ):
        self.device_id = device_id
        self.account_id = account_id
        self.created_by = created_by
        self.clock = clock or utc_now

    @abstractmethod
    def _write(self, events: Sequence[FinanceEvent]) -> None:
        """Persist events durably as one unit."""

    @abstractmethod
    def all_events(self) -> list[FinanceEvent]:
        """All events in log order (oldest append first)."""

    @abstractmethod
    def delete_area(self, area_id: str) -> int:
        """Remove every event of an area. Returns the number removed."""

    def build_event(self, area_id: str, event_type: EventType, payload: Any) -> FinanceEvent:
        """Create a validated event without persisting it."""
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        return FinanceEvent(
            event_id=str(uuid.uuid4()),
            schema_version=SCHEMA_VERSION,
            account_id=self.account_id,
            area_id=area_id,
            created_by=self.created_by,
            device_id=self.device_id,
            created_at=self.clock(),
            synced_at=None,
            event_type=event_type,
            payload=payload,
        )

    def append(self, area_id: str, event_type: EventType, payload: Any) -> FinanceEvent:
        """Create and persist one event.

        Args:
            area_id: Owning area
            event_type: Type of event
            payload: Payload model or dict (snake_case or camelCase keys)

        Returns:
            The created FinanceEvent
        """
        return self.append_batch(area_id, [(event_type, payload)])[0]

    def append_batch(
        self,
        area_id: str,
        items: Sequence[tuple[EventType, Any]],
    ) -> list[FinanceEvent]:
        """Create and persist several events atomically.

        Every payload is validated before anything is written, and the batch
        is written as a single unit.
        """
        events = [self.build_event(area_id, event_type, payload) for event_type, payload in items]
        return self.commit(events)

    def commit(self, events: Sequence[FinanceEvent]) -> list[FinanceEvent]:
        """Persist events built with ``build_event`` as one atomic unit.

        Used when later events of a batch must reference earlier ones.
        """
        events = list(events)
        if events:
            self._write(events)
            logger.debug(
                f"Appended {len(events)} event(s): "
                + ", ".join(e.event_type.value for e in events)
            )
        return events

    def get(self, event_id: str) -> Optional[FinanceEvent]:
        for event in self.all_events():
            if event.event_id == event_id:
                return event
        return None

    def list_by_area(self, area_id: str) -> list[FinanceEvent]:
        """Events of an area, newest first."""
        return newest_first(e for e in self.all_events() if e.area_id == area_id)

    def list_by_customer(self, customer_id: str) -> list[FinanceEvent]:
        """Events whose payload references the customer, across all areas, newest first."""
        return newest_first(e for e in self.all_events() if e.customer_id == customer_id)


class InMemoryEventStore(EventStore):
    """Event store kept in a list; used by tests and throwaway sessions."""

    def __init__(self, device_id: str = "memory", **kwargs: Any):
        super().__init__(device_id, **kwargs)
        self._events: list[FinanceEvent] = []

    def _write(self, events: Sequence[FinanceEvent]) -> None:
        self._events.extend(events)

    def all_events(self) -> list[FinanceEvent]:
        return list(self._events)

    def delete_area(self, area_id: str) -> int:
        before = len(self._events)
        self._events = [e for e in self._events if e.area_id != area_id]
        return before - len(self._events)


class JsonlEventStore(EventStore):
    """Event store backed by <data>/events.jsonl.

    One JSON object per line. Appends never truncate or rewrite; each batch
    is written with a single write call and fsynced before returning.
    """

    def __init__(self, events_path: Path, device_id: str, **kwargs: Any):
        super().__init__(device_id, **kwargs)
        self.events_path = events_path

    def _write(self, events: Sequence[FinanceEvent]) -> None:
        self.events_path.parent.mkdir(parents=True, exist_ok=True)

        # One write per batch so a batch is never interleaved with another
        blob = "".join(json.dumps(e.to_json_dict(), ensure_ascii=False) + "\n" for e in events)
        with open(self.events_path, "a", encoding="utf-8") as f:
            f.write(blob)
            f.flush()
            os.fsync(f.fileno())

    def all_events(self) -> list[FinanceEvent]:
        return read_events(self.events_path)

    def delete_area(self, area_id: str) -> int:
        if not self.events_path.exists():
            return 0

        kept: list[str] = []
        removed = 0
        with open(self.events_path, "r", encoding="utf-8") as f:
            for line in f:
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    data = json.loads(stripped)
                except json.JSONDecodeError:
                    # Unparseable lines cannot be attributed to an area; keep them
                    kept.append(stripped)
                    continue
                if isinstance(data, dict) and data.get("areaId") == area_id:
                    removed += 1
                else:
                    kept.append(stripped)

        temp_file = self.events_path.with_suffix(".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write("".join(line + "\n" for line in kept))
                f.flush()
                os.fsync(f.fileno())
            temp_file.replace(self.events_path)
        except OSError as e:
            logger.error(f"Failed to rewrite {self.events_path}: {e}")
            temp_file.unlink(missing_ok=True)
            raise

        logger.info(f"Deleted {removed} event(s) of area {area_id}")
        return removed


def read_events(events_path: Path) -> list[FinanceEvent]:
    """Read every event from a JSONL log.

    Robust parsing: skips malformed lines (for example a torn final line)
    with a warning.
    """
    if not events_path.exists():
        return []

    events: list[FinanceEvent] = []
    malformed_count = 0

    with open(events_path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(FinanceEvent.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValueError) as e:
                malformed_count += 1
                logger.warning(f"Skipping malformed ledger line: {e}")

    if malformed_count > 0:
        logger.warning(f"Skipped {malformed_count} malformed line(s) in {events_path}")

    return events


def read_events_tail(events_path: Path, n: int = 20) -> list[FinanceEvent]:
    """Read the last N events in log order."""
    events = read_events(events_path)
    return events[-n:] if n > 0 else []

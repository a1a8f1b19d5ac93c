"""
In-process change feed for row-level notifications.

Services publish a change after committing a row (INSERT/UPDATE); subscribers
register a callback with a table, a set of events and equality filters on the
row. Delivery is at-least-once from a consumer's point of view: every change
carries the row `id`, so consumers deduplicate by id presence.
"""
import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ALL_EVENTS = frozenset({INSERT, UPDATE, DELETE})


@dataclass(frozen=True)
class Change:
    table: str
    event: str
    new: dict
    committed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "event": self.event,
            "id": self.new.get("id"),
            "new": self.new,
            "committed_at": self.committed_at.isoformat(),
        }


Callback = Callable[[Change], None]


@dataclass
class Subscription:
    id: int
    table: str
    events: frozenset[str]
    filters: dict[str, Any]
    callback: Callback
    _feed: "ChangeFeed | None" = field(default=None, repr=False)

    def matches(self, change: Change) -> bool:
        if change.table != self.table or change.event not in self.events:
            return False
        for column, expected in self.filters.items():
            if change.new.get(column) != expected:
                return False
        return True

    def unsubscribe(self) -> None:
        if self._feed is not None:
            self._feed.unsubscribe(self.id)
            self._feed = None


class ChangeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subs: dict[int, Subscription] = {}

    def subscribe(
        self,
        table: str,
        callback: Callback,
        *,
        events: frozenset[str] | set[str] | None = None,
        filters: dict[str, Any] | None = None,
    ) -> Subscription:
        with self._lock:
            sub = Subscription(
                id=next(self._ids),
                table=table,
                events=frozenset(events or ALL_EVENTS),
                filters=dict(filters or {}),
                callback=callback,
                _feed=self,
            )
            self._subs[sub.id] = sub
        logger.debug("subscribed id=%s table=%s events=%s filters=%s", sub.id, table, sorted(sub.events), sub.filters)
        return sub

    def unsubscribe(self, sub_id: int) -> None:
        with self._lock:
            self._subs.pop(sub_id, None)

    def subscriber_count(self, table: str | None = None) -> int:
        with self._lock:
            if table is None:
                return len(self._subs)
            return sum(1 for s in self._subs.values() if s.table == table)

    def publish(self, table: str, event: str, row: dict) -> int:
        """Deliver a change to every matching subscriber; returns the delivery count."""
        change = Change(table=table, event=event, new=dict(row))
        with self._lock:
            targets = [s for s in self._subs.values() if s.matches(change)]
        delivered = 0
        for sub in targets:
            try:
                sub.callback(change)
                delivered += 1
            except Exception:
                # A broken subscriber must not fail the write that produced the change.
                logger.exception("change feed callback failed: sub=%s table=%s", sub.id, table)
        return delivered


feed = ChangeFeed()

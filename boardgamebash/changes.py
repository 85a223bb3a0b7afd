"""Subscribe-to-changes support built on SQLAlchemy session events.

Every flush records which tables were written in ``session.info``. Once the
transaction commits, subscribers of those tables are called with the table
name. A rollback discards the pending set, so subscribers only ever hear about
state that actually reached the database.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable, Iterable

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger("uvicorn.error")

ChangeCallback = Callable[[str], None]

WATCHED_TABLES = frozenset({"games", "events", "event_games", "participations", "users"})
_PENDING_KEY = "boardgamebash.changed_tables"


class ChangeFeed:
    """Fan out committed table changes to in-process subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[ChangeCallback]] = defaultdict(list)
        self._lock = threading.Lock()
        self._installed: set[int] = set()

    def subscribe(
        self, tables: str | Iterable[str], callback: ChangeCallback
    ) -> Callable[[], None]:
        """Register ``callback`` for one or more tables.

        Returns a function that removes the subscription again.
        """
        names = [tables] if isinstance(tables, str) else list(tables)
        unknown = set(names) - WATCHED_TABLES
        if unknown:
            raise ValueError(f"Unknown tables: {', '.join(sorted(unknown))}")
        with self._lock:
            for name in names:
                self._subscribers[name].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                for name in names:
                    if callback in self._subscribers[name]:
                        self._subscribers[name].remove(callback)

        return unsubscribe

    def publish(self, tables: Iterable[str]) -> None:
        for table in sorted(set(tables)):
            with self._lock:
                callbacks = list(self._subscribers.get(table, ()))
            for callback in callbacks:
                try:
                    callback(table)
                except Exception:
                    logger.exception("Change subscriber failed for table %s", table)

    def install(self, target: type[Session] | object = Session) -> None:
        """Attach the flush/commit/rollback listeners to a session target."""
        if id(target) in self._installed:
            return
        event.listen(target, "after_flush", self._record_flush)
        event.listen(target, "after_commit", self._dispatch)
        event.listen(target, "after_rollback", self._discard)
        self._installed.add(id(target))

    @staticmethod
    def _record_flush(session: Session, flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, set())
        for instance in (*session.new, *session.dirty, *session.deleted):
            table = getattr(instance, "__tablename__", None)
            if table in WATCHED_TABLES:
                pending.add(table)
        # Cascaded link rows are not always visible as instances here.
        if "events" in pending or "games" in pending:
            pending.add("event_games")

    def _dispatch(self, session: Session) -> None:
        pending = session.info.pop(_PENDING_KEY, None)
        if pending:
            self.publish(pending)

    @staticmethod
    def _discard(session: Session) -> None:
        session.info.pop(_PENDING_KEY, None)


change_feed = ChangeFeed()

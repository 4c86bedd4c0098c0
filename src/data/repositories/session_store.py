"""Arena storage for open query sessions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

if TYPE_CHECKING:
    from data.services.session_types import QuerySession


class SessionStore:
    """Dense list of sessions plus an id -> slot index.

    Lookup, insert and remove are O(1): removal moves the last session into
    the freed slot. Display order (tab order) is kept separately in
    ``_order`` because swap-removal does not preserve it.
    """

    def __init__(self, logger_obj: Optional[logging.Logger] = None):
        self.logger = logger_obj or logging.getLogger(__name__)
        self._slots: List[QuerySession] = []
        self._index: Dict[str, int] = {}
        self._by_query: Dict[str, str] = {}
        self._order: Dict[str, None] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._index

    def __iter__(self) -> Iterator[QuerySession]:
        """Iterate sessions in the order they were opened."""
        return (self._slots[self._index[session_id]] for session_id in list(self._order))

    def get(self, session_id: str) -> Optional[QuerySession]:
        index = self._index.get(session_id)
        return self._slots[index] if index is not None else None

    def find_by_query(self, normalized_query: str) -> Optional[QuerySession]:
        session_id = self._by_query.get(normalized_query)
        return self.get(session_id) if session_id is not None else None

    def insert(self, session: QuerySession) -> None:
        if session.id in self._index:
            raise ValueError(f"Session {session.id} is already stored")
        if session.normalized_query in self._by_query:
            raise ValueError(f"A session for query {session.normalized_query!r} is already stored")

        self._index[session.id] = len(self._slots)
        self._slots.append(session)
        self._by_query[session.normalized_query] = session.id
        self._order[session.id] = None
        self.logger.debug(f"Stored session {session.id} in slot {self._index[session.id]}")

    def remove(self, session_id: str) -> Optional[QuerySession]:
        index = self._index.pop(session_id, None)
        if index is None:
            return None

        session = self._slots[index]
        last = self._slots.pop()
        if last is not session:
            self._slots[index] = last
            self._index[last.id] = index

        self._by_query.pop(session.normalized_query, None)
        self._order.pop(session_id, None)
        return session

    def ids(self) -> List[str]:
        return list(self._order)

    def last(self) -> Optional[QuerySession]:
        """The most recently opened session still stored."""
        if not self._order:
            return None
        return self.get(next(reversed(self._order)))

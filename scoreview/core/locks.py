"""SCOREVIEW — Per-Entity Write Serialization.

One logical writer per entity. Entities are independent units of
consistency, so there is no global lock on the write path.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class _Slot:
    """A lock plus the number of threads holding or waiting for it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class EntityLockRegistry:
    """Hands out one re-entrant lock per entity id.

    A lock lives only while some thread holds or waits on it, so the
    registry does not grow with every entity ever written or deleted.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._slots: Dict[str, _Slot] = {}

    def _checkout(self, entity_id: str) -> _Slot:
        with self._guard:
            slot = self._slots.get(entity_id)
            if slot is None:
                slot = self._slots[entity_id] = _Slot()
            slot.users += 1
            return slot

    def _checkin(self, entity_id: str, slot: _Slot) -> None:
        with self._guard:
            slot.users -= 1
            if slot.users == 0 and self._slots.get(entity_id) is slot:
                del self._slots[entity_id]

    @contextmanager
    def hold(self, *entity_ids: str) -> Iterator[None]:
        """Hold the locks of all given entities.

        Locks are taken in sorted order so two writers touching the same
        pair of entities cannot deadlock.
        """
        acquired: List[tuple] = []
        try:
            for entity_id in sorted(set(entity_ids)):
                slot = self._checkout(entity_id)
                try:
                    slot.lock.acquire()
                except BaseException:
                    self._checkin(entity_id, slot)
                    raise
                acquired.append((entity_id, slot))
            yield
        finally:
            for entity_id, slot in reversed(acquired):
                slot.lock.release()
                self._checkin(entity_id, slot)

    def __len__(self) -> int:
        return len(self._slots)

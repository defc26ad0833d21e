from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterable, Iterator

from timetabler.models.timetable import DayOfWeek
from timetabler.services.conflicts import Placement


def placement_scope_keys(placement: Placement) -> list[str]:
    day = DayOfWeek(placement.day_of_week).value
    keys = [
        f"class:{placement.academic_year_id}:{placement.class_level_id}:{placement.subclass_letter}:{day}"
    ]
    if placement.teacher_id:
        keys.append(f"teacher:{placement.academic_year_id}:{placement.teacher_id}:{day}")
    return keys


class ScopeLockRegistry:
    """Serializes timetable writes that touch the same class-day or teacher-day.

    Locks are process local; they guard the window between the conflict check
    and the commit for requests served by the same worker. A key's lock is
    dropped once nobody holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, Lock] = {}
        self._users: dict[str, int] = {}
        self._guard = Lock()

    def _checkout(self, key: str) -> Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = Lock()
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            remaining = self._users.get(key, 0) - 1
            if remaining > 0:
                self._users[key] = remaining
            else:
                self._users.pop(key, None)
                self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Iterator[list[str]]:
        # Always acquired in sorted order.
        ordered = sorted(set(keys))
        acquired: list[tuple[str, Lock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append((key, lock))
            yield ordered
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()
            self._users.clear()


scope_locks = ScopeLockRegistry()

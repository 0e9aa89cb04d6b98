# academic_calendar/core/locks.py - Per-scope serialization of calendar transitions
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class ScopeLockRegistry:
    """
    One lock per (school, school-type) scope.

    Transitions that can create an ACTIVE session or term hold the scope lock for
    the whole transaction so two requests for the same scope cannot both end up
    ACTIVE. This only covers a single process; across processes the services also
    take a row lock on the school (SELECT ... FOR UPDATE on PostgreSQL).
    """

    def __init__(self):
        self._locks: Dict[Tuple[str, Optional[str]], threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, school_id, school_type: Optional[str]) -> threading.Lock:
        key = (str(school_id), school_type)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, school_id, school_type: Optional[str] = None):
        lock = self._lock_for(school_id, school_type)
        if not lock.acquire(blocking=False):
            logger.info(f"Waiting for calendar lock on school {school_id} ({school_type or 'all types'})")
            lock.acquire()
        try:
            yield
        finally:
            lock.release()


scope_locks = ScopeLockRegistry()

__all__ = ["ScopeLockRegistry", "scope_locks"]

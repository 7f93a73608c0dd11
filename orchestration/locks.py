"""
🔒 PER-CONTACT LOCKS
====================
Serializes every read-modify-write of a contact's conversation state
and agent assignments. Different contacts never block each other.

Usage:
    locks = ContactLockRegistry(timeout=10)

    with locks.hold(contact_id):
        state = load_state(contact_id)
        ...
        save_state(state)
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from loguru import logger

from config.settings import settings
from orchestration.exceptions import ContactLockTimeout


class ContactLockRegistry:
    """
    One re-entrant lock per contact id.

    Re-entrant so an operation that already holds the contact (an
    assignment) can call another one that takes it too (recalculation).
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.agents.lock_timeout_seconds
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, contact_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(contact_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[contact_id] = lock
            return lock

    @contextmanager
    def hold(self, contact_id: str) -> Iterator[None]:
        """
        Hold the contact's lock for the duration of the block.

        Raises:
            ContactLockTimeout: if the lock isn't acquired within ``timeout``
        """
        lock = self._lock_for(contact_id)
        if not lock.acquire(timeout=self.timeout):
            logger.error(f"🔒 Lock timeout for contact {contact_id}")
            raise ContactLockTimeout(contact_id, self.timeout)
        try:
            yield
        finally:
            lock.release()

    def __contains__(self, contact_id: str) -> bool:
        with self._registry_lock:
            return contact_id in self._locks


# Shared registry - every orchestrator in the process must use the same one
contact_locks = ContactLockRegistry()

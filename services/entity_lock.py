"""
Per-entity advisory locks, kept in worker memory.

Two mutations for the same VIN inside one Functions worker are serialised;
writers in other workers or hosts are not seen here. A VIN's entry lives only
while someone holds or waits on its lock.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from services.errors import EntityBusy

# entity_id -> [lock, holders + waiters]
_LOCKS: Dict[str, List] = {}
_REGISTRY_LOCK = threading.Lock()


def _checkout(entity_id: str) -> threading.Lock:
    with _REGISTRY_LOCK:
        entry = _LOCKS.get(entity_id)
        if entry is None:
            entry = _LOCKS[entity_id] = [threading.Lock(), 0]
        entry[1] += 1
        return entry[0]


def _checkin(entity_id: str) -> None:
    with _REGISTRY_LOCK:
        entry = _LOCKS[entity_id]
        entry[1] -= 1
        if entry[1] == 0:
            del _LOCKS[entity_id]


@contextmanager
def entity_lock(entity_id: str, timeout: float = 30.0) -> Iterator[None]:
    lock = _checkout(entity_id)
    try:
        if not lock.acquire(timeout=timeout):
            raise EntityBusy(f"Another image operation for {entity_id} is still running")
        try:
            yield
        finally:
            lock.release()
    finally:
        _checkin(entity_id)

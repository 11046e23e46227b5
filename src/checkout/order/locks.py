"""Per-order mutual exclusion for read-modify-write order updates.

Initiation, reconciliation, the demo timer and admin overrides may touch the
same order from different threads. Every command that mutates an order is
processed under ``order_lock(order_id)`` so that the load, the transition and
the commit happen as one step. Locks are striped over a fixed pool.
"""

import threading
import zlib
from collections.abc import Iterator
from contextlib import contextmanager

from protean.utils.globals import current_domain

_STRIPES = 256

_locks = [threading.RLock() for _ in range(_STRIPES)]


def _stripe_for(order_id: str) -> threading.RLock:
    return _locks[zlib.crc32(str(order_id).encode("utf-8")) % _STRIPES]


@contextmanager
def order_lock(order_id: str) -> Iterator[None]:
    """Hold the lock guarding ``order_id`` for the duration of the block."""
    lock = _stripe_for(order_id)
    with lock:
        yield


def process_locked(order_id: str, command):
    """Process ``command`` synchronously while holding the order's lock.

    The unit of work commits inside the lock, so the next writer always
    loads the committed state.
    """
    with order_lock(order_id):
        return current_domain.process(command, asynchronous=False)

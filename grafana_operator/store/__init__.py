"""
The store module is the cluster API seen by the controller: a key-value
store of objects keyed by NamedResource with optimistic concurrency.

- Every write assigns a new resource version to the object.
- Status writes based on a stale resource version fail with ConflictError.
- Reads of a missing object raise ObjectNotFoundError.
- Readers always receive copies, so cached objects are never mutated.

This abstract interface allows for various implementations (in-memory, a
real cluster client, etc.).
"""

from .store import Store, StoreEvent
from .in_memory import InMemoryStore

__all__ = [
    "Store",
    "StoreEvent",
    "InMemoryStore",
]

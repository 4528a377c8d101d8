"""Store module for holding the objects seen by the controller."""

from abc import ABC, abstractmethod
from collections.abc import Callable, AsyncGenerator
from enum import Enum
from typing import TypeVar, TYPE_CHECKING

from grafana_operator.manifest import BaseManifest, NamedResource

T = TypeVar("T", bound=BaseManifest)


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_ADDED = "object_added"
    OBJECT_UPDATED = "object_updated"
    STATUS_UPDATED = "status_updated"
    OBJECT_DELETED = "object_deleted"


class Store(ABC):
    """Abstract base class for the cluster object store with listener support."""

    @abstractmethod
    def add_object(self, obj: T) -> T:
        """Create or update an object and return the stored copy.

        Updating an existing object never changes its status, which is only
        written through `update_status`.
        """

    @abstractmethod
    def get_object(self, resource_id: NamedResource, cls: type[T]) -> T:
        """Retrieve a copy of an object by resource identity and type.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    def update_status(self, obj: T) -> T:
        """Write the status of an object and return the stored copy.

        The write is conditional on the resource version of `obj` matching
        the stored object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ConflictError: If the object was modified since it was read.
        """

    @abstractmethod
    def delete_object(self, resource_id: NamedResource) -> None:
        """Delete an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    def list_objects(
        self, kind: str | None = None, namespace: str | None = None
    ) -> list[BaseManifest]:
        """List copies of all objects, optionally filtered by kind and namespace."""

    @abstractmethod
    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, BaseManifest | None], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event.

        When `flush` is set the callback is invoked with OBJECT_ADDED semantics
        for every object already in the store. Returns a callable that can be
        called to remove the listener.
        """

    @abstractmethod
    async def watch_events(
        self, kind: str
    ) -> AsyncGenerator[tuple[StoreEvent, NamedResource, BaseManifest | None]]:
        """
        Watch for changes to objects of a specific kind.

        This is an asynchronous iterator that first yields an OBJECT_ADDED
        event for every existing object of the kind, then yields events as
        objects are added, updated, have their status written or are deleted.
        The object is None for deletions.
        """
        if TYPE_CHECKING:
            yield None, None, None  # type: ignore[misc]

"""Module for in memory object store."""

import asyncio
import copy
import itertools
from collections import defaultdict
from collections.abc import Callable, AsyncGenerator
from typing import Any, TypeVar, DefaultDict

import logging

from grafana_operator.manifest import BaseManifest, NamedResource
from grafana_operator.exceptions import ConflictError, ObjectNotFoundError

from .store import Store, StoreEvent


_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseManifest)

_WATCHED_EVENTS = (
    StoreEvent.OBJECT_ADDED,
    StoreEvent.OBJECT_UPDATED,
    StoreEvent.STATUS_UPDATED,
    StoreEvent.OBJECT_DELETED,
)


def _resource_id(obj: BaseManifest) -> NamedResource:
    if (
        not hasattr(obj, "kind")
        or not hasattr(obj, "namespace")
        or not hasattr(obj, "name")
    ):
        raise ValueError("Object must have kind, namespace, and name attributes")
    return NamedResource(obj.kind, obj.namespace, obj.name)


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Objects are keyed by NamedResource and versioned with a monotonically
    increasing resource version. Supports event listeners for object and
    status changes.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        self._objects: dict[NamedResource, BaseManifest] = {}
        self._versions = itertools.count(1)
        self._listeners: DefaultDict[StoreEvent, list[Callable[..., None]]] = (
            defaultdict(list)
        )

    def _next_version(self) -> str:
        return str(next(self._versions))

    def add_object(self, obj: T) -> T:
        """Create or update an object and return the stored copy."""
        resource_id = _resource_id(obj)
        stored = copy.deepcopy(obj)
        event = StoreEvent.OBJECT_ADDED
        if (existing := self._objects.get(resource_id)) is not None:
            if hasattr(existing, "status"):
                stored.status = copy.deepcopy(existing.status)  # type: ignore[attr-defined]
            stored.resource_version = existing.resource_version  # type: ignore[attr-defined]
            if existing == stored:
                _LOGGER.debug("Object %s unchanged in store, skipping", resource_id)
                return copy.deepcopy(stored)
            _LOGGER.debug("Updating existing object %s in store", resource_id)
            event = StoreEvent.OBJECT_UPDATED
        else:
            _LOGGER.debug("Adding object %s to store", resource_id)

        stored.resource_version = self._next_version()  # type: ignore[attr-defined]
        self._objects[resource_id] = stored
        self._fire_event(event, resource_id, copy.deepcopy(stored))
        return copy.deepcopy(stored)

    def get_object(self, resource_id: NamedResource, cls: type[T]) -> T:
        """Retrieve a copy of an object by resource identity and type."""
        obj = self._objects.get(resource_id)
        if obj is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        if not isinstance(obj, cls):
            raise ValueError(
                f"Object {resource_id.namespaced_name} is not of type {cls.__name__} (was {obj.__class__.__name__})"
            )
        return copy.deepcopy(obj)

    def update_status(self, obj: T) -> T:
        """Write the status of an object and return the stored copy."""
        resource_id = _resource_id(obj)
        if not hasattr(obj, "status"):
            raise ValueError(
                f"Resource kind {resource_id.kind} does not support status updates"
            )
        if (existing := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        expected = getattr(obj, "resource_version", None)
        actual = existing.resource_version  # type: ignore[attr-defined]
        if expected != actual:
            raise ConflictError(resource_id.namespaced_name, expected, actual)

        stored = copy.deepcopy(existing)
        stored.status = copy.deepcopy(obj.status)  # type: ignore[attr-defined]
        stored.resource_version = self._next_version()  # type: ignore[attr-defined]
        self._objects[resource_id] = stored
        _LOGGER.debug(
            "Updated status for %s to %s", resource_id, stored.status  # type: ignore[attr-defined]
        )
        self._fire_event(StoreEvent.STATUS_UPDATED, resource_id, copy.deepcopy(stored))
        return copy.deepcopy(stored)

    def delete_object(self, resource_id: NamedResource) -> None:
        """Delete an object."""
        if resource_id not in self._objects:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        _LOGGER.debug("Deleting object %s from store", resource_id)
        del self._objects[resource_id]
        self._fire_event(StoreEvent.OBJECT_DELETED, resource_id, None)

    def list_objects(
        self, kind: str | None = None, namespace: str | None = None
    ) -> list[BaseManifest]:
        """List copies of all objects, optionally filtered by kind and namespace."""
        return [
            copy.deepcopy(obj)
            for resource_id, obj in self._objects.items()
            if (kind is None or resource_id.kind == kind)
            and (namespace is None or resource_id.namespace == namespace)
        ]

    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, BaseManifest | None], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)

        if flush and event == StoreEvent.OBJECT_ADDED:
            _LOGGER.debug("Flushing objects for event type %s", event)
            for resource_id, obj in list(self._objects.items()):
                callback(resource_id, copy.deepcopy(obj))

        return remove

    def _fire_event(self, event: StoreEvent, *args: Any) -> None:
        for cb in list(self._listeners[event]):  # Iterate over a copy for safe removal
            try:
                cb(*args)
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)

    async def watch_events(
        self, kind: str
    ) -> AsyncGenerator[tuple[StoreEvent, NamedResource, BaseManifest | None]]:
        """Watch for changes to objects of a specific kind."""
        queue: asyncio.Queue[tuple[StoreEvent, NamedResource, BaseManifest | None]] = (
            asyncio.Queue()
        )

        def make_callback(
            event: StoreEvent,
        ) -> Callable[[NamedResource, BaseManifest | None], None]:
            def callback(resource_id: NamedResource, obj: BaseManifest | None) -> None:
                if resource_id.kind == kind:
                    queue.put_nowait((event, resource_id, obj))

            return callback

        removers = [
            self.add_listener(
                event, make_callback(event), flush=event == StoreEvent.OBJECT_ADDED
            )
            for event in _WATCHED_EVENTS
        ]
        try:
            while True:
                yield await queue.get()
                queue.task_done()
        except asyncio.CancelledError:
            _LOGGER.debug("watch_events for kind '%s' cancelled.", kind)
            raise
        finally:
            _LOGGER.debug("Cleaning up listeners for watch_events (kind: %s)", kind)
            for remove in removers:
                remove()

"""Loads manifests from the filesystem into a store.

Used to seed the in-memory store from YAML files before running the
controller. Documents of kinds the controller does not know are skipped.
"""

from collections.abc import AsyncGenerator
import logging
from pathlib import Path

import aiofiles
import yaml

from .exceptions import GrafanaOperatorException, InputException
from .manifest import BaseManifest, parse_raw_obj
from .store import Store

__all__ = ["ResourceLoader"]

_LOGGER = logging.getLogger(__name__)

MANIFEST_SUFFIXES = (".yaml", ".yml")


class ResourceLoader:
    """Loads resources from a file or a directory tree."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def load(self, path: Path) -> list[BaseManifest]:
        """Load every supported resource under the path into the store.

        Returns the stored copies of the loaded resources.
        """
        loaded: list[BaseManifest] = []
        async for resource in self._read(Path(path).expanduser().resolve()):
            loaded.append(self._store.add_object(resource))
        _LOGGER.info("Loaded %d resources from %s", len(loaded), path)
        return loaded

    async def _read(self, path: Path) -> AsyncGenerator[BaseManifest, None]:
        if not path.exists():
            raise GrafanaOperatorException(f"Path does not exist: {path}")
        if path.is_dir():
            for entry in sorted(path.iterdir()):
                if entry.is_dir() or entry.suffix.lower() in MANIFEST_SUFFIXES:
                    async for resource in self._read(entry):
                        yield resource
            return

        _LOGGER.debug("Processing file: %s", path)
        try:
            async with aiofiles.open(path, encoding="utf-8") as manifest_file:
                content = await manifest_file.read()
        except OSError as e:
            raise GrafanaOperatorException(f"Failed to read file {path}: {e}") from e

        try:
            docs = list(yaml.safe_load_all(content))
        except yaml.YAMLError as e:
            raise GrafanaOperatorException(f"Invalid YAML in file {path}: {e}") from e

        for doc in docs:
            if not doc:
                continue
            if not isinstance(doc, dict):
                raise InputException(f"`{path}` was not a dictionary: {doc}")
            try:
                yield parse_raw_obj(doc)
            except InputException as e:
                _LOGGER.info("Skipping document in %s: %s", path, e)

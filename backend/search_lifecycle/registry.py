"""Registry of collection definitions keyed by logical name."""

from __future__ import annotations

import importlib
import threading
from typing import Iterator

from search_lifecycle.core.errors import UnknownCollection, ValidationError
from search_lifecycle.models.definitions import CollectionDefinition


class CollectionRegistry:
    def __init__(self) -> None:
        self._definitions: dict[str, CollectionDefinition] = {}
        self._lock = threading.Lock()

    def register(self, definition: CollectionDefinition) -> CollectionDefinition:
        with self._lock:
            if definition.logical_name in self._definitions:
                raise ValidationError(f"collection {definition.logical_name!r} is already registered")
            self._definitions[definition.logical_name] = definition
        return definition

    def get(self, name: str) -> CollectionDefinition | None:
        return self._definitions.get(name)

    def require(self, name: str) -> CollectionDefinition:
        definition = self.get(name)
        if definition is None:
            raise UnknownCollection(f"collection {name!r} is not registered")
        return definition

    def names(self) -> list[str]:
        return sorted(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[CollectionDefinition]:
        return iter(list(self._definitions.values()))

    def __len__(self) -> int:
        return len(self._definitions)


def load_registry(module_name: str | None) -> CollectionRegistry:
    """Import ``module_name`` and let its ``register(registry)`` fill a registry."""
    registry = CollectionRegistry()
    if not module_name:
        return registry
    module = importlib.import_module(module_name)
    hook = getattr(module, "register", None)
    if not callable(hook):
        raise ValidationError(f"registry module {module_name!r} does not define register(registry)")
    hook(registry)
    return registry


__all__ = ["CollectionRegistry", "load_registry"]

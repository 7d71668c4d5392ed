"""Search service clients."""

from search_lifecycle.core.config import Settings

from .base import SearchClient
from .http import TypesenseClient
from .memory import InMemorySearchClient


def build_client(settings: Settings) -> SearchClient:
    """Instantiate the client selected by ``settings.search_backend``."""
    if settings.search_backend == "memory":
        return InMemorySearchClient()
    return TypesenseClient.from_settings(settings)


__all__ = ["SearchClient", "TypesenseClient", "InMemorySearchClient", "build_client"]

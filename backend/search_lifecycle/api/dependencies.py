"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from search_lifecycle.client import SearchClient, build_client
from search_lifecycle.core.config import Settings, get_settings
from search_lifecycle.db.sqlite import SQLiteDatabase
from search_lifecycle.indexer.jobs import BackgroundJobQueue
from search_lifecycle.lifecycle import LifecycleOrchestrator
from search_lifecycle.registry import CollectionRegistry, load_registry

_DB: SQLiteDatabase | None = None
_CLIENT: SearchClient | None = None
_REGISTRY: CollectionRegistry | None = None
_QUEUE: BackgroundJobQueue | None = None
_ORCHESTRATOR: LifecycleOrchestrator | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_client() -> SearchClient:
    global _CLIENT
    if _CLIENT is None:
        _CLIENT = build_client(get_app_settings())
    return _CLIENT


def get_registry() -> CollectionRegistry:
    global _REGISTRY
    if _REGISTRY is None:
        _REGISTRY = load_registry(get_app_settings().registry_module)
    return _REGISTRY


def get_job_queue() -> BackgroundJobQueue:
    global _QUEUE
    if _QUEUE is None:
        settings = get_app_settings()
        _QUEUE = BackgroundJobQueue(get_database(), workers=settings.queue_workers)
    return _QUEUE


def get_orchestrator() -> LifecycleOrchestrator:
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        settings = get_app_settings()
        _ORCHESTRATOR = LifecycleOrchestrator(
            registry=get_registry(),
            client=get_client(),
            settings=settings,
            queue=get_job_queue() if settings.dispatch_mode == "async" else None,
            database=get_database(),
        )
    return _ORCHESTRATOR


__all__ = [
    "get_app_settings",
    "get_database",
    "get_client",
    "get_registry",
    "get_job_queue",
    "get_orchestrator",
]

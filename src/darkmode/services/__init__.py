"""Service layer exports.

Responsibilities:
 - Dependency/service locator (one per document)
 - EventBus publish/subscribe core
 - Scheduling primitives (asyncio and manual clocks; Qt in `qt_scheduler`)
 - Key/value storage and site-state persistence
"""

from .service_locator import ServiceLocator  # noqa: F401
from .event_bus import EventBus, EngineEvent  # noqa: F401
from .scheduler import Scheduler, AsyncioScheduler, ManualScheduler  # noqa: F401
from .kv_store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore  # noqa: F401
from .persistence import PersistenceLayer, domain_candidates  # noqa: F401

__all__ = [
    "ServiceLocator",
    "EventBus",
    "EngineEvent",
    "Scheduler",
    "AsyncioScheduler",
    "ManualScheduler",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "PersistenceLayer",
    "domain_candidates",
]

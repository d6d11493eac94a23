"""Core application components package."""

from .clock import Clock, utc_now
from .config import Settings, settings
from .database import WRITE_TRANSACTION, build_engine, build_session_factory, init_db
from .errors import (
    LanwatchError,
    PersistenceError,
    ProbeError,
    ResolverError,
    RetentionError,
    ValidationError,
    VendorDatabaseError,
)
from .locking import KeyedLock

__all__ = [
    "Clock",
    "utc_now",
    "Settings",
    "settings",
    "build_engine",
    "build_session_factory",
    "WRITE_TRANSACTION",
    "init_db",
    "LanwatchError",
    "PersistenceError",
    "ProbeError",
    "ResolverError",
    "RetentionError",
    "ValidationError",
    "VendorDatabaseError",
    "KeyedLock",
]

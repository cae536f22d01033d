"""
Infrastructure Module
Provides the building blocks the transaction engine runs on:
- Timeout table and per-operation timeout policies
- Bounded resolution of pending service operations
- Resource tracking with aggregated cleanup
- Configuration and logging setup
"""

from .timeouts import SessionOptions, TimeoutKey, TimeoutPolicy, remaining_timeout
from .async_resolver import PendingOperation, close_pending, resolve
from .resource_tracker import ResourceTracker, aggregate_close_errors, close_resources
from .config import EngineSettings, load_settings, load_settings_from_yaml
from .logging_config import configure_from_settings, configure_logging

__all__ = [
    # Timeouts
    "SessionOptions",
    "TimeoutKey",
    "TimeoutPolicy",
    "remaining_timeout",

    # Async resolution
    "PendingOperation",
    "close_pending",
    "resolve",

    # Resource tracking
    "ResourceTracker",
    "aggregate_close_errors",
    "close_resources",

    # Configuration
    "EngineSettings",
    "load_settings",
    "load_settings_from_yaml",
    "configure_from_settings",
    "configure_logging",
]

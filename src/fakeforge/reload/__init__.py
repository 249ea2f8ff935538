"""
FakeForge Reload Module

Debounced hot reload and the live-update event stream.
"""

from .coordinator import DEBOUNCE_SECONDS, ReloadCoordinator
from .live import HEARTBEAT_INTERVAL, LiveUpdateChannel, format_event

__all__ = [
    'ReloadCoordinator',
    'DEBOUNCE_SECONDS',
    'LiveUpdateChannel',
    'HEARTBEAT_INTERVAL',
    'format_event',
]

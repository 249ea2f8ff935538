"""
FakeForge Events Module

Lifecycle event bus and outbound webhook delivery.
"""

from .bus import (
    DATABASE_FLUSHED,
    DATABASE_INSERTED,
    EVENT_NAMES,
    SERVER_RELOADED,
    SERVER_SHUTDOWN,
    SERVER_STARTED,
    EventBus,
)
from .webhook import WEBHOOK_HEADER, Hook, WebhookDispatcher, resolve_transform

__all__ = [
    'EventBus',
    'EVENT_NAMES',
    'SERVER_STARTED',
    'SERVER_SHUTDOWN',
    'SERVER_RELOADED',
    'DATABASE_INSERTED',
    'DATABASE_FLUSHED',
    'Hook',
    'WebhookDispatcher',
    'WEBHOOK_HEADER',
    'resolve_transform',
]

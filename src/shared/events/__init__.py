# src/shared/events/__init__.py
"""
Push-события присутствия.

- presence:full: снапшот при подключении
- presence:update: запись создана/обновлена
- presence:remove: запись снята
"""

from src.shared.events.base import DomainEvent, EventMetadata
from src.shared.events.presence_events import (
    PresenceFull,
    PresenceUpdated,
    PresenceRemoved,
)

__all__ = [
    "DomainEvent",
    "EventMetadata",
    "PresenceFull",
    "PresenceUpdated",
    "PresenceRemoved",
]

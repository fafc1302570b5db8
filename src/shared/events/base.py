# src/shared/events/base.py
"""
Базовые классы для push-событий.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class EventMetadata(BaseModel):
    """Метаданные события для трассировки."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_service: str = "presence_service"


class DomainEvent(BaseModel):
    """
    Базовый класс для всех событий.

    События иммутабельны по соглашению и сериализуются в JSON-конверт
    {"event": <тип>, "data": <полезная нагрузка>}, который понимают клиенты.
    """

    event_type: str = ""
    metadata: EventMetadata = Field(default_factory=EventMetadata)

    def payload(self) -> Any:
        """Полезная нагрузка события (переопределяется в наследниках)."""
        return None

    def to_message(self) -> dict[str, Any]:
        """Сообщение для отправки наблюдателю."""
        return {"event": self.event_type, "data": self.payload()}

    @property
    def event_id(self) -> str:
        """Уникальный идентификатор события."""
        return self.metadata.event_id

    @property
    def timestamp(self) -> datetime:
        """Время создания события."""
        return self.metadata.timestamp


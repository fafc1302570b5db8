# src/shared/events/presence_events.py
"""
События присутствия: полный снапшот, обновление записи, удаление.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from src.common.constants import PresenceEventType
from src.shared.events.base import DomainEvent
from src.shared.models.live_user_dto import LiveUserDTO


class PresenceFull(DomainEvent):
    """Событие: полный список живых записей (отправляется при подключении)."""

    event_type: Literal["presence:full"] = PresenceEventType.FULL.value

    users: list[LiveUserDTO] = Field(default_factory=list)

    def payload(self) -> list[dict[str, Any]]:
        return [user.model_dump(mode="json") for user in self.users]


class PresenceUpdated(DomainEvent):
    """Событие: запись создана или обновлена."""

    event_type: Literal["presence:update"] = PresenceEventType.UPDATE.value

    user: LiveUserDTO

    def payload(self) -> dict[str, Any]:
        return self.user.model_dump(mode="json")


class PresenceRemoved(DomainEvent):
    """Событие: запись снята (done). Несёт только id."""

    event_type: Literal["presence:remove"] = PresenceEventType.REMOVE.value

    id: str

    def payload(self) -> dict[str, Any]:
        return {"id": self.id}

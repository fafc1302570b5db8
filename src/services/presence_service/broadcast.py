# src/services/presence_service/broadcast.py
"""
Рассылка событий присутствия подключённым наблюдателям.
Реестр наблюдателей принадлежит приложению и передаётся в сервис.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from src.common.logger import log_debug, log_error, log_warning
from src.shared.events.base import DomainEvent
from src.shared.events.presence_events import PresenceFull
from src.shared.models.live_user_dto import LiveUserDTO


class Observer(Protocol):
    """Всё, что умеет принять JSON (в проде fastapi.WebSocket)."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self) -> None: ...


@dataclass
class ObserverInfo:
    """Информация о наблюдателе."""
    observer: Observer
    observer_id: str
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PresenceBroadcaster:
    """
    Publish/subscribe реестр наблюдателей.

    Поддерживает:
    - Подписку с немедленной отправкой полного снапшота
    - Рассылку события всем подключённым (без фильтра по расстоянию)
    - Фоновую рассылку, не блокирующую ответ на запрос
    - Отключение наблюдателей, на которых отправка упала или зависла

    Гарантий доставки нет: опоздавший наблюдатель восстанавливает
    состояние только из снапшота при подключении.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        # observer_id -> ObserverInfo
        self._observers: dict[str, ObserverInfo] = {}
        self._send_timeout = send_timeout

        # Фоновые рассылки (держим ссылки, чтобы задачи не собрал GC)
        self._pending: set[asyncio.Task] = set()

        # Для статистики
        self._total_connections: int = 0
        self._total_events_sent: int = 0
        self._total_dropped: int = 0

    @property
    def active_observers(self) -> int:
        """Количество подключённых наблюдателей."""
        return len(self._observers)

    async def subscribe(self, observer: Observer, snapshot: list[LiveUserDTO]) -> str:
        """
        Зарегистрировать наблюдателя и сразу отправить ему снапшот.

        Returns:
            observer_id для последующей отписки
        """
        observer_id = str(uuid4())
        self._observers[observer_id] = ObserverInfo(observer=observer, observer_id=observer_id)
        self._total_connections += 1

        await log_debug(f"Наблюдатель {observer_id} подключён, снапшот: {len(snapshot)} записей")
        await self._send(observer_id, PresenceFull(users=snapshot).to_message())
        return observer_id

    def unsubscribe(self, observer_id: str) -> bool:
        """Отписать наблюдателя. Неизвестный id игнорируется."""
        return self._observers.pop(observer_id, None) is not None

    async def publish(self, event: DomainEvent) -> int:
        """
        Отправить событие всем подключённым наблюдателям.

        Returns:
            Количество успешно отправленных сообщений
        """
        if not self._observers:
            return 0

        message = event.to_message()
        results = await asyncio.gather(
            *(self._send(observer_id, message) for observer_id in list(self._observers))
        )
        return sum(1 for ok in results if ok)

    def publish_nowait(self, event: DomainEvent) -> asyncio.Task:
        """Запланировать рассылку в фоне. Ошибки логируются и не пробрасываются."""
        task = asyncio.create_task(self._publish_in_background(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Дождаться завершения всех фоновых рассылок."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_observers": len(self._observers),
            "total_connections_ever": self._total_connections,
            "total_events_sent": self._total_events_sent,
            "total_dropped": self._total_dropped,
            "pending_broadcasts": len(self._pending),
        }

    async def _publish_in_background(self, event: DomainEvent) -> None:
        try:
            sent = await self.publish(event)
        except Exception as e:
            await log_error(f"Фоновая рассылка {event.event_type} не удалась: {e}", exc_info=True)
            return
        await log_debug(f"Событие {event.event_type} отправлено {sent} наблюдателям")

    async def _send(self, observer_id: str, message: dict[str, Any]) -> bool:
        """Отправка одному наблюдателю; при ошибке или таймауте он отключается."""
        info = self._observers.get(observer_id)
        if info is None:
            return False

        try:
            await asyncio.wait_for(info.observer.send_json(message), timeout=self._send_timeout)
        except Exception as e:
            # Соединение разорвано или клиент не читает
            self._observers.pop(observer_id, None)
            self._total_dropped += 1
            await log_warning(f"Наблюдатель {observer_id} отключён: {type(e).__name__}: {e}")
            await self._close(info)
            return False

        self._total_events_sent += 1
        return True

    async def _close(self, info: ObserverInfo) -> None:
        """Закрыть соединение, чтобы клиент переподключился за свежим снапшотом."""
        try:
            await asyncio.wait_for(info.observer.close(), timeout=self._send_timeout)
        except Exception as e:
            await log_debug(f"Не удалось закрыть наблюдателя {info.observer_id}: {type(e).__name__}")

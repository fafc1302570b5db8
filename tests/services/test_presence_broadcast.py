# tests/services/test_presence_broadcast.py
"""
Тесты для реестра наблюдателей и рассылки событий.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.services.presence_service.broadcast import PresenceBroadcaster
from src.shared.events.presence_events import PresenceRemoved, PresenceUpdated
from src.shared.models.live_user_dto import LiveUserDTO
from tests.conftest import BrokenObserver, FakeObserver, StuckObserver


def make_user(user_id: str = "u1", name: str = "Ann") -> LiveUserDTO:
    return LiveUserDTO(
        id=user_id,
        name=name,
        lat=40.7306,
        lon=-73.9352,
        updated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


class TestSubscribe:
    """Тесты подписки."""

    @pytest.mark.asyncio
    async def test_sends_snapshot_first(self) -> None:
        """Проверяет, что снапшот уходит сразу при подписке."""
        broadcaster = PresenceBroadcaster()
        observer = FakeObserver()

        await broadcaster.subscribe(observer, [make_user("u1"), make_user("u2")])

        assert broadcaster.active_observers == 1
        assert observer.closed is False
        assert len(observer.messages) == 1
        assert observer.messages[0]["event"] == "presence:full"
        assert [u["id"] for u in observer.messages[0]["data"]] == ["u1", "u2"]

    @pytest.mark.asyncio
    async def test_empty_snapshot(self) -> None:
        """Проверяет, что пустой снапшот тоже отправляется."""
        broadcaster = PresenceBroadcaster()
        observer = FakeObserver()

        await broadcaster.subscribe(observer, [])

        assert observer.messages == [{"event": "presence:full", "data": []}]

    @pytest.mark.asyncio
    async def test_broken_observer_dropped_on_subscribe(self) -> None:
        """Проверяет, что наблюдатель с разорванным соединением не регистрируется."""
        broadcaster = PresenceBroadcaster()

        observer = BrokenObserver()
        observer_id = await broadcaster.subscribe(observer, [])

        assert broadcaster.unsubscribe(observer_id) is False
        assert broadcaster.active_observers == 0
        assert observer.closed is True

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        """Проверяет отписку и повторную отписку."""
        broadcaster = PresenceBroadcaster()
        observer_id = await broadcaster.subscribe(FakeObserver(), [])

        assert broadcaster.unsubscribe(observer_id) is True
        assert broadcaster.unsubscribe(observer_id) is False
        assert broadcaster.active_observers == 0


class TestPublish:
    """Тесты рассылки."""

    @pytest.mark.asyncio
    async def test_no_observers(self) -> None:
        """Проверяет рассылку без подписчиков."""
        broadcaster = PresenceBroadcaster()

        assert await broadcaster.publish(PresenceRemoved(id="u1")) == 0

    @pytest.mark.asyncio
    async def test_all_observers_receive_same_event(self) -> None:
        """Проверяет, что событие получают все подключённые наблюдатели."""
        broadcaster = PresenceBroadcaster()
        first, second = FakeObserver(), FakeObserver()
        await broadcaster.subscribe(first, [])
        await broadcaster.subscribe(second, [])

        sent = await broadcaster.publish(PresenceUpdated(user=make_user()))

        assert sent == 2
        assert first.messages[-1] == second.messages[-1]
        assert first.messages[-1]["event"] == "presence:update"
        assert first.messages[-1]["data"]["id"] == "u1"

    @pytest.mark.asyncio
    async def test_late_observer_misses_past_events(self) -> None:
        """Проверяет, что подключившийся позже не получает прошлых событий."""
        broadcaster = PresenceBroadcaster()
        await broadcaster.publish(PresenceRemoved(id="u1"))

        late = FakeObserver()
        await broadcaster.subscribe(late, [])

        assert late.events("presence:remove") == []

    @pytest.mark.asyncio
    async def test_failing_observer_dropped(self) -> None:
        """Проверяет, что упавший наблюдатель отключается, а остальные получают событие."""
        broadcaster = PresenceBroadcaster()
        healthy = FakeObserver()
        broken = BrokenObserver(fail_after=1)
        await broadcaster.subscribe(broken, [])
        await broadcaster.subscribe(healthy, [])

        sent = await broadcaster.publish(PresenceRemoved(id="u1"))

        assert sent == 1
        assert broadcaster.active_observers == 1
        assert broken.closed is True
        assert healthy.closed is False
        assert healthy.events("presence:remove") == [{"id": "u1"}]
        assert broadcaster.get_stats()["total_dropped"] == 1

    @pytest.mark.asyncio
    async def test_stuck_observer_times_out(self) -> None:
        """Проверяет отключение наблюдателя, который не успевает принять сообщение."""
        broadcaster = PresenceBroadcaster(send_timeout=0.01)
        healthy = FakeObserver()
        await broadcaster.subscribe(healthy, [])
        stuck = StuckObserver(hang_after=1)
        stuck_id = await broadcaster.subscribe(stuck, [])

        sent = await broadcaster.publish(PresenceRemoved(id="u1"))

        assert sent == 1
        assert broadcaster.unsubscribe(stuck_id) is False
        # Закрыт, чтобы клиент переподключился за снапшотом
        assert stuck.closed is True

    @pytest.mark.asyncio
    async def test_close_failure_is_not_raised(self) -> None:
        """Проверяет, что ошибка при закрытии отброшенного наблюдателя не мешает рассылке."""
        broadcaster = PresenceBroadcaster()
        broken = BrokenObserver(fail_after=1)
        broken.close = AsyncMock(side_effect=RuntimeError("already closed"))
        healthy = FakeObserver()
        await broadcaster.subscribe(broken, [])
        await broadcaster.subscribe(healthy, [])

        sent = await broadcaster.publish(PresenceRemoved(id="u1"))

        assert sent == 1
        broken.close.assert_awaited_once()
        assert broadcaster.active_observers == 1


class TestBackgroundPublish:
    """Тесты фоновой рассылки."""

    @pytest.mark.asyncio
    async def test_publish_nowait_and_drain(self) -> None:
        """Проверяет, что drain дожидается фоновых рассылок."""
        broadcaster = PresenceBroadcaster()
        observer = FakeObserver()
        await broadcaster.subscribe(observer, [])

        broadcaster.publish_nowait(PresenceUpdated(user=make_user("u1")))
        broadcaster.publish_nowait(PresenceRemoved(id="u1"))
        await broadcaster.drain()

        assert [m["event"] for m in observer.messages] == [
            "presence:full",
            "presence:update",
            "presence:remove",
        ]
        assert broadcaster.get_stats()["pending_broadcasts"] == 0

    @pytest.mark.asyncio
    async def test_drain_without_pending(self) -> None:
        """Проверяет drain без фоновых задач."""
        broadcaster = PresenceBroadcaster()

        await broadcaster.drain()

        assert broadcaster.get_stats()["pending_broadcasts"] == 0


class TestStats:
    """Тесты статистики."""

    @pytest.mark.asyncio
    async def test_counters(self) -> None:
        """Проверяет счётчики подключений и отправленных сообщений."""
        broadcaster = PresenceBroadcaster()
        first_id = await broadcaster.subscribe(FakeObserver(), [])
        await broadcaster.subscribe(FakeObserver(), [])
        broadcaster.unsubscribe(first_id)

        await broadcaster.publish(PresenceRemoved(id="u1"))

        stats = broadcaster.get_stats()
        assert stats == {
            "active_observers": 1,
            "total_connections_ever": 2,
            "total_events_sent": 3,
            "total_dropped": 0,
            "pending_broadcasts": 0,
        }

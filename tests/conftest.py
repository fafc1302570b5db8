# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import math
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("ORIGIN", None)

from src.common.constants import STALENESS_WINDOW  # noqa: E402
from src.services.presence_service.broadcast import PresenceBroadcaster  # noqa: E402
from src.services.presence_service.service import PresenceService  # noqa: E402
from src.shared.models.live_user_dto import (  # noqa: E402
    LiveUserDTO,
    LiveUserWithDistanceDTO,
    LockInRequest,
)


# =============================================================================
# ГЕОДЕЗИЯ ДЛЯ ФЕЙКОВОГО ХРАНИЛИЩА
# =============================================================================

def spheroid_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Расстояние на эллипсоиде WGS-84 (обратная задача Винсенти).
    Так же, как geography в PostGIS, и в отличие от сферического haversine.
    """
    a = 6378137.0
    f = 1 / 298.257223563
    b = (1 - f) * a

    L = math.radians(lon2 - lon1)
    U1 = math.atan((1 - f) * math.tan(math.radians(lat1)))
    U2 = math.atan((1 - f) * math.tan(math.radians(lat2)))
    sinU1, cosU1 = math.sin(U1), math.cos(U1)
    sinU2, cosU2 = math.sin(U2), math.cos(U2)

    lam = L
    for _ in range(200):
        sin_lam, cos_lam = math.sin(lam), math.cos(lam)
        sin_sigma = math.sqrt(
            (cosU2 * sin_lam) ** 2 + (cosU1 * sinU2 - sinU1 * cosU2 * cos_lam) ** 2
        )
        if sin_sigma == 0:
            return 0.0
        cos_sigma = sinU1 * sinU2 + cosU1 * cosU2 * cos_lam
        sigma = math.atan2(sin_sigma, cos_sigma)
        sin_alpha = cosU1 * cosU2 * sin_lam / sin_sigma
        cos2_alpha = 1 - sin_alpha ** 2
        cos_2sigma_m = cos_sigma - 2 * sinU1 * sinU2 / cos2_alpha if cos2_alpha else 0.0
        C = f / 16 * cos2_alpha * (4 + f * (4 - 3 * cos2_alpha))
        lam_prev = lam
        lam = L + (1 - C) * f * sin_alpha * (
            sigma + C * sin_sigma * (cos_2sigma_m + C * cos_sigma * (-1 + 2 * cos_2sigma_m ** 2))
        )
        if abs(lam - lam_prev) < 1e-12:
            break

    u2 = cos2_alpha * (a * a - b * b) / (b * b)
    A = 1 + u2 / 16384 * (4096 + u2 * (-768 + u2 * (320 - 175 * u2)))
    B = u2 / 1024 * (256 + u2 * (-128 + u2 * (74 - 47 * u2)))
    delta_sigma = B * sin_sigma * (
        cos_2sigma_m + B / 4 * (
            cos_sigma * (-1 + 2 * cos_2sigma_m ** 2)
            - B / 6 * cos_2sigma_m * (-3 + 4 * sin_sigma ** 2) * (-3 + 4 * cos_2sigma_m ** 2)
        )
    )
    return b * A * (sigma - delta_sigma)


def offset_point(lat: float, lon: float, north_m: float = 0.0, east_m: float = 0.0) -> tuple[float, float]:
    """Сдвигает точку на заданное число метров к северу/востоку (приближённо)."""
    dlat = north_m / 111_320.0
    dlon = east_m / (111_320.0 * math.cos(math.radians(lat)))
    return lat + dlat, lon + dlon


# =============================================================================
# ФЕЙКИ
# =============================================================================

class FakeClock:
    """Реальное время со сдвигом, который тест может увеличивать."""

    def __init__(self) -> None:
        self.offset = timedelta()

    def now(self) -> datetime:
        return datetime.now(timezone.utc) + self.offset

    def advance(self, **kwargs: float) -> None:
        self.offset += timedelta(**kwargs)


class FakeLiveUserRepository:
    """
    In-memory хранилище с тем же интерфейсом, что LiveUserRepository.
    Расстояние для выборок по радиусу считает на эллипсоиде, как PostGIS.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.rows: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []

    def _is_live(self, row: dict[str, Any]) -> bool:
        return row["is_active"] and row["updated_at"] > self.clock.now() - STALENESS_WINDOW

    async def find_id_by_handle(self, handle: str) -> Optional[str]:
        self.calls.append("find_id_by_handle")
        for row in self.rows.values():
            if row["handle"] == handle:
                return row["id"]
        return None

    async def upsert(self, user_id: str, data: LockInRequest) -> LiveUserDTO:
        self.calls.append("upsert")
        row = data.model_dump(exclude={"id"})
        row.update(id=user_id, updated_at=self.clock.now(), is_active=True)
        self.rows[user_id] = row
        return LiveUserDTO(**row)

    async def retire(self, user_id: str) -> bool:
        self.calls.append("retire")
        row = self.rows.get(user_id)
        if row is None:
            return False
        row["is_active"] = False
        return True

    async def get_live(
        self,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        radius_m: Optional[float] = None,
    ) -> list[LiveUserDTO]:
        self.calls.append("get_live")
        live = [row for row in self.rows.values() if self._is_live(row)]
        if radius_m is None:
            live.sort(key=lambda row: row["updated_at"], reverse=True)
            return [LiveUserDTO(**row) for row in live]

        with_distance = [
            {**row, "distance": spheroid_distance_m(lat, lon, row["lat"], row["lon"])}
            for row in live
        ]
        within = [row for row in with_distance if row["distance"] <= radius_m]
        within.sort(key=lambda row: row["distance"])
        return [LiveUserWithDistanceDTO(**row) for row in within]

    async def get_live_by_id(self, user_id: str) -> Optional[LiveUserDTO]:
        self.calls.append("get_live_by_id")
        row = self.rows.get(user_id)
        if row is None or not self._is_live(row):
            return None
        return LiveUserDTO(**row)


class FakeObserver:
    """Наблюдатель, запоминающий все полученные сообщения."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []
        self.closed = False

    async def send_json(self, data: Any) -> None:
        self.messages.append(data)

    async def close(self) -> None:
        self.closed = True

    def events(self, event_type: str) -> list[Any]:
        return [m["data"] for m in self.messages if m["event"] == event_type]


class BrokenObserver:
    """Наблюдатель, соединение которого рвётся после fail_after сообщений."""

    def __init__(self, fail_after: int = 0) -> None:
        self.fail_after = fail_after
        self.received = 0
        self.closed = False

    async def send_json(self, data: Any) -> None:
        if self.received >= self.fail_after:
            raise ConnectionResetError("connection lost")
        self.received += 1

    async def close(self) -> None:
        self.closed = True


class StuckObserver:
    """Наблюдатель, который перестаёт читать сокет после hang_after сообщений."""

    def __init__(self, hang_after: int = 0) -> None:
        self.hang_after = hang_after
        self.received = 0
        self.closed = False

    async def send_json(self, data: Any) -> None:
        if self.received >= self.hang_after:
            await asyncio.sleep(10)
        self.received += 1

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# ФИКСТУРЫ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_repo(clock: FakeClock) -> FakeLiveUserRepository:
    return FakeLiveUserRepository(clock)


@pytest.fixture
def broadcaster() -> PresenceBroadcaster:
    return PresenceBroadcaster(send_timeout=0.05)


@pytest.fixture
def presence_service(fake_repo: FakeLiveUserRepository, broadcaster: PresenceBroadcaster) -> PresenceService:
    return PresenceService(fake_repo, broadcaster)


@pytest.fixture
def mock_conn() -> AsyncMock:
    """Мок соединения asyncpg."""
    conn = AsyncMock()
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=None)
    conn.execute = AsyncMock(return_value="UPDATE 1")
    return conn


@pytest.fixture
def mock_db(mock_conn: AsyncMock) -> MagicMock:
    """Мок менеджера базы данных: acquire() отдаёт mock_conn."""
    db = MagicMock()
    db.acquire.return_value.__aenter__ = AsyncMock(return_value=mock_conn)
    db.acquire.return_value.__aexit__ = AsyncMock(return_value=None)
    return db


@pytest.fixture
def sample_row() -> dict[str, Any]:
    """Строка live_users, как её возвращает asyncpg."""
    return {
        "id": "4f1c2a9e-0000-4000-8000-000000000001",
        "name": "Ann",
        "handle": "ann_builds",
        "photo_url": None,
        "what_working_on": "Map clustering",
        "lat": 40.7306,
        "lon": -73.9352,
        "is_venue": False,
        "venue_name": None,
        "updated_at": datetime.now(timezone.utc),
        "is_active": True,
    }


@pytest.fixture
def ann_payload() -> dict[str, Any]:
    return {"name": "Ann", "lat": 40.7306, "lon": -73.9352}

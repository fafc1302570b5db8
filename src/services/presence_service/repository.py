from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

import asyncpg
from asyncpg import Record

from src.common.constants import STALENESS_WINDOW, TypeMsg
from src.common.logger import log_error, log_info
from src.infra.database import DatabaseManager
from src.services.presence_service.errors import PresenceInternalError
from src.shared.models.live_user_dto import LiveUserDTO, LiveUserWithDistanceDTO, LockInRequest

LIVE_USER_COLUMNS = """
    id, name, handle, photo_url, what_working_on, lat, lon,
    is_venue, venue_name, updated_at, is_active
"""

# Точки хранятся как lat/lon; geography (WGS-84) строится на лету
_ROW_POINT = "ST_SetSRID(ST_MakePoint(lon, lat), 4326)::geography"
_REF_POINT = "ST_SetSRID(ST_MakePoint($1, $2), 4326)::geography"


class LiveUserRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    @asynccontextmanager
    async def _store_call(self, operation: str) -> AsyncGenerator[None, None]:
        """Ошибки драйвера превращаются в PresenceInternalError без повторов."""
        try:
            yield
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            await log_error(f"Ошибка хранилища ({operation}): {e}", exc_info=True)
            raise PresenceInternalError(operation) from e

    async def find_id_by_handle(self, handle: str) -> Optional[str]:
        """
        Ищет id записи по handle.
        Активность и актуальность не проверяются: снятая или устаревшая
        запись тоже отдаёт свой id.
        """
        query = "SELECT id FROM live_users WHERE handle = $1 LIMIT 1"
        async with self._store_call("handle lookup"):
            async with self.db.acquire() as conn:
                return await conn.fetchval(query, handle)

    async def upsert(self, user_id: str, data: LockInRequest) -> LiveUserDTO:
        """Создает или полностью перезаписывает запись (upsert), делает её активной."""
        query = f"""
            INSERT INTO live_users (
                id, name, handle, photo_url, what_working_on,
                lat, lon, is_venue, venue_name, updated_at, is_active
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, NOW(), TRUE)
            ON CONFLICT (id) DO UPDATE SET
                name = EXCLUDED.name,
                handle = EXCLUDED.handle,
                photo_url = EXCLUDED.photo_url,
                what_working_on = EXCLUDED.what_working_on,
                lat = EXCLUDED.lat,
                lon = EXCLUDED.lon,
                is_venue = EXCLUDED.is_venue,
                venue_name = EXCLUDED.venue_name,
                updated_at = NOW(),
                is_active = TRUE
            RETURNING {LIVE_USER_COLUMNS}
        """
        async with self._store_call("lockin"):
            async with self.db.acquire() as conn:
                record = await conn.fetchrow(
                    query,
                    user_id,
                    data.name,
                    data.handle,
                    data.photo_url,
                    data.what_working_on,
                    data.lat,
                    data.lon,
                    data.is_venue,
                    data.venue_name,
                )
        return LiveUserDTO(**dict(record))

    async def retire(self, user_id: str) -> bool:
        """Снимает запись (is_active = false). Возвращает, была ли запись найдена."""
        query = "UPDATE live_users SET is_active = FALSE WHERE id = $1 RETURNING id"
        async with self._store_call("done"):
            async with self.db.acquire() as conn:
                retired_id = await conn.fetchval(query, user_id)
        return retired_id is not None

    async def get_live(
        self,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        radius_m: Optional[float] = None,
    ) -> List[LiveUserDTO]:
        """
        Живые записи (активны и обновлены за последний час).

        Без радиуса: все, свежие сначала.
        С радиусом: только в пределах radius_m метров от точки (граница включается),
        по возрастанию расстояния; каждая запись несёт distance.
        """
        if radius_m is None:
            return await self._fetch_live()
        if lat is None or lon is None:
            raise ValueError("Для выборки по радиусу нужна точка lat/lon")
        return await self._fetch_live_within(lat, lon, radius_m)

    async def get_live_by_id(self, user_id: str) -> Optional[LiveUserDTO]:
        """Живая запись по id или None."""
        query = f"""
            SELECT {LIVE_USER_COLUMNS}
            FROM live_users
            WHERE id = $1
              AND is_active = TRUE
              AND updated_at > NOW() - $2::interval
        """
        async with self._store_call("live lookup"):
            async with self.db.acquire() as conn:
                record = await conn.fetchrow(query, user_id, STALENESS_WINDOW)
        if record:
            return LiveUserDTO(**dict(record))
        return None

    async def _fetch_live(self) -> List[LiveUserDTO]:
        query = f"""
            SELECT {LIVE_USER_COLUMNS}
            FROM live_users
            WHERE is_active = TRUE
              AND updated_at > NOW() - $1::interval
            ORDER BY updated_at DESC
        """
        async with self._store_call("live query"):
            async with self.db.acquire() as conn:
                records = await conn.fetch(query, STALENESS_WINDOW)
        return [LiveUserDTO(**dict(record)) for record in records]

    async def _fetch_live_within(
        self, lat: float, lon: float, radius_m: float
    ) -> List[LiveUserWithDistanceDTO]:
        query = f"""
            SELECT {LIVE_USER_COLUMNS},
                   ST_Distance({_ROW_POINT}, {_REF_POINT}) AS distance
            FROM live_users
            WHERE is_active = TRUE
              AND updated_at > NOW() - $3::interval
              AND ST_DWithin({_ROW_POINT}, {_REF_POINT}, $4)
            ORDER BY distance ASC
        """
        async with self._store_call("proximity query"):
            async with self.db.acquire() as conn:
                # ST_MakePoint принимает (lon, lat)
                records: List[Record] = await conn.fetch(
                    query, lon, lat, STALENESS_WINDOW, radius_m
                )
        await log_info(
            f"Выборка в радиусе {radius_m} м: {len(records)} записей",
            type_msg=TypeMsg.DEBUG,
        )
        return [LiveUserWithDistanceDTO(**dict(record)) for record in records]

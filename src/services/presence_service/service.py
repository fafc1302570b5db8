from typing import Any, List, Optional
from uuid import uuid4

from pydantic import ValidationError

from src.common.constants import NEARBY_RADIUS_M, RADIUS_BY_MODE, QueryMode, TypeMsg
from src.common.logger import log_info
from src.services.presence_service.broadcast import Observer, PresenceBroadcaster
from src.services.presence_service.errors import PresenceValidationError
from src.services.presence_service.repository import LiveUserRepository
from src.services.utils.geo_utils import haversine_m, is_within_radius
from src.shared.events.presence_events import PresenceRemoved, PresenceUpdated
from src.shared.models.live_user_dto import (
    ActiveQuery,
    DoneRequest,
    LiveUserDTO,
    LiveUserWithDistanceDTO,
    LockInRequest,
    NearbyQuery,
)


class PresenceService:
    def __init__(self, repository: LiveUserRepository, broadcaster: PresenceBroadcaster):
        self.repository = repository
        self.broadcaster = broadcaster

    async def lock_in(self, payload: Any) -> LiveUserDTO:
        """
        Публикует или обновляет живую запись пользователя.

        Идентичность: id из запроса, иначе id записи с тем же handle,
        иначе новый UUID. Все поля перезаписываются целиком.
        """
        request = _validate(LockInRequest, payload, "name, lat, lon required")

        user_id = request.id
        source = "id"
        if not user_id and request.handle:
            user_id = await self.repository.find_id_by_handle(request.handle)
            source = "handle"
        if not user_id:
            user_id = str(uuid4())
            source = "new"

        user = await self.repository.upsert(user_id, request)
        await log_info(f"Lock-in {user.id} ({source})", type_msg=TypeMsg.INFO)

        self.broadcaster.publish_nowait(PresenceUpdated(user=user))
        return user

    async def done(self, payload: Any) -> dict:
        """Снимает запись. Неизвестный id не ошибка, ответ всегда {"ok": True}."""
        request = _validate(DoneRequest, payload, "id required")

        found = await self.repository.retire(request.id)
        if found:
            await log_info(f"Запись {request.id} снята", type_msg=TypeMsg.INFO)
            self.broadcaster.publish_nowait(PresenceRemoved(id=request.id))
        else:
            await log_info(f"Done для неизвестного id {request.id}", type_msg=TypeMsg.DEBUG)

        return {"ok": True}

    async def query_active(
        self,
        lat: Any,
        lon: Any,
        mode: Any = QueryMode.AREA,
    ) -> List[LiveUserWithDistanceDTO]:
        """
        Живые записи вокруг точки с расстоянием, по возрастанию расстояния.
        nearby: 100 футов, area: 5 миль. Глобальной выборки нет.
        """
        query = _validate(
            ActiveQuery,
            {"lat": lat, "lon": lon, "mode": mode},
            "lat/lon required for viewing others",
        )
        radius = RADIUS_BY_MODE[query.mode]
        return await self.repository.get_live(lat=query.lat, lon=query.lon, radius_m=radius)

    async def query_nearby_exact(self, lat: Any, lon: Any) -> List[LiveUserDTO]:
        """
        Запасной путь для 100 футов: расстояние считается в процессе (haversine)
        по всем живым записям. Порядок как у хранилища (свежие сначала).
        """
        query = _validate(NearbyQuery, {"lat": lat, "lon": lon}, "lat/lon required")
        users = await self.repository.get_live()
        return [
            user for user in users
            if is_within_radius(haversine_m(query.lat, query.lon, user.lat, user.lon), NEARBY_RADIUS_M)
        ]

    async def snapshot(self) -> List[LiveUserDTO]:
        """Все живые записи без фильтра по расстоянию, свежие сначала."""
        return await self.repository.get_live()

    async def get_live_user(self, user_id: str) -> Optional[LiveUserDTO]:
        return await self.repository.get_live_by_id(user_id)

    async def connect_observer(self, observer: Observer) -> str:
        """Подключает наблюдателя и отдаёт ему текущий снапшот."""
        users = await self.snapshot()
        return await self.broadcaster.subscribe(observer, users)

    def disconnect_observer(self, observer_id: str) -> None:
        self.broadcaster.unsubscribe(observer_id)


def _validate(model: Any, payload: Any, message: str) -> Any:
    """Проверка входа до любой работы с хранилищем."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise PresenceValidationError.from_pydantic(e, message) from e

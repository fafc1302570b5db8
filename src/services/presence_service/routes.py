import json
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from src.common.constants import QueryMode
from src.common.logger import log_debug, log_warning
from src.services.presence_service.dependencies import get_presence_service
from src.services.presence_service.errors import PresenceInternalError
from src.services.presence_service.service import PresenceService
from src.shared.models.common import OkResponse
from src.shared.models.live_user_dto import LiveUserDTO, LiveUserWithDistanceDTO

router = APIRouter(prefix="/api", tags=["presence"])
ws_router = APIRouter(tags=["presence"])


# Тело и query-параметры проверяет сервис: ошибки должны быть 400 с перечнем полей


@router.post("/lockin", response_model=LiveUserDTO)
async def lock_in(
    payload: Any = Body(default=None),
    service: PresenceService = Depends(get_presence_service),
):
    return await service.lock_in(payload)


@router.post("/done", response_model=OkResponse)
async def done(
    payload: Any = Body(default=None),
    service: PresenceService = Depends(get_presence_service),
):
    return await service.done(payload)


@router.get("/active", response_model=List[LiveUserWithDistanceDTO])
async def get_active(
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    mode: Optional[str] = None,
    nearby: bool = Query(default=False, description="Старый флаг: true == mode=nearby"),
    service: PresenceService = Depends(get_presence_service),
):
    if nearby:
        mode = QueryMode.NEARBY.value
    return await service.query_active(lat, lon, mode or QueryMode.AREA.value)


@router.get("/nearby", response_model=List[LiveUserDTO])
async def get_nearby(
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    service: PresenceService = Depends(get_presence_service),
):
    return await service.query_nearby_exact(lat, lon)


@router.get("/live/{user_id}", response_model=LiveUserDTO)
async def get_live_user(
    user_id: str,
    service: PresenceService = Depends(get_presence_service),
):
    user = await service.get_live_user(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@ws_router.websocket("/ws/presence")
async def presence_socket(
    websocket: WebSocket,
    service: PresenceService = Depends(get_presence_service),
) -> None:
    """
    WebSocket наблюдателя.

    При подключении приходит {"event": "presence:full", "data": [...]},
    далее presence:update / presence:remove.

    Входящие сообщения:
    - {"action": "ping"} -> {"type": "pong"}
    Кадры не в JSON пропускаются, соединение остаётся открытым.
    """
    await websocket.accept()

    try:
        observer_id = await service.connect_observer(websocket)
    except PresenceInternalError:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await log_debug(f"Наблюдатель {observer_id}: кадр не в JSON пропущен")
                continue
            if isinstance(data, dict) and data.get("action") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        await log_debug(f"Наблюдатель {observer_id} отключился")
    except Exception as e:
        await log_warning(f"Наблюдатель {observer_id}: ошибка соединения: {type(e).__name__}: {e}")
    finally:
        service.disconnect_observer(observer_id)

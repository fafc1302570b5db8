"""
FastAPI приложение сервиса присутствия.

REST endpoints:
- POST /api/lockin: создать/обновить живую запись
- POST /api/done: снять запись
- GET /api/active: живые записи в радиусе (mode=nearby|area)
- GET /api/nearby: 100 футов, расстояние считается в процессе
- GET /api/live/{id}: живая запись по id
- GET /health, GET /stats

WebSocket:
- /ws/presence: снапшот при подключении и push-события
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.common.constants import TypeMsg
from src.common.logger import log_info, setup_logging
from src.config import settings
from src.infra.database import close_db, get_db, init_db
from src.services.presence_service.broadcast import PresenceBroadcaster
from src.services.presence_service.errors import PresenceInternalError, PresenceValidationError
from src.services.presence_service.routes import router, ws_router
from src.shared.models.common import ErrorResponse, HealthStatus

SERVICE_NAME = "presence_service"


def create_app(
    broadcaster: PresenceBroadcaster | None = None,
    connect_db: bool = True,
) -> FastAPI:
    """
    Собирает приложение.

    Args:
        broadcaster: Реестр наблюдателей (по умолчанию новый)
        connect_db: Подключаться ли к PostgreSQL в lifespan
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging()
        await log_info("Запуск Presence Service...", type_msg=TypeMsg.INFO)
        if connect_db:
            await init_db()

        yield

        # Shutdown
        await log_info("Остановка Presence Service...", type_msg=TypeMsg.INFO)
        await app.state.broadcaster.drain()
        if connect_db:
            await close_db()

    app = FastAPI(
        title="NearMe Presence Service",
        description="Живые метки пользователей, выборки по радиусу и push-обновления.",
        version=settings.system.VERSION,
        lifespan=lifespan,
    )
    app.state.broadcaster = broadcaster or PresenceBroadcaster(
        send_timeout=settings.presence.BROADCAST_SEND_TIMEOUT,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.presence.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PresenceValidationError)
    async def validation_error_handler(request: Request, exc: PresenceValidationError) -> JSONResponse:
        body = ErrorResponse(error=exc.message, fields=exc.fields)
        return JSONResponse(status_code=400, content=body.model_dump())

    @app.exception_handler(RequestValidationError)
    async def request_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Тело не в JSON или query-параметр не того типа
        fields: list[str] = []
        for error in exc.errors():
            loc = [str(p) for p in error.get("loc", ()) if p not in ("body", "query", "path")]
            name = "body" if error.get("type") == "json_invalid" or not loc else loc[-1]
            if name not in fields:
                fields.append(name)
        body = ErrorResponse(error="invalid request", fields=fields)
        return JSONResponse(status_code=400, content=body.model_dump())

    @app.exception_handler(PresenceInternalError)
    async def internal_error_handler(request: Request, exc: PresenceInternalError) -> JSONResponse:
        # Уже залогировано репозиторием; клиенту без подробностей
        return JSONResponse(status_code=500, content={"error": f"{exc.operation} failed"})

    app.include_router(router)
    app.include_router(ws_router)

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        """Проверка здоровья сервиса."""
        db_ok = await get_db().health_check()
        return HealthStatus(
            service=SERVICE_NAME,
            status="healthy" if db_ok else "degraded",
            version=settings.system.VERSION,
            dependencies={"postgres": "healthy" if db_ok else "unhealthy"},
        )

    @app.get("/stats", tags=["Stats"])
    async def get_stats() -> dict[str, Any]:
        """Статистика наблюдателей и рассылок."""
        return app.state.broadcaster.get_stats()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.services.presence_service.app:app",
        host=settings.deployment.PRESENCE_SERVICE_HOST,
        port=settings.deployment.PRESENCE_SERVICE_PORT,
    )

#!/usr/bin/env python3
# main.py
"""
Главная точка входа NearMe.
Запускает HTTP/WebSocket сервис присутствия.
"""

from __future__ import annotations

import asyncio

import uvicorn

from src.config import settings
from src.common.logger import setup_logging, log_info
from src.common.constants import TypeMsg


def build_server_config() -> uvicorn.Config:
    """Конфигурация uvicorn из настроек проекта."""
    return uvicorn.Config(
        "src.services.presence_service.app:app",
        host=settings.deployment.PRESENCE_SERVICE_HOST,
        port=settings.deployment.PRESENCE_SERVICE_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )


async def run_presence_service() -> None:
    """Запускает Presence Service."""
    await log_info(
        f"NearMe запущен на http://localhost:{settings.deployment.PRESENCE_SERVICE_PORT}",
        type_msg=TypeMsg.INFO,
    )

    server = uvicorn.Server(build_server_config())
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Presence Service: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def main() -> None:
    setup_logging()
    await run_presence_service()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass

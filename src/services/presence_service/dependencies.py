from fastapi import Depends
from starlette.requests import HTTPConnection

from src.infra.database import DatabaseManager
from src.services.presence_service.broadcast import PresenceBroadcaster
from src.services.presence_service.repository import LiveUserRepository
from src.services.presence_service.service import PresenceService


def get_database() -> DatabaseManager:
    return DatabaseManager()


def get_presence_repository() -> LiveUserRepository:
    db = get_database()
    return LiveUserRepository(db)


def get_broadcaster(connection: HTTPConnection) -> PresenceBroadcaster:
    # Один реестр наблюдателей на приложение (и для HTTP, и для WebSocket)
    return connection.app.state.broadcaster


def get_presence_service(
    connection: HTTPConnection,
    repo: LiveUserRepository = Depends(get_presence_repository),
) -> PresenceService:
    return PresenceService(repo, get_broadcaster(connection))

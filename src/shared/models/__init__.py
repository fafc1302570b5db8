# src/shared/models/__init__.py
"""
DTO и Pydantic-модели сервиса присутствия.
"""

from src.shared.models.live_user_dto import (
    LiveUserDTO,
    LiveUserWithDistanceDTO,
    LockInRequest,
    DoneRequest,
    ActiveQuery,
    NearbyQuery,
)
from src.shared.models.common import (
    ErrorResponse,
    OkResponse,
    HealthStatus,
)

__all__ = [
    # Live user
    "LiveUserDTO",
    "LiveUserWithDistanceDTO",
    "LockInRequest",
    "DoneRequest",
    "ActiveQuery",
    "NearbyQuery",
    # Common
    "ErrorResponse",
    "OkResponse",
    "HealthStatus",
]

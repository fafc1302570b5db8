# src/shared/models/common.py
"""
Общие модели ответов.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Стандартный ответ с ошибкой."""

    error: str
    fields: list[str] = Field(default_factory=list)


class OkResponse(BaseModel):
    """Ответ об успешном выполнении без данных."""

    ok: bool = True


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"  # healthy, degraded, unhealthy
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    # dependencies: {"postgres": "healthy"}

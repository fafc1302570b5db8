# src/services/presence_service/errors.py
"""
Ошибки сервиса присутствия.
"""

from __future__ import annotations

from pydantic import ValidationError


class PresenceError(Exception):
    """Базовая ошибка сервиса присутствия."""
    pass


class PresenceValidationError(PresenceError):
    """
    Входные данные не прошли проверку обязательных полей или типов.
    Возвращается клиенту как есть, не повторяется и не логируется как сбой.
    """

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.fields = fields or []

    @classmethod
    def from_pydantic(cls, exc: ValidationError, message: str) -> "PresenceValidationError":
        """Собирает список полей из ошибки pydantic."""
        fields: list[str] = []
        for error in exc.errors():
            loc = error.get("loc") or ()
            name = str(loc[0]) if loc else "payload"
            if name not in fields:
                fields.append(name)
        return cls(message, fields)


class PresenceInternalError(PresenceError):
    """
    Сбой хранилища (соединение, нарушение ограничений).
    Клиенту отдаётся как непрозрачная ошибка, повторов нет.
    """

    def __init__(self, operation: str, message: str = "") -> None:
        super().__init__(message or f"{operation} failed")
        self.operation = operation

# src/services/__init__.py
"""
Сервисы приложения.

- presence_service: lock-in/done, выборки по радиусу, push-рассылка присутствия
- utils: геоутилиты
"""

__all__: list[str] = []

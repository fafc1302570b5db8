# src/shared/__init__.py
"""
Общий код сервиса присутствия.

Модули:
- events: push-события присутствия
- models: DTO и Pydantic-модели входных данных
"""

__all__: list[str] = []

# src/services/presence_service/__init__.py
"""
Presence Service: живые метки пользователей.

Обеспечивает:
- Lock-in (создание/обновление записи) с дедупликацией по handle
- Done (мягкое снятие записи)
- Выборки живых записей в радиусе 100 футов и 5 миль
- Push-рассылку изменений подключённым наблюдателям (WebSocket)
"""

# src/common/constants.py
"""
Общие константы и перечисления.
Радиусы и окно актуальности фиксированы и не выносятся в конфиг.
"""

from datetime import timedelta
from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class QueryMode(str, Enum):
    """Режимы выборки активных пользователей."""
    NEARBY = "nearby"  # 100 футов
    AREA = "area"      # 5 миль

    def __str__(self) -> str:
        return self.value


class PresenceEventType(str, Enum):
    """Типы push-событий присутствия."""
    FULL = "presence:full"
    UPDATE = "presence:update"
    REMOVE = "presence:remove"

    def __str__(self) -> str:
        return self.value


# Запись считается "живой", если обновлена не раньше, чем час назад
STALENESS_WINDOW: timedelta = timedelta(hours=1)

# Радиус Земли для сферической модели (метры)
EARTH_RADIUS_M: float = 6_371_000.0

# 100 футов
NEARBY_RADIUS_M: float = 30.48
# 5 миль
AREA_RADIUS_M: float = 8046.72

RADIUS_BY_MODE: dict[QueryMode, float] = {
    QueryMode.NEARBY: NEARBY_RADIUS_M,
    QueryMode.AREA: AREA_RADIUS_M,
}

# Допустимое расхождение сферы (haversine) и сфероида (PostGIS geography)
# относительно радиуса: ~0.18 м на 100 футах
CROSS_CHECK_TOLERANCE_RATIO: float = 0.006

import math

from src.common.constants import EARTH_RADIUS_M


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Вычисляет расстояние между двумя точками (в метрах) по формуле Haversine.
    Земля считается сферой радиусом 6 371 000 м.
    """
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)

    # a может превысить 1 на ошибку округления
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, a)))


def is_within_radius(distance_m: float, radius_m: float) -> bool:
    """Граница включается: ровно radius_m считается внутри."""
    return distance_m <= radius_m

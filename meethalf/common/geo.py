# meethalf/common/geo.py
"""
Геоутилиты: расстояние по большому кругу и проверка координат.
"""

import math

EARTH_RADIUS_M = 6371000.0


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Вычисляет расстояние между двумя точками (в метрах) по формуле Haversine.
    """
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlng / 2) ** 2)

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def validate_coordinates(lat: float, lng: float) -> bool:
    """Проверяет, что координаты лежат в допустимых пределах."""
    return -90 <= lat <= 90 and -180 <= lng <= 180

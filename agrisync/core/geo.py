"""
Utilidades geográficas: validación de coordenadas y distancia geodésica
(haversine sobre la esfera de radio medio terrestre).
"""

import math

EARTH_RADIUS_KM = 6371.0088


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    """True si la coordenada es finita y está dentro de rango WGS84."""
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distancia en km entre dos puntos (grados decimales)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(
    latitude: float, longitude: float, radius_km: float
) -> tuple[float, float, float | None, float | None]:
    """
    Caja (min_lat, max_lat, min_lon, max_lon) que contiene el círculo.
    Los límites de longitud son None si la caja cruza el antimeridiano
    o toca un polo; en ese caso no se filtra por longitud.
    """
    lat_delta = math.degrees(radius_km / EARTH_RADIUS_KM)
    min_lat = max(-90.0, latitude - lat_delta)
    max_lat = min(90.0, latitude + lat_delta)

    if min_lat <= -90.0 or max_lat >= 90.0:
        return min_lat, max_lat, None, None

    ratio = math.sin(radius_km / EARTH_RADIUS_KM) / math.cos(math.radians(latitude))
    if ratio >= 1.0:
        return min_lat, max_lat, None, None
    lon_delta = math.degrees(math.asin(ratio))
    min_lon = longitude - lon_delta
    max_lon = longitude + lon_delta
    if min_lon < -180.0 or max_lon > 180.0:
        return min_lat, max_lat, None, None
    return min_lat, max_lat, min_lon, max_lon

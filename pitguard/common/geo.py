"""
Geographic utilities for PitGuard.

This module provides the pure geometry used by the risk engine and
occupancy tracking: spherical centroid, point-in-polygon testing and
great-circle distance. Points are any objects with ``lat``/``lng``
attributes (normally ``LatLng``).
"""

import math
from typing import Sequence, Tuple

from pitguard.core.models import LatLng

# 평균 지구 반지름 (미터)
EARTH_RADIUS_M = 6371000.0

# 위도 1도당 대략적인 거리 (미터)
METERS_PER_DEGREE = 111320.0

def distance_meters(a: LatLng, b: LatLng) -> float:
    """
    두 지점 간의 Haversine 대원 거리를 계산합니다 (미터).

    Args:
        a: 첫 번째 지점
        b: 두 번째 지점

    Returns:
        두 지점 간의 거리 (미터)
    """
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)

    h = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2)
    # 부동소수 오차로 1을 살짝 넘는 경우 방지
    c = 2 * math.asin(min(1.0, math.sqrt(h)))

    return EARTH_RADIUS_M * c

def point_in_polygon(point: LatLng, polygon: Sequence[LatLng]) -> bool:
    """
    점이 폴리곤 내부에 있는지 Ray casting 알고리즘으로 확인합니다.

    x 축은 경도, y 축은 위도입니다. 경계선/꼭짓점 위의 점은
    결과가 정의되지 않습니다 (별도 처리하지 않음).

    Args:
        point: 확인할 점
        polygon: 폴리곤 꼭짓점 (닫힘은 암묵적)

    Returns:
        점이 폴리곤 내부에 있으면 True
    """
    if len(polygon) < 3:
        return False

    x, y = point.lng, point.lat
    inside = False

    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i].lng, polygon[i].lat
        xj, yj = polygon[j].lng, polygon[j].lat
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i

    return inside

def centroid(polygon: Sequence[LatLng]) -> LatLng:
    """
    폴리곤의 구면 중심점을 계산합니다.

    각 꼭짓점을 단위 구의 직교 좌표로 변환해 평균한 뒤
    다시 위경도로 투영합니다.
    """
    x = y = z = 0.0
    for p in polygon:
        lat = math.radians(p.lat)
        lng = math.radians(p.lng)
        x += math.cos(lat) * math.cos(lng)
        y += math.cos(lat) * math.sin(lng)
        z += math.sin(lat)

    total = len(polygon)
    x /= total
    y /= total
    z /= total

    lng = math.atan2(y, x)
    lat = math.atan2(z, math.sqrt(x * x + y * y))
    return LatLng(lat=math.degrees(lat), lng=math.degrees(lng))

def square_around(lat: float, lng: float, half_width_m: float) -> Tuple[LatLng, LatLng, LatLng, LatLng]:
    """중심점 기준 정사각형 폴리곤을 생성합니다 (미터 → 도 근사 변환)."""
    d = half_width_m / METERS_PER_DEGREE
    return (
        LatLng(lat=lat - d, lng=lng - d),
        LatLng(lat=lat - d, lng=lng + d),
        LatLng(lat=lat + d, lng=lng + d),
        LatLng(lat=lat + d, lng=lng - d),
    )

def validate_coordinates(lat: float, lng: float) -> bool:
    """좌표가 유효한지 확인합니다."""
    return -90 <= lat <= 90 and -180 <= lng <= 180

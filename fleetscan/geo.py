"""距离计算（Haversine）与最近资产查找。"""

import math
from typing import Iterable, Optional, Tuple

from . import models


def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """两点（纬度, 经度）间的大圆距离，单位公里。"""
    R = 6371.0  # 地球半径 km
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def has_known_location(latitude: float, longitude: float) -> bool:
    """0,0 表示位置未知。"""
    return latitude != 0 or longitude != 0


def nearest_asset(
    states: Iterable[models.AssetState], latitude: float, longitude: float
) -> Optional[Tuple[models.AssetState, int]]:
    """返回位置已知的最近资产及距离（米，四舍五入）；没有则 None。"""
    best: Optional[Tuple[models.AssetState, float]] = None
    for s in states:
        if not has_known_location(s.last_latitude, s.last_longitude):
            continue
        d = haversine_distance_km(latitude, longitude, s.last_latitude, s.last_longitude)
        if best is None or d < best[1]:
            best = (s, d)
    if best is None:
        return None
    return best[0], int(round(best[1] * 1000))

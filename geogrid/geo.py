"""Geospatial helpers and grid generation."""
from __future__ import annotations

import math
from typing import List, Tuple

from .models import GridConfigError, GridPoint

EARTH_RADIUS_KM = 6371.0
SHAPES = ("square", "circular")


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def destination_point(lat: float, lng: float, bearing_rad: float, distance_km: float) -> Tuple[float, float]:
    """Great-circle destination from (lat, lng) along a bearing (radians from north)."""
    if distance_km == 0:
        return lat, lng
    lat_rad = math.radians(lat)
    lng_rad = math.radians(lng)
    angular = distance_km / EARTH_RADIUS_KM

    new_lat = math.asin(
        math.sin(lat_rad) * math.cos(angular)
        + math.cos(lat_rad) * math.sin(angular) * math.cos(bearing_rad)
    )
    new_lng = lng_rad + math.atan2(
        math.sin(bearing_rad) * math.sin(angular) * math.cos(lat_rad),
        math.cos(angular) - math.sin(lat_rad) * math.sin(new_lat),
    )
    out_lng = (math.degrees(new_lng) + 540.0) % 360.0 - 180.0
    return math.degrees(new_lat), out_lng


def normalized_offset(index: int, grid_size: int) -> float:
    """Lattice index mapped onto [-1, 1]; a single-point grid sits at 0."""
    if grid_size == 1:
        return 0.0
    return 2.0 * index / (grid_size - 1) - 1.0


def validate_grid_request(
    center_lat: float,
    center_lng: float,
    radius_km: float,
    grid_size: int,
    shape: str,
) -> None:
    if not isinstance(grid_size, int) or isinstance(grid_size, bool) or grid_size <= 0:
        raise GridConfigError(f"grid_size must be a positive integer, got {grid_size!r}")
    if shape not in SHAPES:
        raise GridConfigError(f"shape must be one of {', '.join(SHAPES)}, got {shape!r}")
    if radius_km is None or radius_km < 0 or math.isnan(radius_km):
        raise GridConfigError(f"radius_km must be >= 0, got {radius_km!r}")
    if not -90.0 <= center_lat <= 90.0:
        raise GridConfigError(f"center latitude out of range: {center_lat}")
    if not -180.0 <= center_lng <= 180.0:
        raise GridConfigError(f"center longitude out of range: {center_lng}")


def generate_grid(
    center_lat: float,
    center_lng: float,
    radius_km: float,
    grid_size: int,
    shape: str = "square",
) -> List[GridPoint]:
    """Lay an N x N sampling lattice around a center.

    Rows run south to north and columns west to east. Each lattice offset is
    scaled by radius_km and projected with a great-circle bearing/distance
    step from the center. A circular grid keeps only points inside the
    inscribed circle (normalized distance <= 1). Ids are row*N + col + 1.
    """
    validate_grid_request(center_lat, center_lng, radius_km, grid_size, shape)
    center_lat = float(center_lat)
    center_lng = float(center_lng)
    radius_km = float(radius_km)

    points: List[GridPoint] = []
    for row in range(grid_size):
        north = normalized_offset(row, grid_size)
        for col in range(grid_size):
            east = normalized_offset(col, grid_size)
            norm_dist = math.hypot(north, east)
            if shape == "circular" and norm_dist > 1.0 + 1e-9:
                continue
            bearing = math.atan2(east, north)
            lat, lng = destination_point(center_lat, center_lng, bearing, radius_km * norm_dist)
            points.append(GridPoint(id=row * grid_size + col + 1, lat=lat, lng=lng))
    return points


def point_normalized_distance(point_id: int, grid_size: int) -> float:
    """Normalized lattice distance of a point id from the grid center."""
    row, col = divmod(point_id - 1, grid_size)
    return math.hypot(normalized_offset(row, grid_size), normalized_offset(col, grid_size))

#!/usr/bin/env python3
"""
Pharmacy Discovery — Geodesy

Great-circle distance, bearing, bounding boxes, spherical centroids and
coverage-grid tiling for pharmacy discovery.  Also carries the small travel
and formatting helpers the discovery responses expose.

No external geo-libraries required — pure math with stdlib.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from .errors import InvalidInput


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_KM = 6371.0

# Flat-earth approximation used for grid tiling
KM_PER_DEGREE = 111.0

# Upper bound on generated grid cells (one analysis request)
MAX_GRID_CELLS = 10_000

# Float tolerance when counting grid steps
_STEP_EPSILON = 1e-6

# Average speeds (km/h) by transport mode
TRAVEL_SPEEDS_KMH = {
    "walking": 5.0,
    "cycling": 15.0,
    "driving": 40.0,   # city traffic
    "delivery": 30.0,  # delivery vehicle in city
}

DEFAULT_DELIVERY_RADII_KM = (5.0, 10.0, 15.0, 20.0)


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 coordinate pair."""
    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        """Finite and within [-90, 90] / [-180, 180]."""
        return validate_coordinates(self.latitude, self.longitude)

    @classmethod
    def validated(cls, latitude, longitude) -> "Coordinate":
        """Build a Coordinate, raising InvalidInput when out of range."""
        try:
            lat, lon = float(latitude), float(longitude)
        except (TypeError, ValueError):
            raise InvalidInput(f"coordinates must be numeric, got ({latitude!r}, {longitude!r})")
        if not validate_coordinates(lat, lon):
            raise InvalidInput(f"coordinates out of range: ({lat}, {lon})")
        return cls(latitude=lat, longitude=lon)

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class BoundingBox:
    """Lat/lon box in degrees. ``west > east`` means it crosses the antimeridian."""
    north: float
    south: float
    east: float
    west: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    def contains(self, coord: Coordinate) -> bool:
        if not (self.south <= coord.latitude <= self.north):
            return False
        if self.crosses_antimeridian:
            return coord.longitude >= self.west or coord.longitude <= self.east
        return self.west <= coord.longitude <= self.east

    def expanded(self, margin_km: float) -> "BoundingBox":
        """Grow the box by margin_km on every side."""
        if margin_km <= 0:
            return self
        lat_delta = math.degrees(margin_km / EARTH_RADIUS_KM)
        north = min(90.0, self.north + lat_delta)
        south = max(-90.0, self.south - lat_delta)
        # Use the latitude closest to a pole for the widest longitude margin
        worst_lat = max(abs(north), abs(south))
        cos_lat = math.cos(math.radians(worst_lat))
        if cos_lat < 1e-12:
            return BoundingBox(north=north, south=south, east=180.0, west=-180.0)
        lon_delta = lat_delta / cos_lat
        width = (self.east - self.west) % 360.0 if self.crosses_antimeridian else self.east - self.west
        if width + 2 * lon_delta >= 360.0:
            return BoundingBox(north=north, south=south, east=180.0, west=-180.0)
        return BoundingBox(
            north=north,
            south=south,
            east=_wrap_longitude(self.east + lon_delta),
            west=_wrap_longitude(self.west - lon_delta),
        )

    def to_dict(self) -> dict[str, float]:
        return {"north": self.north, "south": self.south, "east": self.east, "west": self.west}


@dataclass
class GridCell:
    """One coverage-grid point; analysis fields are filled by coverage.py."""
    latitude: float
    longitude: float
    cell_id: str
    covered: bool = False
    nearest_pharmacy_ids: list[str] = field(default_factory=list)
    average_distance_km: float | None = None
    pharmacy_count: int = 0
    status: str = "underserved"

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def to_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "cell_id": self.cell_id,
            "covered": self.covered,
            "nearest_pharmacy_ids": list(self.nearest_pharmacy_ids),
            "average_distance_km": self.average_distance_km,
            "pharmacy_count": self.pharmacy_count,
            "status": self.status,
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_coordinates(latitude, longitude) -> bool:
    """True when both values are finite numbers within WGS84 range."""
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        return False
    if not isinstance(latitude, (int, float)) or not isinstance(longitude, (int, float)):
        return False
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def _wrap_longitude(lon: float) -> float:
    """Wrap a longitude into [-180, 180]."""
    if -180.0 <= lon <= 180.0:
        return lon
    return ((lon + 180.0) % 360.0) - 180.0


# ---------------------------------------------------------------------------
# Core distance calculation
# ---------------------------------------------------------------------------


def haversine_km(coord_a: Coordinate, coord_b: Coordinate) -> float:
    """
    Compute the great-circle distance in kilometres between two WGS84 points
    using the Haversine formula.
    """
    lat1 = math.radians(coord_a.latitude)
    lat2 = math.radians(coord_b.latitude)
    dlat = math.radians(coord_b.latitude - coord_a.latitude)
    dlon = math.radians(coord_b.longitude - coord_a.longitude)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def is_within_radius(center: Coordinate, point: Coordinate, radius_km: float) -> bool:
    return haversine_km(center, point) <= radius_km


def bearing_degrees(coord_a: Coordinate, coord_b: Coordinate) -> float:
    """Initial bearing from a to b in degrees, normalised to [0, 360)."""
    lat1 = math.radians(coord_a.latitude)
    lat2 = math.radians(coord_b.latitude)
    dlon = math.radians(coord_b.longitude - coord_a.longitude)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)

    bearing = (math.degrees(math.atan2(y, x)) + 360.0) % 360.0
    # (-tiny + 360) % 360 can round up to exactly 360.0
    return 0.0 if bearing >= 360.0 else bearing


# ---------------------------------------------------------------------------
# Bounding boxes and centroids
# ---------------------------------------------------------------------------


def bounding_box(center: Coordinate, radius_km: float) -> BoundingBox:
    """
    Return a lat/lon bounding box enclosing a circle of radius_km around
    center.

    The longitude span is widened by 1/cos(latitude).  When that blows up
    near the poles (or the circle reaches a pole) the box covers every
    longitude instead of producing a distorted span.
    """
    if radius_km < 0:
        raise InvalidInput(f"radius must be non-negative, got {radius_km}")

    lat_delta = math.degrees(radius_km / EARTH_RADIUS_KM)
    north = center.latitude + lat_delta
    south = center.latitude - lat_delta

    cos_lat = math.cos(math.radians(center.latitude))
    reaches_pole = north >= 90.0 or south <= -90.0
    north = min(north, 90.0)
    south = max(south, -90.0)

    if reaches_pole or cos_lat < 1e-12:
        return BoundingBox(north=north, south=south, east=180.0, west=-180.0)

    lon_delta = lat_delta / cos_lat
    if lon_delta >= 180.0:
        return BoundingBox(north=north, south=south, east=180.0, west=-180.0)

    return BoundingBox(
        north=north,
        south=south,
        east=_wrap_longitude(center.longitude + lon_delta),
        west=_wrap_longitude(center.longitude - lon_delta),
    )


def center_of_mass(coords: list[Coordinate]) -> Coordinate | None:
    """
    Spherical centroid of a set of points.

    Each point is projected onto the unit sphere, the 3D vectors are
    averaged and the mean vector is converted back to lat/lon, which keeps
    points on either side of the antimeridian (or around a pole) together.
    Returns None for an empty list.
    """
    if not coords:
        return None
    if len(coords) == 1:
        return coords[0]

    x = y = z = 0.0
    for coord in coords:
        lat = math.radians(coord.latitude)
        lon = math.radians(coord.longitude)
        x += math.cos(lat) * math.cos(lon)
        y += math.cos(lat) * math.sin(lon)
        z += math.sin(lat)

    total = len(coords)
    x, y, z = x / total, y / total, z / total

    central_lon = math.atan2(y, x)
    central_lat = math.atan2(z, math.sqrt(x * x + y * y))

    return Coordinate(latitude=math.degrees(central_lat), longitude=math.degrees(central_lon))


# ---------------------------------------------------------------------------
# Coverage grid
# ---------------------------------------------------------------------------


def _axis_steps(span: float, step: float) -> int:
    """Grid points along one axis, both boundaries included."""
    if span <= 0:
        return 1
    return math.ceil(span / step - _STEP_EPSILON) + 1


def coverage_grid(box: BoundingBox, cell_size_km: float) -> list[GridCell]:
    """
    Tile a bounding box into grid points spaced cell_size_km apart.

    Latitude step is cell_size_km / 111; the longitude step is widened by
    1/cos(mean latitude).  Points start at the south-west corner and the
    last point on each axis is clamped to the north/east edge, so the
    boundary is always part of the grid.  Boxes crossing the antimeridian
    are not supported.
    """
    if not (cell_size_km > 0 and math.isfinite(cell_size_km)):
        raise InvalidInput(f"cell size must be a positive number, got {cell_size_km}")
    if box.north < box.south:
        raise InvalidInput("bounding box north must be >= south")
    if box.east < box.west:
        raise InvalidInput("bounding box east must be >= west")
    for lat, lon in ((box.north, box.east), (box.south, box.west)):
        if not validate_coordinates(lat, lon):
            raise InvalidInput(f"bounding box corner out of range: ({lat}, {lon})")

    lat_step = cell_size_km / KM_PER_DEGREE
    mean_lat = (box.north + box.south) / 2
    cos_mean = math.cos(math.radians(mean_lat))
    if cos_mean < 1e-12:
        raise InvalidInput("coverage grid cannot be centred on a pole")
    lon_step = cell_size_km / (KM_PER_DEGREE * cos_mean)

    rows = _axis_steps(box.north - box.south, lat_step)
    cols = _axis_steps(box.east - box.west, lon_step)
    if rows * cols > MAX_GRID_CELLS:
        raise InvalidInput(
            f"grid of {rows}x{cols} cells exceeds the {MAX_GRID_CELLS} cell limit; "
            "use a larger cell size or a smaller area"
        )

    grid = []
    for i in range(rows):
        lat = min(box.south + i * lat_step, box.north)
        for j in range(cols):
            lon = min(box.west + j * lon_step, box.east)
            grid.append(GridCell(
                latitude=round(lat, 4),
                longitude=round(lon, 4),
                cell_id=f"{i}_{j}",
            ))
    return grid


# ---------------------------------------------------------------------------
# Travel estimates and display formatting
# ---------------------------------------------------------------------------


def estimate_travel_minutes(distance_km: float, mode: str = "driving") -> int:
    """Travel time in whole minutes; unknown modes use the driving speed."""
    speed = TRAVEL_SPEEDS_KMH.get(mode, TRAVEL_SPEEDS_KMH["driving"])
    return round(distance_km / speed * 60)


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{round(distance_km * 1000)} m"
    if distance_km < 10:
        return f"{distance_km:.1f} km"
    return f"{round(distance_km)} km"


def format_estimated_time(minutes: float) -> str:
    if minutes < 60:
        return f"{round(minutes)} min"
    hours = int(minutes // 60)
    remaining = round(minutes % 60)
    if remaining == 60:
        hours, remaining = hours + 1, 0
    if remaining == 0:
        return f"{hours} hr"
    return f"{hours}h {remaining}m"


def delivery_zones(
    center: Coordinate,
    radii_km: tuple[float, ...] | list[float] = DEFAULT_DELIVERY_RADII_KM,
) -> list[dict]:
    """Concentric delivery zones with progressive base fees."""
    zones = []
    for index, radius in enumerate(radii_km):
        if radius <= 5:
            description = "Local delivery"
        elif radius <= 10:
            description = "Standard delivery"
        elif radius <= 15:
            description = "Extended delivery"
        else:
            description = "Long distance delivery"
        zones.append({
            "zone": index + 1,
            "name": f"Zone {index + 1}",
            "radius_km": radius,
            "description": description,
            "estimated_minutes": estimate_travel_minutes(radius, "delivery"),
            "base_fee": index * 2.5 + 2.5,
            "bounding_box": bounding_box(center, radius).to_dict(),
        })
    return zones

"""
Collector route planning.

Given a depot and the collector's active pickups, produce a visiting order and
rough planning estimates (distance, duration, ETA, fuel). "optimal" mode is a
greedy nearest-neighbour tour: it has no optimality guarantee and no
improvement pass, so adversarial layouts can give noticeably long tours.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

EARTH_RADIUS_KM = 6371.0
AVERAGE_SPEED_KMH = 30.0
FUEL_LITRES_PER_100KM = 10.0
# Width of the box (degrees) used to place pickups that have no coordinates.
JITTER_DEGREES = 0.05

DEFAULT_DEPOT: Tuple[float, float] = (-1.2921, 36.8219)

ACTIVE_STATUSES = ("scheduled", "in_progress")

MODE_OPTIMAL = "optimal"
MODE_BY_WASTE_TYPE = "by_waste_type"
ROUTE_MODES = (MODE_OPTIMAL, MODE_BY_WASTE_TYPE)

Coordinate = Tuple[float, float]


@dataclass(frozen=True)
class RoutePoint:
    collection_id: int
    lat: float
    lng: float
    waste_type: Optional[str] = None
    address: Optional[str] = None
    estimated: bool = False

    @property
    def coordinate(self) -> Coordinate:
        return (self.lat, self.lng)


@dataclass
class RoutePlan:
    depot: Coordinate
    points: List[RoutePoint]
    distance_km: float
    duration_min: float
    eta: datetime
    fuel_litres: float
    mode: str = MODE_OPTIMAL
    segments_km: List[float] = field(default_factory=list)

    @property
    def stops(self) -> List[Coordinate]:
        """Depot, every point in visiting order, then depot again."""
        return [self.depot] + [p.coordinate for p in self.points] + [self.depot]

    @property
    def order(self) -> List[int]:
        return [p.collection_id for p in self.points]

    def as_dict(self) -> dict:
        return {
            "mode": self.mode,
            "depot": {"lat": self.depot[0], "lng": self.depot[1]},
            "order": self.order,
            "stops": [{"lat": lat, "lng": lng} for lat, lng in self.stops],
            "points": [
                {
                    "collectionId": p.collection_id,
                    "lat": p.lat,
                    "lng": p.lng,
                    "wasteType": p.waste_type,
                    "address": p.address,
                    "estimated": p.estimated,
                }
                for p in self.points
            ],
            "totalDistanceKm": round(self.distance_km, 2),
            "totalDurationMin": round(self.duration_min),
            "eta": self.eta.isoformat(),
            "fuelEstimateLitres": round(self.fuel_litres, 1),
        }


# PUBLIC_INTERFACE
def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in kilometres between two (lat, lng) pairs."""
    lat1, lng1 = map(math.radians, a)
    lat2, lng2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def tour_segments(stops: Sequence[Coordinate]) -> List[float]:
    return [haversine_km(stops[i], stops[i + 1]) for i in range(len(stops) - 1)]


def _field(obj, name: str):
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _coordinates(location) -> Optional[Coordinate]:
    if not location:
        return None
    lat, lng = _field(location, "lat"), _field(location, "lng")
    if lat is None or lng is None:
        return None
    try:
        return (float(lat), float(lng))
    except (TypeError, ValueError):
        return None


# PUBLIC_INTERFACE
def active_collections(collections: Iterable) -> list:
    """Keep only pickups a collector still has to visit."""
    return [c for c in collections if _field(c, "status") in ACTIVE_STATUSES]


# PUBLIC_INTERFACE
def resolve_points(collections: Iterable, depot: Coordinate, rng: Optional[random.Random] = None) -> List[RoutePoint]:
    """
    Turn collections (ORM rows or dicts) into route points.

    Pickups without usable coordinates get a placeholder position jittered
    around the depot and are flagged `estimated`.
    """
    rng = rng or random.Random()
    points = []
    for c in collections:
        coords = _coordinates(_field(c, "location"))
        estimated = coords is None
        if estimated:
            coords = (
                depot[0] + (rng.random() - 0.5) * JITTER_DEGREES,
                depot[1] + (rng.random() - 0.5) * JITTER_DEGREES,
            )
        points.append(
            RoutePoint(
                collection_id=_field(c, "id"),
                lat=coords[0],
                lng=coords[1],
                waste_type=_field(c, "waste_type"),
                address=_field(c, "address"),
                estimated=estimated,
            )
        )
    return points


# PUBLIC_INTERFACE
def nearest_neighbor_order(depot: Coordinate, points: Sequence[RoutePoint]) -> List[RoutePoint]:
    """Greedy tour: always drive to the closest unvisited point. Ties keep list order."""
    remaining = list(points)
    ordered = []
    current = depot
    while remaining:
        best_index = 0
        best_distance = haversine_km(current, remaining[0].coordinate)
        for i in range(1, len(remaining)):
            d = haversine_km(current, remaining[i].coordinate)
            if d < best_distance:
                best_index, best_distance = i, d
        nxt = remaining.pop(best_index)
        ordered.append(nxt)
        current = nxt.coordinate
    return ordered


# PUBLIC_INTERFACE
def plan_route(
    collections: Iterable,
    depot: Coordinate = DEFAULT_DEPOT,
    mode: str = MODE_OPTIMAL,
    waste_type: Optional[str] = None,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> Optional[RoutePlan]:
    """
    Plan a depot-to-depot tour over the active collections.

    Args:
        collections: ORM rows or dicts with id, status, waste_type, address, location.
        depot: start and end coordinate.
        mode: "optimal" (nearest neighbour) or "by_waste_type" (list order).
        waste_type: restrict to one waste type; None or "all" keeps everything.
        now: clock used for the ETA.
        rng: random source for placeholder positions.

    Returns:
        RoutePlan, or None when there is nothing to visit.
    """
    if mode not in ROUTE_MODES:
        raise ValueError(f"Unknown route mode: {mode}")

    active = active_collections(collections)
    if waste_type and waste_type != "all":
        active = [c for c in active if _field(c, "waste_type") == waste_type]
    if not active:
        return None

    points = resolve_points(active, depot, rng)
    if mode == MODE_OPTIMAL:
        points = nearest_neighbor_order(depot, points)

    stops = [depot] + [p.coordinate for p in points] + [depot]
    segments = tour_segments(stops)
    distance_km = sum(segments)
    duration_min = distance_km / AVERAGE_SPEED_KMH * 60
    now = now or datetime.now(timezone.utc)

    return RoutePlan(
        depot=depot,
        points=points,
        distance_km=distance_km,
        duration_min=duration_min,
        eta=now + timedelta(minutes=duration_min),
        fuel_litres=distance_km / 100 * FUEL_LITRES_PER_100KM,
        mode=mode,
        segments_km=segments,
    )

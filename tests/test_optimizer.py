import random
from datetime import datetime, timedelta, timezone

import pytest

from pipapal.routing import haversine_km, plan_route
from pipapal.routing.optimizer import (
    DEFAULT_DEPOT,
    JITTER_DEGREES,
    MODE_BY_WASTE_TYPE,
    nearest_neighbor_order,
    resolve_points,
    tour_segments,
)

WESTLANDS = (-1.2683, 36.8106)
KAREN = (-1.3218, 36.7116)
NOW = datetime(2030, 1, 15, 8, 0, tzinfo=timezone.utc)


def pickup(cid, coords=None, status="scheduled", waste_type="plastic"):
    location = {"lat": coords[0], "lng": coords[1]} if coords else None
    return {"id": cid, "status": status, "waste_type": waste_type, "address": f"Stop {cid}", "location": location}


def test_haversine_zero_and_symmetric():
    assert haversine_km(WESTLANDS, WESTLANDS) == 0
    assert haversine_km(DEFAULT_DEPOT, KAREN) == pytest.approx(haversine_km(KAREN, DEFAULT_DEPOT))


def test_depot_to_westlands_is_about_three_km():
    assert 2.5 < haversine_km(DEFAULT_DEPOT, WESTLANDS) < 3.5


def test_nearest_neighbour_visits_closer_point_first():
    plan = plan_route([pickup(2, KAREN), pickup(1, WESTLANDS)], now=NOW)

    assert plan.order == [1, 2]
    assert plan.stops[0] == DEFAULT_DEPOT
    assert plan.stops[-1] == DEFAULT_DEPOT
    assert len(plan.stops) == 4


def test_totals_are_derived_from_segments():
    plan = plan_route([pickup(1, WESTLANDS), pickup(2, KAREN)], now=NOW)

    assert plan.distance_km == pytest.approx(sum(tour_segments(plan.stops)))
    assert plan.duration_min == pytest.approx(plan.distance_km / 30 * 60)
    assert plan.fuel_litres == pytest.approx(plan.distance_km / 100 * 10)
    assert plan.eta == NOW + timedelta(minutes=plan.duration_min)


def test_single_stop_is_a_round_trip():
    plan = plan_route([pickup(1, WESTLANDS)], now=NOW)
    assert plan.distance_km == pytest.approx(2 * haversine_km(DEFAULT_DEPOT, WESTLANDS))


def test_nothing_active_returns_none():
    collections = [pickup(1, WESTLANDS, status="completed"), pickup(2, KAREN, status="pending")]
    assert plan_route(collections) is None
    assert plan_route([]) is None


def test_only_scheduled_and_in_progress_are_routed():
    collections = [
        pickup(1, WESTLANDS, status="in_progress"),
        pickup(2, KAREN, status="cancelled"),
        pickup(3, KAREN, status="scheduled"),
    ]
    assert sorted(plan_route(collections, now=NOW).order) == [1, 3]


def test_waste_type_filter():
    collections = [pickup(1, WESTLANDS, waste_type="glass"), pickup(2, KAREN, waste_type="paper")]

    assert plan_route(collections, waste_type="paper", now=NOW).order == [2]
    assert plan_route(collections, waste_type="metal") is None
    assert len(plan_route(collections, waste_type="all", now=NOW).points) == 2


def test_by_waste_type_mode_keeps_input_order():
    plan = plan_route([pickup(2, KAREN), pickup(1, WESTLANDS)], mode=MODE_BY_WASTE_TYPE, now=NOW)
    assert plan.order == [2, 1]


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        plan_route([pickup(1, WESTLANDS)], mode="fastest")


def test_missing_coordinates_are_placed_near_depot():
    points = resolve_points([pickup(7), pickup(8, WESTLANDS)], DEFAULT_DEPOT, random.Random(42))

    estimated, exact = points
    assert estimated.estimated and not exact.estimated
    assert abs(estimated.lat - DEFAULT_DEPOT[0]) <= JITTER_DEGREES / 2
    assert abs(estimated.lng - DEFAULT_DEPOT[1]) <= JITTER_DEGREES / 2
    assert exact.coordinate == WESTLANDS


def test_ties_keep_list_order():
    points = resolve_points([pickup(1, WESTLANDS), pickup(2, WESTLANDS)], DEFAULT_DEPOT)
    assert [p.collection_id for p in nearest_neighbor_order(DEFAULT_DEPOT, points)] == [1, 2]


def test_as_dict_shape():
    data = plan_route([pickup(1, WESTLANDS)], now=NOW).as_dict()

    assert data["order"] == [1]
    assert data["depot"] == {"lat": DEFAULT_DEPOT[0], "lng": DEFAULT_DEPOT[1]}
    assert data["points"][0]["collectionId"] == 1
    assert data["eta"].startswith("2030-01-15T")
    assert set(data) >= {"totalDistanceKm", "totalDurationMin", "fuelEstimateLitres", "stops"}


@pytest.mark.parametrize("mode", ["optimal", MODE_BY_WASTE_TYPE])
def test_every_pickup_is_visited_exactly_once(mode):
    rng = random.Random(2030)
    for n in range(1, 41):
        pickups = []
        for cid in range(1, n + 1):
            # Roughly a third have no coordinates and are placed near the depot.
            coords = None if rng.random() < 0.3 else (rng.uniform(-1.45, -1.15), rng.uniform(36.65, 37.0))
            pickups.append(pickup(cid, coords, status=rng.choice(["scheduled", "in_progress"])))
        rng.shuffle(pickups)

        plan = plan_route(pickups, mode=mode, now=NOW, rng=random.Random(n))

        assert sorted(plan.order) == list(range(1, n + 1))
        assert len(plan.stops) == n + 2
        assert plan.stops[0] == plan.stops[-1] == DEFAULT_DEPOT
        assert plan.distance_km == pytest.approx(sum(tour_segments(plan.stops)))
        if mode == MODE_BY_WASTE_TYPE:
            assert plan.order == [p["id"] for p in pickups]

import pytest

from pipapal.services.collections import TRANSITIONS, can_transition

WESTLANDS = {"lat": -1.2683, "lng": 36.8106}
KAREN = {"lat": -1.3218, "lng": 36.7116}


@pytest.fixture
def pickup(client, make_user, schedule):
    """A household's pickup already claimed by a collector."""
    household, household_headers = make_user("household")
    collector, collector_headers = make_user("collector")
    created = schedule(household_headers, location=WESTLANDS)
    resp = client.post(f"/api/collections/{created['id']}/accept", headers=collector_headers)
    assert resp.status_code == 200
    return {
        "collection": resp.json(),
        "household": household,
        "household_headers": household_headers,
        "collector": collector,
        "collector_headers": collector_headers,
    }


def move(client, pickup, headers_key, **body):
    return client.patch(f"/api/collections/{pickup['collection']['id']}", json=body, headers=pickup[headers_key])


def test_transition_table():
    assert can_transition("scheduled", "in_progress")
    assert can_transition("in_progress", "completed")
    assert can_transition("scheduled", "scheduled")
    assert not can_transition("scheduled", "completed")
    assert not can_transition("completed", "cancelled")
    assert not can_transition("cancelled", "scheduled")
    assert not can_transition("scheduled", "lost")
    assert all(not TRANSITIONS[s] for s in TRANSITIONS if s.value in ("completed", "cancelled"))


def test_create_defaults_to_scheduled(client, make_user, schedule):
    household, headers = make_user("household")
    created = schedule(headers, waste_type="glass", wasteDescription="Bottles")

    assert created["status"] == "scheduled"
    assert created["userId"] == household["id"]
    assert created["collectorId"] is None
    assert created["wasteDescription"] == "Bottles"

    mine = client.get("/api/collections", headers=headers).json()
    assert [c["id"] for c in mine] == [created["id"]]
    upcoming = client.get("/api/collections/upcoming", headers=headers).json()
    assert [c["id"] for c in upcoming] == [created["id"]]


def test_only_households_and_organizations_request_pickups(client, make_user):
    _, headers = make_user("recycler")
    resp = client.post(
        "/api/collections",
        json={"wasteType": "paper", "scheduledDate": "2030-01-15T09:00:00Z", "address": "Nairobi"},
        headers=headers,
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "You don't have the required permission: request_pickup"


def test_invalid_waste_type_is_rejected(client, make_user):
    _, headers = make_user("household")
    resp = client.post(
        "/api/collections",
        json={"wasteType": "uranium", "scheduledDate": "2030-01-15T09:00:00Z", "address": "Nairobi"},
        headers=headers,
    )
    assert resp.status_code == 422


def test_available_and_accept(client, make_user, schedule):
    _, household_headers = make_user("household")
    _, collector_headers = make_user("collector")
    _, rival_headers = make_user("collector")
    created = schedule(household_headers)

    available = client.get("/api/collections/available", headers=collector_headers).json()
    assert [c["id"] for c in available] == [created["id"]]
    assert client.get(f"/api/collections/{created['id']}", headers=rival_headers).status_code == 200

    accepted = client.post(f"/api/collections/{created['id']}/accept", headers=collector_headers)
    assert accepted.json()["collectorId"] is not None
    assert accepted.json()["status"] == "scheduled"

    assert client.get("/api/collections/available", headers=collector_headers).json() == []
    assert client.post(f"/api/collections/{created['id']}/accept", headers=rival_headers).status_code == 400
    assert client.get(f"/api/collections/{created['id']}", headers=rival_headers).status_code == 403
    assert client.get("/api/collections/available", headers=household_headers).status_code == 403


def test_collector_progresses_and_completion_credits_household(client, pickup):
    assert move(client, pickup, "collector_headers", status="in_progress").status_code == 200

    done = move(client, pickup, "collector_headers", status="completed", wasteAmount=10)
    assert done.status_code == 200
    assert done.json()["status"] == "completed"
    assert done.json()["completedDate"] is not None
    assert done.json()["wasteAmount"] == 10

    headers = pickup["household_headers"]
    assert client.get("/api/impact", headers=headers).json() == {
        "waterSaved": 100.0,
        "co2Reduced": 25.0,
        "treesEquivalent": 1.0,
        "energyConserved": 50.0,
        "wasteAmount": 10.0,
    }
    assert client.get("/api/user", headers=headers).json()["sustainabilityScore"] == 50

    kinds = [a["activityType"] for a in client.get("/api/activities", headers=headers).json()]
    assert "collection_completed" in kinds
    assert "score_increase" in kinds


def test_large_pickup_awards_badges_once(client, make_user, schedule):
    _, household_headers = make_user("household")
    _, collector_headers = make_user("collector")

    for _ in range(2):
        created = schedule(household_headers)
        cid = created["id"]
        client.post(f"/api/collections/{cid}/accept", headers=collector_headers)
        client.patch(f"/api/collections/{cid}", json={"status": "in_progress"}, headers=collector_headers)
        client.patch(
            f"/api/collections/{cid}", json={"status": "completed", "wasteAmount": 120}, headers=collector_headers
        )

    badges = sorted(b["badgeType"] for b in client.get("/api/badges", headers=household_headers).json())
    assert badges == ["eco_starter", "energy_pro", "water_saver", "zero_waste_hero"]


def test_skipping_a_step_is_a_conflict(client, pickup):
    resp = move(client, pickup, "collector_headers", status="completed")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Cannot change status from 'scheduled' to 'completed'"


def test_terminal_states_are_final(client, pickup):
    assert move(client, pickup, "household_headers", status="cancelled").status_code == 200
    assert move(client, pickup, "collector_headers", status="in_progress").status_code == 409


def test_completed_pickup_details_are_frozen(client, pickup):
    move(client, pickup, "collector_headers", status="in_progress")
    move(client, pickup, "collector_headers", status="completed", wasteAmount=10)

    resp = move(client, pickup, "household_headers", wasteType="glass", scheduledDate="2031-01-01T09:00:00Z")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "A completed collection can no longer be edited"
    assert move(client, pickup, "collector_headers", wasteAmount=500).status_code == 400

    cid = pickup["collection"]["id"]
    current = client.get(f"/api/collections/{cid}", headers=pickup["household_headers"]).json()
    assert current["wasteType"] == "plastic"
    assert current["wasteAmount"] == 10
    assert client.get("/api/user", headers=pickup["household_headers"]).json()["sustainabilityScore"] == 50


def test_household_can_cancel_but_not_progress(client, pickup):
    assert move(client, pickup, "household_headers", status="in_progress").status_code == 403

    resp = move(client, pickup, "household_headers", status="cancelled")
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"


def test_field_ownership(client, pickup):
    assert move(client, pickup, "collector_headers", address="Elsewhere").status_code == 403
    assert move(client, pickup, "household_headers", wasteAmount=3).status_code == 403

    resp = move(client, pickup, "household_headers", notes="Gate code 1234", wasteType="metal")
    assert resp.status_code == 200
    assert resp.json()["notes"] == "Gate code 1234"
    assert resp.json()["wasteType"] == "metal"


def test_strangers_cannot_touch_a_collection(client, make_user, pickup):
    _, stranger_headers = make_user("household")
    cid = pickup["collection"]["id"]

    assert client.get(f"/api/collections/{cid}", headers=stranger_headers).status_code == 403
    resp = client.patch(f"/api/collections/{cid}", json={"status": "cancelled"}, headers=stranger_headers)
    assert resp.status_code == 403
    assert client.get("/api/collections/999", headers=stranger_headers).status_code == 404


def test_rating_after_completion(client, pickup):
    cid = pickup["collection"]["id"]
    headers = pickup["household_headers"]

    early = client.post(f"/api/collections/{cid}/rating", json={"score": 5}, headers=headers)
    assert early.status_code == 400

    move(client, pickup, "collector_headers", status="in_progress")
    move(client, pickup, "collector_headers", status="completed")

    assert client.post(f"/api/collections/{cid}/rating", json={"score": 6}, headers=headers).status_code == 422
    rated = client.post(f"/api/collections/{cid}/rating", json={"score": 4, "comment": "On time"}, headers=headers)
    assert rated.status_code == 201
    assert client.post(f"/api/collections/{cid}/rating", json={"score": 5}, headers=headers).status_code == 400

    summary = client.get(f"/api/users/{pickup['collector']['id']}/ratings", headers=headers).json()
    assert summary["count"] == 1
    assert summary["average"] == 4.0
    assert summary["ratings"][0]["comment"] == "On time"


def test_route_visits_closer_pickup_first(client, make_user, schedule):
    _, household_headers = make_user("household")
    _, collector_headers = make_user("collector")
    far = schedule(household_headers, location=KAREN)
    near = schedule(household_headers, location=WESTLANDS)
    for created in (far, near):
        client.post(f"/api/collections/{created['id']}/accept", headers=collector_headers)

    route = client.get("/api/collector/route", headers=collector_headers).json()["route"]

    assert route["order"] == [near["id"], far["id"]]
    assert len(route["stops"]) == 4
    assert route["stops"][0] == route["stops"][-1] == {"lat": -1.2921, "lng": 36.8219}
    assert route["totalDistanceKm"] > 0
    assert route["fuelEstimateLitres"] == pytest.approx(route["totalDistanceKm"] / 10, abs=0.1)


def test_route_filters_by_waste_type(client, make_user, schedule):
    _, household_headers = make_user("household")
    _, collector_headers = make_user("collector")
    glass = schedule(household_headers, waste_type="glass", location=KAREN)
    paper = schedule(household_headers, waste_type="paper", location=WESTLANDS)
    for created in (glass, paper):
        client.post(f"/api/collections/{created['id']}/accept", headers=collector_headers)

    route = client.get(
        "/api/collector/route", params={"mode": "by_waste_type", "waste_type": "glass"}, headers=collector_headers
    ).json()["route"]
    assert route["mode"] == "by_waste_type"
    assert route["order"] == [glass["id"]]


def test_route_is_null_without_active_pickups(client, make_user, pickup):
    _, idle_headers = make_user("collector")
    assert client.get("/api/collector/route", headers=idle_headers).json() == {"route": None}

    move(client, pickup, "household_headers", status="cancelled")
    assert client.get("/api/collector/route", headers=pickup["collector_headers"]).json() == {"route": None}


def test_route_is_for_collectors_only(client, pickup):
    assert client.get("/api/collector/route", headers=pickup["household_headers"]).status_code == 403
    resp = client.get("/api/collector/route", params={"mode": "fastest"}, headers=pickup["collector_headers"])
    assert resp.status_code == 422

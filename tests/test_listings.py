import pytest

from pipapal.db.seed import SEED_CENTERS, seed_recycling_centers
from pipapal.services.marketplace import can_move_listing


@pytest.fixture
def listing(client, completed):
    resp = client.post(
        "/api/material-listings",
        json={"collectionId": completed["id"], "price": 40, "description": "Scrap metal, sorted"},
        headers=completed["collector_headers"],
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def bid(client, listing, headers, amount=500, **extra):
    return client.post(f"/api/material-listings/{listing['id']}/bids", json={"amount": amount, **extra}, headers=headers)


def set_status(client, listing, headers, status):
    return client.patch(f"/api/material-listings/{listing['id']}", json={"status": status}, headers=headers)


def test_listing_lifecycle_table():
    assert can_move_listing("available", "pending_sale")
    assert can_move_listing("pending_sale", "available")
    assert can_move_listing("sold", "delivered")
    assert can_move_listing("delivered", "completed")
    assert can_move_listing("withdrawn", "withdrawn")
    assert not can_move_listing("available", "sold")
    assert not can_move_listing("completed", "available")
    assert not can_move_listing("expired", "available")
    assert not can_move_listing("available", "auctioned")


def test_listing_defaults_to_the_pickup(completed, listing):
    assert listing["collectorId"] == completed["collector"]["id"]
    assert listing["materialType"] == "metal"
    assert listing["quantity"] == 12.5
    assert listing["location"] == "Nairobi"
    assert listing["price"] == 40
    assert listing["status"] == "available"


def test_only_the_handling_collector_lists_completed_material(client, make_user, schedule, completed, listing):
    _, rival_headers = make_user("collector")
    assert (
        client.post("/api/material-listings", json={"collectionId": completed["id"]}, headers=rival_headers).status_code
        == 403
    )
    assert (
        client.post(
            "/api/material-listings", json={"collectionId": completed["id"]}, headers=completed["household_headers"]
        ).status_code
        == 403
    )

    again = client.post(
        "/api/material-listings", json={"collectionId": completed["id"]}, headers=completed["collector_headers"]
    )
    assert again.status_code == 400
    assert again.json()["detail"] == "This material is already listed"

    open_pickup = schedule(completed["household_headers"])
    client.post(f"/api/collections/{open_pickup['id']}/accept", headers=completed["collector_headers"])
    early = client.post(
        "/api/material-listings", json={"collectionId": open_pickup["id"]}, headers=completed["collector_headers"]
    )
    assert early.status_code == 400


def test_browsing_listings(client, make_user, completed, listing):
    _, recycler_headers = make_user("recycler")

    assert [item["id"] for item in client.get("/api/material-listings", headers=recycler_headers).json()] == [listing["id"]]
    assert client.get("/api/material-listings", params={"material_type": "glass"}, headers=recycler_headers).json() == []
    assert client.get(f"/api/material-listings/{listing['id']}", headers=recycler_headers).json()["id"] == listing["id"]
    assert client.get("/api/material-listings/999", headers=recycler_headers).status_code == 404

    assert client.get("/api/material-listings", headers=completed["collector_headers"]).status_code == 403
    mine = client.get("/api/material-listings/mine", headers=completed["collector_headers"]).json()
    assert [item["id"] for item in mine] == [listing["id"]]


def test_accepting_a_bid_holds_the_listing(client, make_user, completed, listing):
    winner, winner_headers = make_user("recycler")
    _, loser_headers = make_user("recycler")
    seller = completed["collector_headers"]

    first = bid(client, listing, winner_headers, amount=600, message="Collect tomorrow")
    assert first.status_code == 201
    assert first.json()["status"] == "pending"
    assert first.json()["recyclerId"] == winner["id"]
    assert bid(client, listing, winner_headers, amount=650).status_code == 400
    second = bid(client, listing, loser_headers, amount=550).json()

    bids = client.get(f"/api/material-listings/{listing['id']}/bids", headers=seller).json()
    assert [b["amount"] for b in bids] == [600, 550]
    assert client.get(f"/api/material-listings/{listing['id']}/bids", headers=winner_headers).status_code == 403

    accepted = client.patch(f"/api/material-bids/{first.json()['id']}", json={"status": "accepted"}, headers=seller)
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    assert client.get(f"/api/material-listings/{listing['id']}", headers=winner_headers).json()["status"] == "pending_sale"
    assert client.get("/api/material-bids", headers=loser_headers).json()[0]["status"] == "declined"
    assert client.patch(f"/api/material-bids/{second['id']}", json={"status": "accepted"}, headers=seller).status_code == 400
    assert bid(client, listing, loser_headers, amount=700).status_code == 400

    for status in ("sold", "delivered", "completed"):
        resp = set_status(client, listing, seller, status)
        assert resp.status_code == 200
        assert resp.json()["status"] == status
    assert client.get("/api/material-bids", headers=winner_headers).json()[0]["status"] == "accepted"


def test_listing_status_rules(client, make_user, completed, listing):
    _, recycler_headers = make_user("recycler")
    _, rival_headers = make_user("collector")
    seller = completed["collector_headers"]

    skipped = set_status(client, listing, seller, "sold")
    assert skipped.status_code == 409
    assert skipped.json()["detail"] == "Cannot change status from 'available' to 'sold'"
    assert set_status(client, listing, rival_headers, "withdrawn").status_code == 403

    open_bid = bid(client, listing, recycler_headers).json()
    assert set_status(client, listing, seller, "withdrawn").status_code == 200
    assert client.get("/api/material-bids", headers=recycler_headers).json()[0]["id"] == open_bid["id"]
    assert client.get("/api/material-bids", headers=recycler_headers).json()[0]["status"] == "declined"
    assert set_status(client, listing, seller, "available").status_code == 409

    relisted = client.post("/api/material-listings", json={"collectionId": completed["id"]}, headers=seller)
    assert relisted.status_code == 201


def test_reopening_a_listing_releases_the_buyer(client, make_user, completed, listing):
    _, recycler_headers = make_user("recycler")
    seller = completed["collector_headers"]
    offer = bid(client, listing, recycler_headers).json()
    client.patch(f"/api/material-bids/{offer['id']}", json={"status": "accepted"}, headers=seller)

    assert set_status(client, listing, seller, "available").json()["status"] == "available"
    assert client.get("/api/material-bids", headers=recycler_headers).json()[0]["status"] == "declined"
    assert bid(client, listing, recycler_headers, amount=450).status_code == 201


def test_bids_are_pushed_both_ways(client, make_user, completed, listing, auth_frame):
    recycler, recycler_headers = make_user("recycler")

    with client.websocket_connect("/ws") as seller_ws, client.websocket_connect("/ws") as buyer_ws:
        seller_ws.send_json(auth_frame(completed["collector"], completed["collector_headers"]))
        seller_ws.receive_json()
        buyer_ws.send_json(auth_frame(recycler, recycler_headers))
        buyer_ws.receive_json()

        offer = bid(client, listing, recycler_headers, amount=300).json()
        pushed = seller_ws.receive_json()
        assert pushed["type"] == "material_bid"
        assert pushed["bidId"] == offer["id"]
        assert pushed["listingId"] == listing["id"]

        client.patch(
            f"/api/material-bids/{offer['id']}", json={"status": "declined"}, headers=completed["collector_headers"]
        )
        answer = buyer_ws.receive_json()
        assert answer["type"] == "material_bid"
        assert answer["status"] == "declined"


def test_recycling_centers(client, db):
    centers = client.get("/api/recycling-centers").json()
    assert len(centers) == len(SEED_CENTERS)
    assert seed_recycling_centers(db) == 0

    kisumu = client.get("/api/recycling-centers/city/kisumu").json()
    assert [c["name"] for c in kisumu] == ["Kisumu Green Recyclers"]
    assert kisumu[0]["wasteTypes"] == ["plastic", "paper", "glass", "metal"]
    assert kisumu[0]["latitude"] == -0.1022
    assert client.get("/api/recycling-centers/city/Atlantis").json() == []

    electronic = client.get("/api/recycling-centers/waste-type/electronic").json()
    assert [c["name"] for c in electronic] == [
        "Mombasa Recyclers",
        "Naivasha Metal Recyclers",
        "Thika E-Waste Recyclers",
    ]

    one = client.get(f"/api/recycling-centers/{kisumu[0]['id']}").json()
    assert one["county"] == "Kisumu County"
    assert client.get("/api/recycling-centers/999").status_code == 404

import itertools
import os

# Must be set before pipapal.config is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ.pop("AUTO_CREATE_SCHEMA", None)

import pytest
from fastapi.testclient import TestClient

from pipapal.api.main import app
from pipapal.db import models  # noqa: F401
from pipapal.db.base import Base
from pipapal.db.seed import seed_eco_tips, seed_recycling_centers
from pipapal.db.session import SessionLocal, get_engine
from pipapal.realtime.hub import hub
from pipapal.services.verification import email_code_store, otp_store


@pytest.fixture(autouse=True)
def fresh_state():
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        seed_eco_tips(db)
        seed_recycling_centers(db)
    hub.clear()
    otp_store.clear()
    email_code_store.clear()
    app.dependency_overrides.clear()
    yield
    app.dependency_overrides.clear()
    hub.clear()


@pytest.fixture
def db():
    with SessionLocal() as session:
        yield session


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(client):
    """Register a user with `role`; returns (user json, auth headers)."""
    counter = itertools.count(1)

    def _make(role="household", **extra):
        n = next(counter)
        body = {
            "username": f"{role}{n}",
            "password": "secret123",
            "fullName": f"{role.title()} {n}",
            "email": f"{role}{n}@example.com",
            "role": role,
        }
        body.update(extra)
        resp = client.post("/api/register", json=body)
        assert resp.status_code == 201, resp.text
        data = resp.json()
        return data["user"], {"Authorization": f"Bearer {data['token']}"}

    return _make


@pytest.fixture
def schedule(client):
    """Create a pickup as the household behind `headers`; returns the collection json."""

    def _schedule(headers, waste_type="plastic", location=None, **extra):
        body = {
            "wasteType": waste_type,
            "scheduledDate": "2030-01-15T09:00:00Z",
            "address": "Nairobi",
        }
        if location is not None:
            body["location"] = location
        body.update(extra)
        resp = client.post("/api/collections", json=body, headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _schedule


@pytest.fixture
def auth_frame():
    """The relay auth frame for a user returned by `make_user`."""

    def _frame(user, headers):
        return {"type": "auth", "userId": user["id"], "token": headers["Authorization"].split()[1]}

    return _frame


@pytest.fixture
def completed(client, make_user, schedule):
    """A completed metal pickup plus the household and collector behind it."""
    _, household_headers = make_user("household")
    collector, collector_headers = make_user("collector")
    created = schedule(household_headers, waste_type="metal")
    cid = created["id"]
    client.post(f"/api/collections/{cid}/accept", headers=collector_headers)
    client.patch(f"/api/collections/{cid}", json={"status": "in_progress"}, headers=collector_headers)
    done = client.patch(
        f"/api/collections/{cid}", json={"status": "completed", "wasteAmount": 12.5}, headers=collector_headers
    )
    assert done.status_code == 200
    return {"id": cid, "collector": collector, "collector_headers": collector_headers, "household_headers": household_headers}

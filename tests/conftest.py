import os
import random
import sys

import pytest


def _ensure_project_root_on_path() -> None:
    tests_dir = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(tests_dir, ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_path()
# In-memory database for the whole run; must be set before tla_api.db is imported
os.environ["TLA_DATABASE_URL"] = "sqlite://"

from tla_api.db import Base, SessionLocal, engine  # noqa: E402
from tla_api.seed import seed_database  # noqa: E402


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded(db):
    seed_database(db)
    return db


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient

    from tla_api.main import app, get_rng

    app.dependency_overrides[get_rng] = lambda: random.Random(1234)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    def _register(email="player@example.com", username="player", password="Password123"):
        resp = client.post(
            "/api/auth/register",
            json={"email": email, "username": username, "password": password},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return body["user"]["id"], {"Authorization": f"Bearer {body['token']}"}

    return _register

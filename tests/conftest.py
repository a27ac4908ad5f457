import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
import main
import profiles
from database import ensure_indexes, get_db


@pytest.fixture
def db():
    database = mongomock.MongoClient().skillswap_test
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    main.app.dependency_overrides[get_db] = lambda: db
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Create a signed-up user; returns (profile, token)."""
    def _make(name, complete=True, role="user", **fields):
        email = f"{name.lower().replace(' ', '.')}@example.com"
        created = auth.sign_up(db, name, email, "secret123")
        uid = created["user"]["id"]
        if complete:
            fields.setdefault("skills_offered", ["Guitar"])
            fields.setdefault("skills_wanted", ["Python"])
            profiles.update_profile(db, uid, fields)
        if role != "user":
            db["userprofile"].update_one({"email": email}, {"$set": {"role": role}})
        return profiles.get_profile(db, uid), created["token"]
    return _make


def bearer(token):
    return {"Authorization": f"Bearer {token}"}

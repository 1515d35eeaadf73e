import os
import tempfile

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="shop-uploads-"))

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import users  # noqa: E402
from auth import create_token  # noqa: E402
from database import get_db  # noqa: E402
from mailer import FakeEmailSender, get_mailer  # noqa: E402
from main import app  # noqa: E402


@pytest.fixture()
def db():
    client = mongomock.MongoClient()
    yield client["shop_test"]
    client.close()


@pytest.fixture()
def mailer():
    return FakeEmailSender()


@pytest.fixture()
def client(db, mailer):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    """Create a user and return (user_id, auth headers)."""

    def _make(name="Nemo", email=None, password="secret123", is_admin=False):
        email = email or f"{name.lower().replace(' ', '.')}@reefshop.com"
        doc = users.create_user(db, name, email, password, is_admin=is_admin)
        user_id = str(doc["_id"])
        return user_id, {"Authorization": f"Bearer {create_token(user_id)}"}

    return _make


@pytest.fixture()
def customer(make_user):
    return make_user("Nemo")


@pytest.fixture()
def admin(make_user):
    return make_user("Admin", is_admin=True)

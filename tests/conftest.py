from unittest.mock import MagicMock

import jwt
import pytest
from fastapi.testclient import TestClient

from auth import TokenVerifier
from main import app, get_media, get_store, get_verifier
from tests.fake_store import FakeStore

SECRET = "test-secret"


def make_token(email="writer@example.com", **claims):
    payload = {"sub": "u1", "email": email, "name": "Writer", **claims}
    return jwt.encode(payload, SECRET, algorithm="HS256")


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def media():
    host = MagicMock()
    host.upload.return_value = "https://res.cloudinary.com/demo/image/upload/v1/blogify/new.jpg"
    host.delete_url.return_value = True
    return host


@pytest.fixture
def client(store, media):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_verifier] = lambda: TokenVerifier(SECRET)
    app.dependency_overrides[get_media] = lambda: media
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {
        "Authorization": f"Bearer {make_token()}",
        "X-User-Email": "writer@example.com",
    }

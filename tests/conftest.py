import mongomock
import pytest
from fastapi.testclient import TestClient

from movies.database.db import get_collection
from movies.main import app


@pytest.fixture
def collection():
    return mongomock.MongoClient()["moviesDB"]["movies"]


@pytest.fixture
def client(collection):
    app.dependency_overrides[get_collection] = lambda: collection
    # Not entered as a context manager, so the startup hook never pings a real server
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def movie_payload():
    return {"title": "Alien", "director": "Ridley Scott", "year": 1979}

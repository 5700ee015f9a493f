from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from movies.database import db


@pytest.fixture
def mongo_client():
    fake = MagicMock()
    with patch.object(db, "client", fake):
        yield fake


class TestWaitForDb:
    def test_pings_and_creates_unique_index(self, mongo_client):
        db.wait_for_db()

        mongo_client.admin.command.assert_called_once_with("ping")
        collection = mongo_client[db.MONGODB_DB][db.COLLECTION_NAME]
        collection.create_index.assert_called_once_with([("id", 1)], unique=True)

    def test_retries_until_server_answers(self, mongo_client):
        mongo_client.admin.command.side_effect = [
            ServerSelectionTimeoutError("not yet"),
            ServerSelectionTimeoutError("not yet"),
            {"ok": 1.0},
        ]

        with patch.object(db.time, "sleep") as sleep:
            db.wait_for_db()

        assert mongo_client.admin.command.call_count == 3
        assert sleep.call_count == 2

    def test_gives_up_after_last_attempt(self, mongo_client):
        mongo_client.admin.command.side_effect = ServerSelectionTimeoutError("down")

        with patch.object(db.time, "sleep"):
            with pytest.raises(RuntimeError, match="after 10 attempts"):
                db.wait_for_db()


def test_get_collection_yields_movies_collection(mongo_client):
    collection = next(db.get_collection())

    assert collection is mongo_client[db.MONGODB_DB][db.COLLECTION_NAME]


def test_close_db_closes_client(mongo_client):
    db.close_db()

    mongo_client.close.assert_called_once_with()

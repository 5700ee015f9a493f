from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError
from dotenv import load_dotenv
import time
import logging
import os

load_dotenv()

logger = logging.getLogger(__name__)

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
MONGODB_DB = os.getenv("MONGODB_DB", "moviesDB")
MONGODB_TIMEOUT_MS = int(os.getenv("MONGODB_TIMEOUT_MS", "5000"))
COLLECTION_NAME = "movies"

client = MongoClient(
    MONGODB_URI,
    serverSelectionTimeoutMS=MONGODB_TIMEOUT_MS,
)


def movies_collection() -> Collection:
    return client[MONGODB_DB][COLLECTION_NAME]


def wait_for_db():
    max_retries = 10
    retry_delay = 3

    for attempt in range(1, max_retries + 1):
        try:
            logger.info(f"Attempt {attempt}/{max_retries}: Connecting to MongoDB...")
            client.admin.command("ping")
            logger.info(f"Connected to MongoDB, database '{MONGODB_DB}'")
            movies_collection().create_index([("id", ASCENDING)], unique=True)
            logger.info("Index on movies.id is in place")
            return
        except PyMongoError as e:
            logger.error(f"Connection failed: {type(e).__name__}: {str(e)}")
            if attempt == max_retries:
                raise RuntimeError(f"Failed to connect to MongoDB after {max_retries} attempts")
            time.sleep(retry_delay)


def close_db():
    client.close()
    logger.info("MongoDB connection closed")


def get_collection():
    yield movies_collection()

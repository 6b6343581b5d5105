"""
MongoDB Connection Utility

MongoDB stores:
- AI document validation results, keyed by document type and text hash

Validation replies vary in shape between model versions, so they live in a
schema-flexible store instead of PostgreSQL.
"""
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo.errors import PyMongoError
from edumatch.core.config import get_settings
from edumatch.core.log import get_logger

settings = get_settings()
log = get_logger(__name__)

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        _client = MongoClient(settings.mongodb_uri, serverSelectionTimeoutMS=3000)
    return _client


def get_mongo_db() -> Database:
    """Get the application document database"""
    global _db
    if _db is None:
        _db = get_mongo_client()[settings.mongodb_db]
    return _db


def get_collection(name: str) -> Collection:
    return get_mongo_db()[name]


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        get_mongo_client().admin.command("ping")
        return True
    except PyMongoError as e:
        log.error("MongoDB connection failed: %s", e)
        return False


# Collection name constants (avoid typos)
COLLECTIONS = {
    "document_validations": "document_validations",
}


def init_mongo_indexes():
    """
    Create indexes for better query performance.
    Call this once during app startup.
    """
    db = get_mongo_db()

    db[COLLECTIONS["document_validations"]].create_index([
        ("document_type", 1),
        ("text_hash", 1)
    ], unique=True)

    log.info("MongoDB indexes created successfully")

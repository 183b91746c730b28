# MongoDB client lifecycle and the shared executor for blocking driver calls

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from pymongo import MongoClient, ASCENDING, DESCENDING, GEOSPHERE

from .config import MONGODB_URL, MONGODB_DB

logger = logging.getLogger(__name__)

db_client = None
db = None
executor = ThreadPoolExecutor(max_workers=10)


def ensure_indexes(database):
    database.complaints.create_index([("created_at", DESCENDING)])
    database.complaints.create_index("status")
    database.complaints.create_index("category")
    database.complaints.create_index("department")
    database.complaints.create_index("assigned_to")
    database.complaints.create_index("submitted_by")
    database.complaints.create_index([("location", GEOSPHERE)])
    database.departments.create_index([("name", ASCENDING)], unique=True)
    database.departments.create_index("categories")
    database.departments.create_index("is_active")
    database.departments.create_index([("service_areas.boundaries", GEOSPHERE)])
    database.users.create_index([("username", ASCENDING)], unique=True)


async def startup_db():
    global db_client, db
    db_client = MongoClient(MONGODB_URL)
    db = db_client[MONGODB_DB]
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(executor, ensure_indexes, db)
    logger.info("Database initialized (%s)", MONGODB_DB)


def shutdown_db():
    global db_client
    if db_client:
        db_client.close()
        db_client = None


async def get_db():
    return db

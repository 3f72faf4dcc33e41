# gymmini/db/__init__.py
from pymongo import MongoClient
from pymongo.database import Database

from gymmini import settings

# one pool per process, shared by every request
client = MongoClient(settings.MONGO_URI, tz_aware=True)
db = client[settings.MONGO_DB]

# --- Collections (one source of truth) ---
USERS = "users"
MEMBERS = "members"
TRAINERS = "trainers"
EMPLOYEES = "employees"
COUNTERS = "counters"
SESSIONS = "sessions"
ATTENDANCE = "attendance"
OTPS = "otps"
ACTIVITY_LOGS = "activity_logs"


def get_db() -> Database:
    """FastAPI dependency; tests override it with a mongomock database."""
    return db

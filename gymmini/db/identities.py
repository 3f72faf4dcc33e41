from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database

from gymmini.db import USERS


def to_object_id(value) -> Optional[ObjectId]:
    """ObjectId from str/ObjectId, None when the value is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def get_identity(db: Database, identity_id) -> Optional[Dict[str, Any]]:
    oid = to_object_id(identity_id)
    if oid is None:
        return None
    return db[USERS].find_one({"_id": oid})


def get_identity_by_email(db: Database, email: str) -> Optional[Dict[str, Any]]:
    return db[USERS].find_one({"email": (email or "").strip().lower()})


def find_identities(db: Database, role: Optional[str] = None) -> List[Dict[str, Any]]:
    query = {"role": role} if role else {}
    return list(db[USERS].find(query).sort("created_at", -1))


def insert_identity(db: Database, doc: Dict[str, Any]) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    doc = dict(doc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = db[USERS].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def update_identity(db: Database, identity_id, fields: Dict[str, Any]) -> bool:
    if not fields:
        return False
    payload = dict(fields, updated_at=datetime.now(timezone.utc))
    result = db[USERS].update_one({"_id": to_object_id(identity_id)}, {"$set": payload})
    return result.matched_count > 0


def delete_identity(db: Database, identity_id) -> bool:
    oid = to_object_id(identity_id)
    if oid is None:
        return False
    return db[USERS].delete_one({"_id": oid}).deleted_count > 0

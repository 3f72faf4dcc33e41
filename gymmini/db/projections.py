"""
Member, trainer and staff projection collections.

Every helper takes the projection `kind` ("member", "trainer", "staff") rather
than a collection so the three stores share one code path.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.database import Database

from gymmini.db import EMPLOYEES, MEMBERS, TRAINERS
from gymmini.db.identities import to_object_id

COLLECTIONS = {
    "member": MEMBERS,
    "trainer": TRAINERS,
    "staff": EMPLOYEES,
}
KINDS = tuple(COLLECTIONS)


def collection(db: Database, kind: str):
    return db[COLLECTIONS[kind]]


def get_projection(db: Database, kind: str, projection_id) -> Optional[Dict[str, Any]]:
    oid = to_object_id(projection_id)
    if oid is None:
        return None
    return collection(db, kind).find_one({"_id": oid})


def get_by_identity(db: Database, kind: str, identity_id) -> Optional[Dict[str, Any]]:
    oid = to_object_id(identity_id)
    if oid is None:
        return None
    return collection(db, kind).find_one({"identity_id": oid})


def find_projections(db: Database, kind: str, query: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    return list(collection(db, kind).find(query or {}).sort("created_at", -1))


def search_query(search: Optional[str]) -> Dict[str, Any]:
    if not search:
        return {}
    pattern = re.escape(search.strip())
    return {"$or": [
        {"name": {"$regex": pattern, "$options": "i"}},
        {"email": {"$regex": pattern, "$options": "i"}},
    ]}


def insert_projection(db: Database, kind: str, doc: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(doc)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    result = collection(db, kind).insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def upsert_for_identity(db: Database, kind: str, identity_id, on_insert: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """
    Create the projection for identity_id unless one exists; a single upsert so
    concurrent callers converge on one document. Returns (doc, created).
    """
    oid = to_object_id(identity_id)
    on_insert = {k: v for k, v in on_insert.items() if k not in ("_id", "identity_id")}
    result = collection(db, kind).update_one(
        {"identity_id": oid},
        {"$setOnInsert": on_insert},
        upsert=True,
    )
    return collection(db, kind).find_one({"identity_id": oid}), result.upserted_id is not None


def adopt_unlinked(db: Database, kind: str, email: str, identity_id) -> Optional[Dict[str, Any]]:
    """Link a legacy projection that shares the identity's email but has no identity_id."""
    return collection(db, kind).find_one_and_update(
        {"email": (email or "").strip().lower(), "identity_id": {"$exists": False}},
        {"$set": {"identity_id": to_object_id(identity_id), "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )


def update_projection(db: Database, kind: str, projection_id, fields: Dict[str, Any]) -> bool:
    if not fields:
        return False
    payload = dict(fields, updated_at=datetime.now(timezone.utc))
    result = collection(db, kind).update_one({"_id": to_object_id(projection_id)}, {"$set": payload})
    return result.matched_count > 0


def set_missing_fields(db: Database, kind: str, projection: Dict[str, Any], source: Dict[str, Any], fields) -> bool:
    """Copy fields from source only where the projection has no value yet."""
    patch = {f: source[f] for f in fields if source.get(f) and not projection.get(f)}
    if not patch:
        return False
    return update_projection(db, kind, projection["_id"], patch)


def delete_projection(db: Database, kind: str, projection_id) -> bool:
    oid = to_object_id(projection_id)
    if oid is None:
        return False
    return collection(db, kind).delete_one({"_id": oid}).deleted_count > 0


def delete_by_identity(db: Database, kind: str, identity_id) -> int:
    oid = to_object_id(identity_id)
    if oid is None:
        return 0
    return collection(db, kind).delete_many({"identity_id": oid}).deleted_count

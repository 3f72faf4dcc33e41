"""
Class sessions. A session belongs to one trainer projection (`trainer_id`);
trainers may only work with their own sessions, admins with any.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from gymmini.db import SESSIONS, projections
from gymmini.db.identities import to_object_id
from gymmini.errors import NotFoundError, PermissionDeniedError, ValidationError
from gymmini.services.reconciler import parse_datetime
from gymmini.utils.logger import get_logger, log_activity

logger = get_logger(__name__)

SESSION_STATUSES = ("Scheduled", "Cancelled", "Completed")
REQUIRED_FIELDS = ("name", "trainer_id", "date", "start_time", "capacity", "location")
UPDATABLE_FIELDS = REQUIRED_FIELDS + ("starting_date", "status")


def _trainer_ref(db: Database, trainer_id):
    trainer = projections.get_projection(db, "trainer", trainer_id)
    if trainer is None:
        raise NotFoundError("Trainer not found", collection="trainer", ref=str(trainer_id))
    return trainer["_id"]


def _clean(db: Database, fields: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
    for key in ("date", "starting_date"):
        if key in out:
            out[key] = parse_datetime(out[key], key)
    if "capacity" in out and int(out["capacity"]) < 1:
        raise ValidationError("Capacity must be at least 1", "capacity")
    if "status" in out and out["status"] not in SESSION_STATUSES:
        raise ValidationError("Invalid session status", "status")
    if "trainer_id" in out:
        out["trainer_id"] = _trainer_ref(db, out["trainer_id"])
    return out


def get_session(db: Database, session_id) -> Dict[str, Any]:
    oid = to_object_id(session_id)
    session = db[SESSIONS].find_one({"_id": oid}) if oid is not None else None
    if session is None:
        raise NotFoundError("Session not found", collection="session", ref=str(session_id))
    return session


def create_session(db: Database, data: Dict[str, Any]) -> Dict[str, Any]:
    missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
    if missing:
        raise ValidationError("Please provide all required fields", missing[0])

    doc = _clean(db, data)
    now = datetime.now(timezone.utc)
    doc.update(status="Scheduled", created_at=now, updated_at=now)
    doc["_id"] = db[SESSIONS].insert_one(doc).inserted_id
    log_activity(db, None, "create_session", {"session_id": str(doc["_id"]), "trainer_id": str(doc["trainer_id"])})
    return doc


def list_sessions(
    db: Database,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[str] = None,
    trainer_id=None,
) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if start or end:
        query["date"] = {}
        if start:
            query["date"]["$gte"] = parse_datetime(start, "start")
        if end:
            query["date"]["$lte"] = parse_datetime(end, "end")
    if status:
        query["status"] = status
    if trainer_id is not None:
        query["trainer_id"] = to_object_id(trainer_id)
    return list(db[SESSIONS].find(query).sort([("date", 1), ("start_time", 1)]))


def update_session(db: Database, session_id, fields: Dict[str, Any]) -> Dict[str, Any]:
    session = get_session(db, session_id)
    patch = _clean(db, fields)
    if not patch:
        return session
    patch["updated_at"] = datetime.now(timezone.utc)
    updated = db[SESSIONS].find_one_and_update(
        {"_id": session["_id"]}, {"$set": patch}, return_document=ReturnDocument.AFTER,
    )
    log_activity(db, None, "update_session", {"session_id": str(session["_id"]), "fields": sorted(patch)})
    return updated


def cancel_session(db: Database, session_id) -> Dict[str, Any]:
    return update_session(db, session_id, {"status": "Cancelled"})


def trainer_sessions(db: Database, trainer: Dict[str, Any]) -> List[Dict[str, Any]]:
    return list_sessions(db, trainer_id=trainer["_id"])


def ensure_can_manage(db: Database, session: Dict[str, Any], user: Dict[str, Any]) -> None:
    """Admins manage every session; a trainer only the sessions assigned to their trainer projection."""
    role = user.get("role")
    if role == "admin":
        return
    if role == "trainer":
        trainer = projections.get_by_identity(db, "trainer", user["_id"])
        if trainer is not None and trainer["_id"] == session.get("trainer_id"):
            return
    logger.info("identity %s denied access to session %s", user.get("_id"), session["_id"])
    raise PermissionDeniedError("Not authorized for this session", collection="session", ref=str(session["_id"]))

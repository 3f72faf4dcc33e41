from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from gymmini.db import ATTENDANCE, MEMBERS, SESSIONS, projections
from gymmini.errors import NotFoundError, ValidationError
from gymmini.schemas.projections import serialize
from gymmini.services import sessions
from gymmini.utils.logger import log_activity


def mark_attendance(
    db: Database,
    session_id,
    member_id,
    is_present: bool = True,
    actor: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Upsert the (session, member) attendance row. The row's previous state comes
    back from the same atomic write, so the member projection's counter only
    moves when the presence flag actually flips.
    """
    session = sessions.get_session(db, session_id)
    if actor is not None:
        sessions.ensure_can_manage(db, session, actor)
    if session.get("status") == "Cancelled":
        raise ValidationError("Cannot mark attendance for a cancelled session", "session_id")
    member = projections.get_projection(db, "member", member_id)
    if member is None:
        raise NotFoundError("Member not found", collection="member", ref=str(member_id))

    now = datetime.now(timezone.utc)
    key = {"session_id": session["_id"], "member_id": member["_id"]}
    previous = db[ATTENDANCE].find_one_and_update(
        key,
        {"$set": {"is_present": is_present, "date_attended": now}},
        upsert=True,
        return_document=ReturnDocument.BEFORE,
    )

    was_present = bool(previous and previous.get("is_present"))
    if is_present and not was_present:
        db[MEMBERS].update_one(
            {"_id": member["_id"]},
            {"$inc": {"total_attendance": 1}, "$set": {"last_attended": now}},
        )
    elif was_present and not is_present:
        db[MEMBERS].update_one({"_id": member["_id"]}, {"$inc": {"total_attendance": -1}})

    log_activity(db, member.get("identity_id"), "mark_attendance",
                 {"session_id": str(session["_id"]), "present": is_present})
    return serialize(db[ATTENDANCE].find_one(key))


def session_attendance(db: Database, session_id, actor: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    session = sessions.get_session(db, session_id)
    if actor is not None:
        sessions.ensure_can_manage(db, session, actor)

    rows = []
    for row in db[ATTENDANCE].find({"session_id": session["_id"]}):
        member = db[MEMBERS].find_one({"_id": row["member_id"]}, {"name": 1, "email": 1})
        view = serialize(row)
        view["member"] = {"name": member.get("name"), "email": member.get("email")} if member else None
        rows.append(view)
    return rows


def member_history(db: Database, member_id) -> List[Dict[str, Any]]:
    rows = []
    for row in db[ATTENDANCE].find({"member_id": member_id}).sort("date_attended", -1):
        session = db[SESSIONS].find_one({"_id": row["session_id"]}, {"name": 1, "date": 1, "start_time": 1})
        view = serialize(row)
        view["session"] = serialize(session)
        rows.append(view)
    return rows

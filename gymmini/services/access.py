"""
Role-aware reads: identities joined with their projections in application code.

Every listing repairs missing projections first (reconcile_on_read), so a row is
never dropped because its projection was never written or was deleted out of
band. A repair that cannot succeed (email held by an unrelated record) is
logged and the identity is still returned, with `profile` set to None.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pymongo.database import Database

from gymmini.db import ATTENDANCE, identities, projections
from gymmini.errors import ConflictError, NotFoundError
from gymmini.schemas.projections import ROLE_PROJECTIONS, normalize_member_status, serialize
from gymmini.services import billing, reconciler
from gymmini.utils.logger import get_logger

logger = get_logger(__name__)


def _repair(db: Database, identity: Dict[str, Any]) -> tuple:
    """(projection, error message) for one identity; never raises ConflictError."""
    try:
        return reconciler.reconcile_on_read(db, identity), None
    except ConflictError as exc:
        logger.warning("could not repair projection for %s: %s", identity["_id"], exc.message)
        return None, exc.message


def repair_role(db: Database, role: str) -> int:
    """Repair every identity with this role; returns how many were visited."""
    count = 0
    for identity in identities.find_identities(db, role):
        _repair(db, identity)
        count += 1
    return count


def merge_view(identity: Dict[str, Any], projection: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    view = serialize(identity)
    view["profile"] = serialize(projection)
    view["status"] = projection.get("status") if projection else None
    view["is_active"] = None
    view["days_until_expiration"] = None
    if identity.get("role") == "member" and projection:
        view.update(billing.membership_state(projection, now))
    return view


def member_view(member: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    view = serialize(member)
    view.update(billing.membership_state(member, now))
    return view


def matches_status(status_filter: Optional[str], row_status: Optional[str], is_active: Optional[bool], role: Optional[str]) -> bool:
    """
    expired: a member whose membership has ended.
    active: explicitly active, or any row that is neither inactive nor pending and
    not known to be expired (covers projections with no status at all).
    """
    if not status_filter:
        return True
    row_status = normalize_member_status(row_status)
    if status_filter == "expired":
        return role == "member" and is_active is False
    if status_filter == "active":
        return row_status == "active" or (row_status not in ("inactive", "pending") and is_active is not False)
    return row_status == status_filter


def _matches_search(row: Dict[str, Any], search: Optional[str]) -> bool:
    if not search:
        return True
    needle = search.strip().lower()
    return needle in (row.get("name") or "").lower() or needle in (row.get("email") or "").lower()


def list_identities_with_projections(
    db: Database,
    role: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    rows = []
    for identity in identities.find_identities(db, role):
        projection, error = (None, None)
        if ROLE_PROJECTIONS.get(identity.get("role")):
            projection, error = _repair(db, identity)
        row = merge_view(identity, projection, now)
        if error:
            row["projection_error"] = error
        rows.append(row)
    return [
        r for r in rows
        if _matches_search(r, search) and matches_status(status, r["status"], r["is_active"], r.get("role"))
    ]


def get_profile(db: Database, identity: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    projection, error = _repair(db, identity) if ROLE_PROJECTIONS.get(identity.get("role")) else (None, None)
    view = merge_view(identity, projection, now)
    if error:
        view["projection_error"] = error
    return view


def get_own_projection(db: Database, identity: Dict[str, Any], kind: str) -> Dict[str, Any]:
    """The caller's own projection of `kind`, repaired if missing."""
    if kind not in ROLE_PROJECTIONS.get(identity.get("role"), ()):
        raise NotFoundError(f"{kind.capitalize()} profile not found", collection=kind, ref=str(identity["_id"]))
    reconciler.reconcile_on_read(db, identity)
    return projections.get_by_identity(db, kind, identity["_id"])


def list_members(db: Database, search: Optional[str] = None, status: Optional[str] = None,
                 now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    repair_role(db, "member")
    rows = [member_view(m, now) for m in projections.find_projections(db, "member", projections.search_query(search))]
    return [r for r in rows if matches_status(status, r.get("status"), r["is_active"], "member")]


def _with_identity(db: Database, docs: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out = []
    for doc in docs:
        view = serialize(doc)
        ident = identities.get_identity(db, doc["identity_id"]) if doc.get("identity_id") else None
        view["user"] = {k: ident.get(k) for k in ("name", "email", "role")} if ident else None
        out.append(view)
    return out


def list_trainers(db: Database) -> List[Dict[str, Any]]:
    repair_role(db, "trainer")
    return [serialize(t) for t in projections.find_projections(db, "trainer")]


def list_staff(db: Database) -> List[Dict[str, Any]]:
    repair_role(db, "trainer")
    return _with_identity(db, projections.find_projections(db, "staff"))


def get_projection_view(db: Database, kind: str, projection_id) -> Dict[str, Any]:
    doc = projections.get_projection(db, kind, projection_id)
    if doc is None:
        raise NotFoundError(f"{kind.capitalize()} not found", collection=kind, ref=str(projection_id))
    if kind == "member":
        return member_view(doc)
    if kind == "staff":
        return _with_identity(db, [doc])[0]
    return serialize(doc)


def member_dashboard(db: Database, identity: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    member = get_own_projection(db, identity, "member")
    end = billing.membership_end(member)
    attended = db[ATTENDANCE].count_documents({"member_id": member["_id"], "is_present": True})
    next_billing = member.get("next_billing_date")
    return {
        "plan": member.get("plan"),
        "days_left": billing.days_left_clamped(end, now) if end else None,
        "attendance_count": attended,
        "next_billing_date": next_billing.isoformat() if next_billing else None,
    }

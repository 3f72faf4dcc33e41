"""
Cross-collection identity consistency.

An identity (users) owns at most one projection per kind: member (members),
trainer (trainers) and staff (employees). MongoDB gives no multi-document
transaction here, so every write that spans collections is a Saga: ordered
steps, each with a compensating action that undoes it if a later step fails.

Repair-on-read (`reconcile_on_read`) is an upsert keyed on `identity_id`
backed by a unique sparse index, so it can run any number of times, from any
number of requests, and still leave exactly one projection per identity.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from gymmini import settings
from gymmini.auth import hash_password
from gymmini.db import COUNTERS, EMPLOYEES, USERS
from gymmini.db import identities, projections
from gymmini.errors import ConflictError, DependencyError, NotFoundError, ValidationError
from gymmini.schemas.projections import (
    PROPAGATED_FIELDS,
    RELAYED_FIELDS,
    ROLE_PROJECTIONS,
    ROLES,
    SHARED_FIELDS,
    TRAINER_FIELDS,
    WRITABLE_FIELDS,
    build_projection,
    normalize_email,
    normalize_member_status,
)
from gymmini.services import billing, notify, realtime
from gymmini.services.saga import Saga
from gymmini.utils.logger import get_logger, log_activity

logger = get_logger(__name__)

UTC = timezone.utc
STAFF_CODE_COUNTER = "staff_code"
DATE_FIELDS = ("membership_start_date", "membership_end_date", "next_billing_date", "joining_date")


def _utcnow() -> datetime:
    return datetime.now(UTC)


# --- input helpers -----------------------------------------------------------
def parse_datetime(value, field_name: str) -> datetime:
    if value is None or value == "":
        raise ValidationError(f"{field_name} is required", field_name)
    if isinstance(value, datetime):
        return billing.as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str):
        try:
            return billing.as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            raise ValidationError(f"{field_name} is not a valid date", field_name)
    raise ValidationError(f"{field_name} is not a valid date", field_name)


def _writable(kind: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unknown keys and unset (None) values; parse dates; normalize email/status."""
    out = {k: v for k, v in (fields or {}).items() if k in WRITABLE_FIELDS[kind] and v is not None}
    for key in DATE_FIELDS:
        if key in out:
            out[key] = parse_datetime(out[key], key)
    if "email" in out:
        out["email"] = normalize_email(out["email"])
        if not out["email"]:
            raise ValidationError("email must not be empty", "email")
    if kind == "member" and "status" in out:
        out["status"] = normalize_member_status(out["status"])
    return out


def _stored(kind: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    """The part of a write that is kept on a `kind` record itself."""
    return {k: v for k, v in fields.items() if k not in RELAYED_FIELDS.get(kind, ())}


def _check_membership_dates(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and billing.as_utc(end) <= billing.as_utc(start):
        raise ValidationError("Membership end date must be after start date", "membership_end_date")


def _collection_for(db: Database, kind: str):
    return db[USERS] if kind == "identity" else projections.collection(db, kind)


def _ensure_email_free(db: Database, kind: str, email: str, exclude_id=None) -> None:
    query: Dict[str, Any] = {"email": email}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if _collection_for(db, kind).find_one(query, {"_id": 1}):
        label = "User" if kind == "identity" else kind.capitalize()
        raise ConflictError(f"{label} with this email already exists", collection=kind, email=email)


def _insert(db: Database, kind: str, doc: Dict[str, Any]) -> Dict[str, Any]:
    """Insert translating a unique-index race into ConflictError."""
    try:
        if kind == "identity":
            return identities.insert_identity(db, doc)
        return projections.insert_projection(db, kind, doc)
    except DuplicateKeyError as exc:
        raise ConflictError(f"{kind} with this email already exists",
                            collection=kind, email=doc.get("email")) from exc


def _notify_created(db: Database, identity: Dict[str, Any], password: str) -> None:
    try:
        notify.send_credentials(identity["email"], identity.get("name", ""), password, identity["role"])
    except DependencyError as exc:
        logger.warning("credentials email failed for %s: %s", identity["email"], exc.message)
        log_activity(db, identity["_id"], "credentials_email_failed", {"error": exc.message})


# --- staff codes -------------------------------------------------------------
def _highest_staff_code(db: Database) -> int:
    prefix = re.escape(settings.STAFF_CODE_PREFIX)
    pattern = re.compile(rf"^{prefix}-(\d+)$")
    highest = 0
    for doc in db[EMPLOYEES].find({"staff_code": {"$regex": f"^{prefix}-"}}, {"staff_code": 1}):
        match = pattern.match(doc.get("staff_code") or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def generate_staff_code(db: Database) -> str:
    """
    Next EMP-NNN code. The counter document is first raised to the highest code
    already present ($max, monotone), then incremented atomically ($inc), so
    two concurrent creates never receive the same code.
    """
    counters = db[COUNTERS]
    counters.update_one(
        {"_id": STAFF_CODE_COUNTER},
        {"$max": {"seq": _highest_staff_code(db)}},
        upsert=True,
    )
    doc = counters.find_one_and_update(
        {"_id": STAFF_CODE_COUNTER},
        {"$inc": {"seq": 1}},
        return_document=ReturnDocument.AFTER,
    )
    return f"{settings.STAFF_CODE_PREFIX}-{int(doc['seq']):03d}"


# --- create ------------------------------------------------------------------
def _member_fields(role_data: Dict[str, Any]) -> Dict[str, Any]:
    fields = _writable("member", role_data)
    start = parse_datetime(fields.get("membership_start_date"), "membership_start_date")
    end = parse_datetime(fields.get("membership_end_date"), "membership_end_date")
    _check_membership_dates(start, end)
    if not fields.get("plan"):
        raise ValidationError("plan is required", "plan")
    fields["membership_start_date"] = start
    fields["membership_end_date"] = end
    fields.setdefault("next_billing_date", billing.next_billing_date(start))
    fields.setdefault("status", "active")
    fields.setdefault("total_attendance", 0)
    return fields


def _staff_fields(role_data: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    fields = _writable("staff", role_data)
    fields.setdefault("joining_date", now)
    return fields


def create_with_projection(
    db: Database,
    identity_data: Dict[str, Any],
    role_data: Optional[Dict[str, Any]] = None,
    send_credentials: bool = True,
) -> Dict[str, Any]:
    """
    Create an identity together with the projection(s) its role requires.

    identity -> projection (-> staff mirror for trainers); a failing step
    deletes whatever the earlier steps wrote and the failure propagates.
    Returns the primary projection, or the identity for admins.
    """
    role = identity_data.get("role") or "member"
    if role not in ROLES:
        raise ValidationError('Invalid role. Must be "admin", "trainer", or "member"', "role")
    name = (identity_data.get("name") or "").strip()
    email = normalize_email(identity_data.get("email"))
    if not name:
        raise ValidationError("name is required", "name")
    if not email:
        raise ValidationError("email is required", "email")

    # self-registered members have no membership yet: their projection starts out pending
    has_membership = role_data is not None
    role_data = {k: v for k, v in (role_data or {}).items() if k not in SHARED_FIELDS}
    now = _utcnow()

    # validate everything before the first write
    member_fields = None
    if role == "member":
        member_fields = _member_fields(role_data) if has_membership else {}
    _ensure_email_free(db, "identity", email)
    for kind in ROLE_PROJECTIONS[role]:
        _ensure_email_free(db, kind, email)

    password = identity_data.get("password") or settings.DEFAULT_PASSWORD
    identity_doc = {
        "name": name,
        "email": email,
        "phone": identity_data.get("phone"),
        "gender": identity_data.get("gender"),
        "password": hash_password(password),
        "role": role,
    }
    identity_doc = {k: v for k, v in identity_doc.items() if v is not None}

    saga = Saga(f"create_{role}")
    saga.add(
        "identity",
        lambda r: _insert(db, "identity", identity_doc),
        lambda ident: identities.delete_identity(db, ident["_id"]),
    )
    if role == "member":
        saga.add(
            "member",
            lambda r: _insert(db, "member", build_projection("member", r["identity"], member_fields, now)),
            lambda proj: projections.delete_projection(db, "member", proj["_id"]),
        )
    elif role == "trainer":
        trainer_fields = _stored("trainer", _writable("trainer", role_data))
        saga.add(
            "trainer",
            lambda r: _insert(db, "trainer", build_projection("trainer", r["identity"], trainer_fields, now)),
            lambda proj: projections.delete_projection(db, "trainer", proj["_id"]),
        )

        def _staff_step(r):
            fields = dict(_staff_fields(role_data, now), role="Trainer")
            fields.update({f: r["trainer"].get(f) for f in TRAINER_FIELDS if r["trainer"].get(f)})
            fields["staff_code"] = generate_staff_code(db)
            return _insert(db, "staff", build_projection("staff", r["identity"], fields, now))

        saga.add("staff", _staff_step)

    results = saga.run()
    identity = results["identity"]
    primary = results.get(ROLE_PROJECTIONS[role][0]) if ROLE_PROJECTIONS[role] else identity

    logger.info("created %s identity %s", role, identity["_id"])
    log_activity(db, identity["_id"], "create_with_projection", {"role": role, "email": email})
    realtime.emit_to_user(identity["_id"], "account_created", {"role": role})
    if send_credentials:
        _notify_created(db, identity, password)
    return primary


def create_staff(db: Database, data: Dict[str, Any], send_credentials: bool = True) -> Dict[str, Any]:
    """
    Create a staff record. Trainers go through create_with_projection (identity +
    trainer + staff); other staff roles are staff records only, linked to an
    existing identity with the same email when that identity has no staff record.
    """
    staff_role = data.get("role")
    if staff_role == "Trainer":
        identity_data = {k: data.get(k) for k in ("name", "email", "phone", "gender", "password")}
        identity_data["role"] = "trainer"
        trainer = create_with_projection(db, identity_data, data, send_credentials=send_credentials)
        return projections.get_by_identity(db, "staff", trainer["identity_id"])

    email = normalize_email(data.get("email"))
    if not email:
        raise ValidationError("email is required", "email")
    _ensure_email_free(db, "staff", email)

    now = _utcnow()
    fields = _staff_fields({k: v for k, v in data.items() if k != "role"}, now)
    fields["role"] = staff_role
    fields["staff_code"] = generate_staff_code(db)

    identity = identities.get_identity_by_email(db, email)
    if identity is not None and projections.get_by_identity(db, "staff", identity["_id"]) is None:
        fields["identity_id"] = identity["_id"]

    staff = _insert(db, "staff", build_projection("staff", None, fields, now))
    log_activity(db, staff.get("identity_id"), "create_staff", {"staff_code": staff["staff_code"], "role": staff_role})
    return staff


# --- repair-on-read ----------------------------------------------------------
def _ensure_projection(db: Database, kind: str, identity: Dict[str, Any]) -> Dict[str, Any]:
    existing = projections.get_by_identity(db, kind, identity["_id"])
    if existing is not None:
        return existing

    adopted = projections.adopt_unlinked(db, kind, identity.get("email"), identity["_id"])
    if adopted is not None:
        logger.info("linked existing %s projection %s to identity %s", kind, adopted["_id"], identity["_id"])
        log_activity(db, identity["_id"], "projection_adopted", {"kind": kind, "projection_id": str(adopted["_id"])})
        return adopted

    now = _utcnow()
    extra: Dict[str, Any] = {}
    if kind == "staff":
        extra = {"staff_code": generate_staff_code(db), "joining_date": now}
    on_insert = build_projection(kind, identity, extra, now)

    try:
        doc, created = projections.upsert_for_identity(db, kind, identity["_id"], on_insert)
    except DuplicateKeyError as exc:
        # lost the race to a concurrent repair, or the email belongs to someone else
        doc, created = projections.get_by_identity(db, kind, identity["_id"]), False
        if doc is None:
            raise ConflictError(
                f"{kind} projection email already used by another record",
                collection=kind, email=identity.get("email"),
            ) from exc

    if created:
        logger.warning("repaired missing %s projection for identity %s", kind, identity["_id"])
        log_activity(db, identity["_id"], "projection_repaired", {"kind": kind})
    return doc


def reconcile_on_read(db: Database, identity: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Make sure every projection the identity's role requires exists and is linked.
    Returns the primary projection (None for admins). Safe to call repeatedly
    and concurrently.
    """
    kinds = ROLE_PROJECTIONS.get(identity.get("role"), ())
    docs: Dict[str, Dict[str, Any]] = {}
    for kind in kinds:
        try:
            docs[kind] = _ensure_projection(db, kind, identity)
        except ConflictError as exc:
            if kind == kinds[0]:
                raise
            # a secondary projection that cannot be repaired does not hide the primary one
            logger.warning("could not repair %s projection for %s: %s", kind, identity["_id"], exc.message)
            log_activity(db, identity["_id"], "projection_repair_failed", {"kind": kind, "error": exc.message})
    if "trainer" in docs and "staff" in docs:
        projections.set_missing_fields(db, "staff", docs["staff"], docs["trainer"], TRAINER_FIELDS)
    return docs[kinds[0]] if kinds else None


# --- update / sync -----------------------------------------------------------
def _restore(db: Database, kind: str, record: Dict[str, Any], keys) -> None:
    previous = {k: record[k] for k in keys if k in record}
    absent = {k: "" for k in keys if k not in record}
    update: Dict[str, Any] = {}
    if previous:
        update["$set"] = previous
    if absent:
        update["$unset"] = absent
    if update:
        _collection_for(db, kind).update_one({"_id": record["_id"]}, update)


def _write(db: Database, kind: str, record_id, patch: Dict[str, Any]) -> None:
    try:
        if kind == "identity":
            identities.update_identity(db, record_id, patch)
        else:
            projections.update_projection(db, kind, record_id, patch)
    except DuplicateKeyError as exc:
        raise ConflictError(f"{kind} with this email already exists",
                            collection=kind, email=patch.get("email")) from exc


def sync_shared_fields(
    db: Database,
    identity_id,
    changed_fields: Dict[str, Any],
    origin: str = "identity",
) -> Dict[str, Any]:
    """
    Apply a direct write to the `origin` record of an identity and propagate the
    shared fields to every linked record.

    The origin is authoritative: it is written first, the others are updated to
    match it, never the reverse. name/email/phone flow everywhere, gender between
    identity/member/staff, specialization/bio/experience between trainer and
    staff. If a propagation fails, the records already written are restored.
    Returns the updated origin record.
    """
    identity = identities.get_identity(db, identity_id)
    if identity is None:
        raise NotFoundError("User not found", collection="identity", ref=str(identity_id))

    changed = _writable(origin, changed_fields)
    records: Dict[str, Dict[str, Any]] = {"identity": identity}
    for kind in projections.KINDS:
        doc = projections.get_by_identity(db, kind, identity["_id"])
        if doc is not None:
            records[kind] = doc
    if origin not in records:
        raise NotFoundError(f"{origin} profile not found", collection=origin, ref=str(identity_id))

    # uniqueness is checked in every store before anything is written
    if "email" in changed:
        for kind, record in records.items():
            _ensure_email_free(db, kind, changed["email"], exclude_id=record["_id"])

    plan: List[tuple] = [(origin, _stored(origin, changed))]
    outgoing = PROPAGATED_FIELDS[origin] | RELAYED_FIELDS.get(origin, set())
    for kind, record in records.items():
        if kind == origin:
            continue
        patch = {
            k: v for k, v in changed.items()
            if k in outgoing and k in PROPAGATED_FIELDS[kind] and record.get(k) != v
        }
        if patch:
            plan.append((kind, patch))

    saga = Saga(f"sync_{origin}")
    for kind, patch in plan:
        if not patch:
            continue
        record = records[kind]
        saga.add(
            kind,
            lambda r, kind=kind, record=record, patch=patch: _write(db, kind, record["_id"], patch),
            lambda _, kind=kind, record=record, patch=patch: _restore(db, kind, record, patch.keys()),
        )
    saga.run()

    touched = [kind for kind, patch in plan if patch]
    if touched:
        log_activity(db, identity["_id"], "sync_shared_fields", {
            "origin": origin,
            "fields": sorted(changed),
            "records": touched,
        })
        realtime.emit_to_user(identity["_id"], "profile_updated", {"origin": origin, "fields": sorted(changed)})
    return _collection_for(db, origin).find_one({"_id": records[origin]["_id"]})


def update_identity(db: Database, identity_id, fields: Dict[str, Any]) -> Dict[str, Any]:
    return sync_shared_fields(db, identity_id, fields, origin="identity")


def update_projection(db: Database, kind: str, projection_id, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Direct write to a projection; linked records follow through sync_shared_fields."""
    projection = projections.get_projection(db, kind, projection_id)
    if projection is None:
        raise NotFoundError(f"{kind.capitalize()} not found", collection=kind, ref=str(projection_id))

    changed = _writable(kind, fields)
    if kind == "member":
        _check_membership_dates(
            changed.get("membership_start_date", projection.get("membership_start_date")),
            changed.get("membership_end_date", projection.get("membership_end_date")),
        )

    identity = identities.get_identity(db, projection["identity_id"]) if projection.get("identity_id") else None
    if identity is not None:
        return sync_shared_fields(db, identity["_id"], changed, origin=kind)

    # unlinked record: nothing to propagate to
    if "email" in changed:
        _ensure_email_free(db, kind, changed["email"], exclude_id=projection["_id"])
    _write(db, kind, projection["_id"], _stored(kind, changed))
    return projections.get_projection(db, kind, projection["_id"])


# --- delete ------------------------------------------------------------------
def cascade_delete(db: Database, identity_id) -> Dict[str, Any]:
    """
    Delete the identity and all projections linked to it. A failing projection
    delete is logged and does not prevent the identity delete; absent records
    are reported, not raised.
    """
    oid = identities.to_object_id(identity_id)
    summary: Dict[str, Any] = {"identity": False, "errors": []}
    for kind in projections.KINDS:
        try:
            summary[kind] = projections.delete_by_identity(db, kind, oid)
        except PyMongoError as exc:
            logger.error("cascade delete of %s for %s failed: %s", kind, identity_id, exc)
            summary[kind] = 0
            summary["errors"].append({"kind": kind, "error": str(exc)})
    try:
        summary["identity"] = identities.delete_identity(db, oid)
    except PyMongoError as exc:
        logger.error("cascade delete of identity %s failed: %s", identity_id, exc)
        summary["errors"].append({"kind": "identity", "error": str(exc)})

    if not summary["identity"]:
        logger.info("cascade delete: identity %s was already gone", identity_id)
    log_activity(db, identity_id, "cascade_delete", {k: v for k, v in summary.items() if k != "errors"})
    return summary


def delete_from_projection(db: Database, kind: str, projection_id) -> Dict[str, Any]:
    """
    Delete initiated from a projection. When the linked identity's role owns this
    kind of projection the whole identity goes; otherwise only this record.
    """
    projection = projections.get_projection(db, kind, projection_id)
    if projection is None:
        raise NotFoundError(f"{kind.capitalize()} not found", collection=kind, ref=str(projection_id))

    identity = identities.get_identity(db, projection["identity_id"]) if projection.get("identity_id") else None
    if identity is not None and kind in ROLE_PROJECTIONS.get(identity.get("role"), ()):
        return cascade_delete(db, identity["_id"])

    deleted = projections.delete_projection(db, kind, projection["_id"])
    log_activity(db, projection.get("identity_id"), "delete_projection", {"kind": kind, "deleted": deleted})
    return {"identity": False, kind: int(deleted), "errors": []}

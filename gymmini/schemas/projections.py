from __future__ import annotations

from copy import deepcopy
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId

# identity roles and the projection kinds each one owns; the first kind is the primary one
ROLES = ("admin", "trainer", "member")
ROLE_PROJECTIONS = {
    "admin": (),
    "member": ("member",),
    "trainer": ("trainer", "staff"),
}

# older clients still send "Deactive"
MEMBER_STATUS_ALIASES = {"Deactive": "inactive", "deactive": "inactive"}

SHARED_FIELDS = ("name", "email", "phone")
TRAINER_FIELDS = ("specialization", "bio", "experience")

# which fields each record accepts when another linked record changes
PROPAGATED_FIELDS = {
    "identity": set(SHARED_FIELDS) | {"gender"},
    "member": set(SHARED_FIELDS) | {"gender"},
    "trainer": set(SHARED_FIELDS) | set(TRAINER_FIELDS),
    "staff": set(SHARED_FIELDS) | {"gender"} | set(TRAINER_FIELDS),
}

# fields a direct write may set on each record
WRITABLE_FIELDS = {
    "identity": set(SHARED_FIELDS) | {"gender"},
    "member": set(SHARED_FIELDS) | {
        "gender", "age", "weight", "membership_start_date", "membership_end_date",
        "plan", "class_name", "class_type", "difficulty_level", "status", "next_billing_date",
    },
    "trainer": set(SHARED_FIELDS) | set(TRAINER_FIELDS) | {"gender"},
    "staff": set(SHARED_FIELDS) | set(TRAINER_FIELDS) | {
        "gender", "joining_date", "salary_type", "base_salary", "status",
    },
}

# accepted on a direct write but not stored on that record: only passed on to linked records
RELAYED_FIELDS = {
    "trainer": {"gender"},
}

# Values used wherever a projection is synthesized from an identity alone.
PROJECTION_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "member": {
        "phone": "N/A",
        "gender": "Others",
        "plan": "",
        "class_name": "",
        "class_type": "Cardio",
        "difficulty_level": "Beginner",
        "status": "pending",
        "total_attendance": 0,
    },
    "trainer": {
        "phone": "N/A",
        "specialization": "",
        "bio": "",
        "experience": "",
    },
    "staff": {
        "phone": "N/A",
        "role": "Trainer",
        "gender": "Others",
        "salary_type": "Monthly",
        "base_salary": 0,
        "status": "Active",
        "specialization": "",
        "bio": "",
        "experience": "",
    },
}


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def normalize_member_status(status: Optional[str]) -> Optional[str]:
    if status is None:
        return None
    return MEMBER_STATUS_ALIASES.get(status, status)


def _clean(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def build_projection(
    kind: str,
    identity: Optional[Dict[str, Any]],
    fields: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Assemble a projection document: defaults, then identity's shared fields,
    then explicit fields. `identity_id` is omitted when there is no identity so
    the sparse unique index ignores the document.
    """
    doc = deepcopy(PROJECTION_DEFAULTS[kind])
    if identity:
        doc.update(_clean({
            "name": identity.get("name"),
            "email": identity.get("email"),
            "phone": identity.get("phone"),
        }))
        if kind in ("member", "staff") and identity.get("gender"):
            doc["gender"] = identity["gender"]
        doc["identity_id"] = identity["_id"]
    doc.update(_clean(fields or {}))
    if "email" in doc:
        doc["email"] = normalize_email(doc["email"])
    if kind == "member" and "status" in doc:
        doc["status"] = normalize_member_status(doc["status"])
    if now is not None:
        doc.setdefault("created_at", now)
        doc["updated_at"] = now
    return doc


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """JSON-safe copy: ObjectIds to str, `_id` exposed as `id`, password dropped."""
    if doc is None:
        return None
    out: Dict[str, Any] = {}
    for key, value in doc.items():
        if key == "password":
            continue
        if isinstance(value, ObjectId):
            value = str(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, dict):
            value = serialize(value)
        out["id" if key == "_id" else key] = value
    return out

# gymmini/routes/members.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from gymmini.authz import require_role
from gymmini.db import get_db
from gymmini.schemas.requests import MemberCreate, MemberUpdate
from gymmini.services import access, reconciler

router = APIRouter(prefix="/members", tags=["members"])

IDENTITY_KEYS = ("name", "email", "phone", "gender")


@router.get("/")
def list_members(
    search: Optional[str] = None,
    status: Optional[str] = Query(default=None, pattern="^(active|inactive|pending|expired)$"),
    db: Database = Depends(get_db),
    user=Depends(require_role("admin", "trainer")),
):
    return access.list_members(db, search=search, status=status)


@router.post("/", status_code=201)
def create_member(payload: MemberCreate, db: Database = Depends(get_db), user=Depends(require_role("admin"))):
    data = payload.model_dump(exclude_none=True)
    identity_data = {k: data.get(k) for k in IDENTITY_KEYS}
    identity_data["role"] = "member"
    member = reconciler.create_with_projection(db, identity_data, data)
    return {"message": "Member created successfully", "member": access.member_view(member)}


@router.get("/profile")
def my_profile(db: Database = Depends(get_db), user=Depends(require_role("member"))):
    return access.member_view(access.get_own_projection(db, user, "member"))


@router.get("/{member_id}")
def get_member(member_id: str, db: Database = Depends(get_db), user=Depends(require_role("admin", "trainer"))):
    return access.get_projection_view(db, "member", member_id)


@router.put("/{member_id}")
def update_member(member_id: str, payload: MemberUpdate, db: Database = Depends(get_db),
                  user=Depends(require_role("admin"))):
    member = reconciler.update_projection(db, "member", member_id, payload.model_dump(exclude_none=True))
    return {"message": "Member updated successfully", "member": access.member_view(member)}


@router.delete("/{member_id}")
def delete_member(member_id: str, db: Database = Depends(get_db), user=Depends(require_role("admin"))):
    summary = reconciler.delete_from_projection(db, "member", member_id)
    return {"message": "Member deleted successfully", "deleted": summary}

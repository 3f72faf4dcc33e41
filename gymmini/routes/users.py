# gymmini/routes/users.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from gymmini.authz import require_role
from gymmini.db import get_db
from gymmini.services import access

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/")
def list_users(
    role: Optional[str] = Query(default=None, pattern="^(admin|trainer|member)$"),
    status: Optional[str] = Query(default=None, pattern="^(active|inactive|pending|expired)$"),
    search: Optional[str] = None,
    db: Database = Depends(get_db),
    user=Depends(require_role("admin")),
):
    return access.list_identities_with_projections(db, role=role, status=status, search=search)

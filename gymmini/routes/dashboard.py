# gymmini/routes/dashboard.py
from fastapi import APIRouter, Depends
from pymongo.database import Database

from gymmini.authz import require_role
from gymmini.db import get_db
from gymmini.services import access

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/member")
def member_dashboard(db: Database = Depends(get_db), user=Depends(require_role("member"))):
    return access.member_dashboard(db, user)

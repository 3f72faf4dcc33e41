# gymmini/routes/attendance.py
from fastapi import APIRouter, Depends
from pymongo.database import Database

from gymmini.authz import require_role
from gymmini.db import get_db
from gymmini.schemas.requests import AttendanceMark
from gymmini.services import access, attendance

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post("/")
def mark(payload: AttendanceMark, db: Database = Depends(get_db), user=Depends(require_role("admin", "trainer"))):
    row = attendance.mark_attendance(db, payload.session_id, payload.member_id, payload.is_present, actor=user)
    return {"message": "Attendance marked successfully", "attendance": row}


@router.get("/member")
def my_history(db: Database = Depends(get_db), user=Depends(require_role("member"))):
    member = access.get_own_projection(db, user, "member")
    return attendance.member_history(db, member["_id"])


@router.get("/session/{session_id}")
def session_roster(session_id: str, db: Database = Depends(get_db), user=Depends(require_role("admin", "trainer"))):
    return attendance.session_attendance(db, session_id, actor=user)

# gymmini/routes/sessions.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from gymmini.authz import require_role
from gymmini.db import get_db
from gymmini.schemas.projections import serialize
from gymmini.schemas.requests import SessionCreate, SessionStatus, SessionUpdate
from gymmini.services import sessions

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("/")
def list_sessions(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[SessionStatus] = None,
    db: Database = Depends(get_db),
    user=Depends(require_role("admin", "trainer", "member")),
):
    return [serialize(s) for s in sessions.list_sessions(db, start=start, end=end, status=status)]


@router.post("/", status_code=201)
def create_session(payload: SessionCreate, db: Database = Depends(get_db), user=Depends(require_role("admin"))):
    session = sessions.create_session(db, payload.model_dump(exclude_none=True))
    return {"message": "Session created successfully", "session": serialize(session)}


@router.get("/{session_id}")
def get_session(session_id: str, db: Database = Depends(get_db),
                user=Depends(require_role("admin", "trainer", "member"))):
    return serialize(sessions.get_session(db, session_id))


@router.put("/{session_id}")
def update_session(session_id: str, payload: SessionUpdate, db: Database = Depends(get_db),
                   user=Depends(require_role("admin"))):
    session = sessions.update_session(db, session_id, payload.model_dump(exclude_none=True))
    return {"message": "Session updated successfully", "session": serialize(session)}


@router.put("/{session_id}/cancel")
def cancel_session(session_id: str, db: Database = Depends(get_db), user=Depends(require_role("admin"))):
    session = sessions.cancel_session(db, session_id)
    return {"message": "Session cancelled successfully", "session": serialize(session)}

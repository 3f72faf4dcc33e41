# gymmini/routes/trainers.py
from fastapi import APIRouter, Depends
from pymongo.database import Database

from gymmini.authz import require_role
from gymmini.db import get_db
from gymmini.schemas.projections import serialize
from gymmini.schemas.requests import TrainerCreate, TrainerUpdate
from gymmini.services import access, reconciler, sessions

router = APIRouter(prefix="/trainers", tags=["trainers"])


@router.get("/")
def list_trainers(db: Database = Depends(get_db), user=Depends(require_role("admin", "trainer", "member"))):
    return access.list_trainers(db)


@router.post("/", status_code=201)
def create_trainer(payload: TrainerCreate, db: Database = Depends(get_db), user=Depends(require_role("admin"))):
    data = payload.model_dump(exclude_none=True)
    identity_data = {k: data.get(k) for k in ("name", "email", "phone", "gender")}
    identity_data["role"] = "trainer"
    trainer = reconciler.create_with_projection(db, identity_data, data)
    return {"message": "Trainer created successfully", "trainer": serialize(trainer)}


# self-service routes sit above /{trainer_id} so "profile" is not read as an id
@router.get("/profile/me")
def my_profile(db: Database = Depends(get_db), user=Depends(require_role("trainer"))):
    return serialize(access.get_own_projection(db, user, "trainer"))


@router.put("/profile/me")
def update_my_profile(payload: TrainerUpdate, db: Database = Depends(get_db), user=Depends(require_role("trainer"))):
    trainer = access.get_own_projection(db, user, "trainer")
    updated = reconciler.update_projection(db, "trainer", trainer["_id"], payload.model_dump(exclude_none=True))
    return {"message": "Profile updated successfully", "trainer": serialize(updated)}


@router.get("/classes")
def my_classes(db: Database = Depends(get_db), user=Depends(require_role("trainer"))):
    trainer = access.get_own_projection(db, user, "trainer")
    return [serialize(s) for s in sessions.trainer_sessions(db, trainer)]


@router.get("/{trainer_id}")
def get_trainer(trainer_id: str, db: Database = Depends(get_db),
                user=Depends(require_role("admin", "trainer", "member"))):
    return access.get_projection_view(db, "trainer", trainer_id)


@router.put("/{trainer_id}")
def update_trainer(trainer_id: str, payload: TrainerUpdate, db: Database = Depends(get_db),
                   user=Depends(require_role("admin"))):
    trainer = reconciler.update_projection(db, "trainer", trainer_id, payload.model_dump(exclude_none=True))
    return {"message": "Trainer updated successfully", "trainer": serialize(trainer)}


@router.delete("/{trainer_id}")
def delete_trainer(trainer_id: str, db: Database = Depends(get_db), user=Depends(require_role("admin"))):
    summary = reconciler.delete_from_projection(db, "trainer", trainer_id)
    return {"message": "Trainer deleted successfully", "deleted": summary}

# gymmini/routes/employees.py
from fastapi import APIRouter, Depends
from pymongo.database import Database

from gymmini.authz import require_role
from gymmini.db import get_db
from gymmini.schemas.requests import StaffCreate, StaffUpdate
from gymmini.services import access, reconciler

router = APIRouter(prefix="/employees", tags=["employees"])


@router.get("/")
def list_employees(db: Database = Depends(get_db), user=Depends(require_role("admin"))):
    return access.list_staff(db)


@router.get("/{employee_id}")
def get_employee(employee_id: str, db: Database = Depends(get_db), user=Depends(require_role("admin"))):
    return access.get_projection_view(db, "staff", employee_id)


@router.post("/", status_code=201)
def create_employee(payload: StaffCreate, db: Database = Depends(get_db), user=Depends(require_role("admin"))):
    staff = reconciler.create_staff(db, payload.model_dump(exclude_none=True))
    return {
        "message": "Employee created successfully",
        "employee": access.get_projection_view(db, "staff", staff["_id"]),
    }


@router.put("/{employee_id}")
def update_employee(employee_id: str, payload: StaffUpdate, db: Database = Depends(get_db),
                    user=Depends(require_role("admin"))):
    staff = reconciler.update_projection(db, "staff", employee_id, payload.model_dump(exclude_none=True))
    return {
        "message": "Employee updated successfully",
        "employee": access.get_projection_view(db, "staff", staff["_id"]),
    }


@router.delete("/{employee_id}")
def delete_employee(employee_id: str, db: Database = Depends(get_db), user=Depends(require_role("admin"))):
    summary = reconciler.delete_from_projection(db, "staff", employee_id)
    return {"message": "Employee deleted successfully", "deleted": summary}

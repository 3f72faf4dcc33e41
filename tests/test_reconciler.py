from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from gymmini.db import identities, projections
from gymmini.errors import ConflictError, DependencyError, NotFoundError, ValidationError
from gymmini.services import billing, notify, reconciler

UTC = timezone.utc


def _bare_identity(db, email="ghost@gym.com", role="member", name="Ghost"):
    """An identity written without its projections, as legacy flows left them."""
    return identities.insert_identity(db, {"name": name, "email": email, "role": role, "password": "x"})


# ---------- create ----------
def test_create_member_writes_identity_and_linked_projection(mock_db, make_member):
    member = make_member()

    identity = identities.get_identity(mock_db, member["identity_id"])
    assert identity["role"] == "member"
    assert identity["email"] == "ana@gym.com"
    stored = projections.get_by_identity(mock_db, "member", identity["_id"])
    assert stored["_id"] == member["_id"]
    assert stored["status"] == "active"
    assert stored["total_attendance"] == 0
    assert "password" not in stored


def test_next_billing_date_defaults_to_start_plus_thirty_days(mock_db, make_member):
    member = make_member(membership_start_date=datetime(2024, 1, 1, tzinfo=UTC))
    stored = projections.get_projection(mock_db, "member", member["_id"])
    assert billing.as_utc(stored["next_billing_date"]) == datetime(2024, 1, 31, tzinfo=UTC)


@pytest.mark.parametrize("end", [datetime(2024, 1, 1, tzinfo=UTC), datetime(2023, 12, 1, tzinfo=UTC)])
def test_end_not_after_start_is_rejected_before_any_write(mock_db, make_member, end):
    with pytest.raises(ValidationError):
        make_member(membership_start_date=datetime(2024, 1, 1, tzinfo=UTC), membership_end_date=end)
    assert mock_db.users.count_documents({}) == 0
    assert mock_db.members.count_documents({}) == 0


def test_member_requires_plan(mock_db, make_member):
    with pytest.raises(ValidationError):
        make_member(plan="")


def test_member_email_is_unique_case_insensitively(mock_db, make_member):
    make_member(email="ana@gym.com")
    with pytest.raises(ConflictError):
        make_member(email="ANA@Gym.com")
    assert mock_db.users.count_documents({}) == 1
    assert mock_db.members.count_documents({}) == 1


def test_email_held_by_unlinked_member_blocks_create(mock_db, make_member):
    mock_db.members.insert_one({"name": "Legacy", "email": "legacy@gym.com"})
    with pytest.raises(ConflictError):
        make_member(email="legacy@gym.com")
    assert mock_db.users.count_documents({}) == 0


def test_invalid_role_is_rejected(mock_db):
    with pytest.raises(ValidationError):
        reconciler.create_with_projection(mock_db, {"name": "X", "email": "x@gym.com", "role": "owner"})


def test_self_registered_member_starts_pending(mock_db):
    member = reconciler.create_with_projection(
        mock_db, {"name": "Reg", "email": "reg@gym.com", "password": "secret1", "role": "member"},
        send_credentials=False,
    )
    assert member["status"] == "pending"
    assert "membership_end_date" not in member


def test_admin_has_no_projection(mock_db, admin_user):
    assert admin_user["role"] == "admin"
    for kind in projections.KINDS:
        assert projections.get_by_identity(mock_db, kind, admin_user["_id"]) is None


def test_create_trainer_writes_trainer_and_staff(mock_db, make_trainer):
    trainer = make_trainer()

    staff = projections.get_by_identity(mock_db, "staff", trainer["identity_id"])
    assert staff["role"] == "Trainer"
    assert staff["staff_code"] == "EMP-001"
    assert staff["specialization"] == "Yoga"
    assert staff["email"] == trainer["email"]


def test_staff_codes_are_sequential(mock_db, make_trainer):
    make_trainer(email="a@gym.com")
    make_trainer(email="b@gym.com")
    codes = sorted(s["staff_code"] for s in mock_db.employees.find())
    assert codes == ["EMP-001", "EMP-002"]


def test_staff_code_continues_after_existing_records(mock_db):
    mock_db.employees.insert_one({"name": "Old", "email": "old@gym.com", "staff_code": "EMP-007"})
    assert reconciler.generate_staff_code(mock_db) == "EMP-008"
    assert reconciler.generate_staff_code(mock_db) == "EMP-009"


def test_default_password_is_used_when_none_given(mock_db, make_member):
    from gymmini.auth import verify_password

    member = make_member()
    identity = identities.get_identity(mock_db, member["identity_id"])
    assert verify_password("password123", identity["password"])


def test_failed_projection_write_removes_the_identity(mock_db, make_member, monkeypatch):
    original = projections.insert_projection

    def failing(db, kind, doc):
        if kind == "member":
            raise PyMongoError("members unavailable")
        return original(db, kind, doc)

    monkeypatch.setattr(projections, "insert_projection", failing)
    with pytest.raises(PyMongoError):
        make_member()
    assert mock_db.users.count_documents({}) == 0
    assert mock_db.members.count_documents({}) == 0


def test_failed_staff_write_removes_identity_and_trainer(mock_db, make_trainer, monkeypatch):
    original = projections.insert_projection

    def failing(db, kind, doc):
        if kind == "staff":
            raise PyMongoError("employees unavailable")
        return original(db, kind, doc)

    monkeypatch.setattr(projections, "insert_projection", failing)
    with pytest.raises(PyMongoError):
        make_trainer()
    assert mock_db.users.count_documents({}) == 0
    assert mock_db.trainers.count_documents({}) == 0


def test_credentials_email_failure_keeps_records(mock_db, monkeypatch):
    def failing(*args, **kwargs):
        raise DependencyError("smtp down", dependency="email")

    monkeypatch.setattr(notify, "send_credentials", failing)
    trainer = reconciler.create_with_projection(
        mock_db, {"name": "Tia", "email": "tia@gym.com", "phone": "1", "role": "trainer"}
    )
    assert identities.get_identity(mock_db, trainer["identity_id"]) is not None
    assert mock_db.activity_logs.count_documents({"action": "credentials_email_failed"}) == 1


# ---------- non-trainer staff ----------
def test_reception_staff_is_a_staff_record_only(mock_db):
    staff = reconciler.create_staff(mock_db, {
        "name": "Rita", "email": "rita@gym.com", "phone": "2", "role": "Reception",
        "gender": "Female", "salary_type": "Monthly", "base_salary": 1200,
    })
    assert staff["role"] == "Reception"
    assert staff["staff_code"] == "EMP-001"
    assert "identity_id" not in staff
    assert mock_db.users.count_documents({}) == 0


def test_staff_links_to_existing_identity_with_same_email(mock_db, make_member):
    member = make_member(email="both@gym.com")
    staff = reconciler.create_staff(mock_db, {
        "name": "Both", "email": "both@gym.com", "phone": "3", "role": "Cleaner",
        "gender": "Male", "salary_type": "Per-hour", "base_salary": 15,
    })
    assert staff["identity_id"] == member["identity_id"]


def test_trainer_staff_goes_through_identity_creation(mock_db):
    staff = reconciler.create_staff(mock_db, {
        "name": "Tad", "email": "tad@gym.com", "phone": "4", "role": "Trainer",
        "gender": "Male", "salary_type": "Per-class", "base_salary": 40, "specialization": "HIIT",
    }, send_credentials=False)
    identity = identities.get_identity(mock_db, staff["identity_id"])
    assert identity["role"] == "trainer"
    trainer = projections.get_by_identity(mock_db, "trainer", identity["_id"])
    assert trainer["specialization"] == "HIIT"
    assert staff["salary_type"] == "Per-class"


# ---------- repair-on-read ----------
def test_repair_synthesizes_pending_member(mock_db):
    identity = _bare_identity(mock_db)
    member = reconciler.reconcile_on_read(mock_db, identity)

    assert member["identity_id"] == identity["_id"]
    assert member["status"] == "pending"
    assert member["phone"] == "N/A"
    assert member["plan"] == ""
    assert "membership_end_date" not in member
    assert mock_db.activity_logs.count_documents({"action": "projection_repaired"}) == 1


def test_repair_is_idempotent(mock_db):
    identity = _bare_identity(mock_db)
    first = reconciler.reconcile_on_read(mock_db, identity)
    second = reconciler.reconcile_on_read(mock_db, identity)

    assert first["_id"] == second["_id"]
    assert mock_db.members.count_documents({"identity_id": identity["_id"]}) == 1
    assert mock_db.activity_logs.count_documents({"action": "projection_repaired"}) == 1


def test_concurrent_repairs_leave_one_projection(mock_db):
    identity = _bare_identity(mock_db)
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: reconciler.reconcile_on_read(mock_db, identity), range(16)))

    assert len({r["_id"] for r in results}) == 1
    assert mock_db.members.count_documents({"identity_id": identity["_id"]}) == 1


def test_repair_that_loses_the_race_returns_the_winner(mock_db, monkeypatch):
    identity = _bare_identity(mock_db)
    winner_id = ObjectId()

    def racing_upsert(db, kind, identity_id, on_insert):
        # another request inserts first; our write then hits the unique index
        db.members.insert_one(dict(on_insert, _id=winner_id, identity_id=identity_id))
        raise DuplicateKeyError("E11000 duplicate key error")

    monkeypatch.setattr(projections, "upsert_for_identity", racing_upsert)
    member = reconciler.reconcile_on_read(mock_db, identity)
    assert member["_id"] == winner_id
    assert mock_db.members.count_documents({}) == 1


def test_repair_adopts_unlinked_projection_with_same_email(mock_db):
    legacy_id = mock_db.members.insert_one({"name": "Old", "email": "old@gym.com", "plan": "Silver"}).inserted_id
    identity = _bare_identity(mock_db, email="old@gym.com")

    member = reconciler.reconcile_on_read(mock_db, identity)
    assert member["_id"] == legacy_id
    assert member["identity_id"] == identity["_id"]
    assert member["plan"] == "Silver"
    assert mock_db.members.count_documents({}) == 1


def test_repair_conflicts_when_email_belongs_to_another_identity(mock_db):
    mock_db.members.insert_one({"name": "Other", "email": "taken@gym.com", "identity_id": ObjectId()})
    identity = _bare_identity(mock_db, email="taken@gym.com")

    with pytest.raises(ConflictError):
        reconciler.reconcile_on_read(mock_db, identity)
    assert mock_db.members.count_documents({"identity_id": identity["_id"]}) == 0


def test_repair_recreates_missing_staff_from_trainer(mock_db, make_trainer):
    trainer = make_trainer(specialization="Pilates")
    projections.delete_by_identity(mock_db, "staff", trainer["identity_id"])
    identity = identities.get_identity(mock_db, trainer["identity_id"])

    primary = reconciler.reconcile_on_read(mock_db, identity)
    assert primary["_id"] == trainer["_id"]
    staff = projections.get_by_identity(mock_db, "staff", identity["_id"])
    assert staff["role"] == "Trainer"
    assert staff["staff_code"] == "EMP-002"
    assert staff["specialization"] == "Pilates"


def test_repair_for_admin_is_a_no_op(mock_db, admin_user):
    assert reconciler.reconcile_on_read(mock_db, admin_user) is None


def test_staff_conflict_does_not_hide_the_trainer(mock_db, make_trainer):
    trainer = make_trainer()
    projections.delete_by_identity(mock_db, "staff", trainer["identity_id"])
    mock_db.employees.insert_one({"name": "Other Tom", "email": "tom@gym.com", "identity_id": ObjectId()})
    identity = identities.get_identity(mock_db, trainer["identity_id"])

    primary = reconciler.reconcile_on_read(mock_db, identity)
    assert primary["_id"] == trainer["_id"]
    assert projections.get_by_identity(mock_db, "staff", identity["_id"]) is None
    failure = mock_db.activity_logs.find_one({"action": "projection_repair_failed"})
    assert failure["user_id"] == str(identity["_id"])
    assert failure["metadata"]["kind"] == "staff"


# ---------- sync ----------
def test_trainer_write_propagates_to_staff_and_identity(mock_db, make_trainer):
    trainer = make_trainer()
    reconciler.update_projection(mock_db, "trainer", trainer["_id"], {"phone": "999", "specialization": "HIIT"})

    staff = projections.get_by_identity(mock_db, "staff", trainer["identity_id"])
    identity = identities.get_identity(mock_db, trainer["identity_id"])
    assert staff["phone"] == "999"
    assert staff["specialization"] == "HIIT"
    assert identity["phone"] == "999"
    assert "specialization" not in identity


def test_trainer_gender_is_kept_on_identity_and_staff(mock_db, make_trainer):
    trainer = make_trainer()
    reconciler.update_projection(mock_db, "trainer", trainer["_id"], {"gender": "Female"})

    assert identities.get_identity(mock_db, trainer["identity_id"])["gender"] == "Female"
    assert projections.get_by_identity(mock_db, "staff", trainer["identity_id"])["gender"] == "Female"
    assert "gender" not in projections.get_projection(mock_db, "trainer", trainer["_id"])


def test_staff_write_propagates_to_trainer(mock_db, make_trainer):
    trainer = make_trainer()
    staff = projections.get_by_identity(mock_db, "staff", trainer["identity_id"])
    reconciler.update_projection(mock_db, "staff", staff["_id"], {"name": "Thomas", "bio": "New bio", "base_salary": 900})

    trainer = projections.get_projection(mock_db, "trainer", trainer["_id"])
    assert trainer["name"] == "Thomas"
    assert trainer["bio"] == "New bio"
    assert "base_salary" not in trainer
    assert identities.get_identity(mock_db, trainer["identity_id"])["name"] == "Thomas"


def test_identity_email_change_reaches_member(mock_db, make_member):
    member = make_member()
    updated = reconciler.update_identity(mock_db, member["identity_id"], {"email": "NEW@gym.com"})

    assert updated["email"] == "new@gym.com"
    assert projections.get_projection(mock_db, "member", member["_id"])["email"] == "new@gym.com"


def test_sync_rejects_email_used_elsewhere(mock_db, make_member):
    first = make_member(email="one@gym.com")
    make_member(email="two@gym.com", name="Two")

    with pytest.raises(ConflictError):
        reconciler.update_projection(mock_db, "member", first["_id"], {"email": "two@gym.com"})
    assert identities.get_identity(mock_db, first["identity_id"])["email"] == "one@gym.com"
    assert projections.get_projection(mock_db, "member", first["_id"])["email"] == "one@gym.com"


def test_failed_propagation_restores_written_records(mock_db, make_trainer, monkeypatch):
    trainer = make_trainer()
    original = projections.update_projection

    def failing(db, kind, projection_id, fields):
        if kind == "staff":
            raise PyMongoError("employees unavailable")
        return original(db, kind, projection_id, fields)

    monkeypatch.setattr(projections, "update_projection", failing)
    with pytest.raises(PyMongoError):
        reconciler.update_identity(mock_db, trainer["identity_id"], {"phone": "111"})

    assert identities.get_identity(mock_db, trainer["identity_id"])["phone"] == "555-0200"
    assert projections.get_projection(mock_db, "trainer", trainer["_id"])["phone"] == "555-0200"


def test_member_update_checks_dates_against_stored_values(mock_db, make_member):
    member = make_member(membership_start_date=datetime(2024, 3, 1, tzinfo=UTC))
    with pytest.raises(ValidationError):
        reconciler.update_projection(mock_db, "member", member["_id"],
                                     {"membership_end_date": datetime(2024, 2, 1, tzinfo=UTC)})


def test_deactive_status_is_stored_as_inactive(mock_db, make_member):
    member = make_member()
    updated = reconciler.update_projection(mock_db, "member", member["_id"], {"status": "Deactive"})
    assert updated["status"] == "inactive"


def test_unlinked_projection_updates_in_place(mock_db):
    legacy_id = mock_db.members.insert_one({"name": "Old", "email": "old@gym.com"}).inserted_id
    updated = reconciler.update_projection(mock_db, "member", legacy_id, {"name": "Older"})
    assert updated["name"] == "Older"


def test_update_unknown_projection_raises_not_found(mock_db):
    with pytest.raises(NotFoundError):
        reconciler.update_projection(mock_db, "member", ObjectId(), {"name": "Nobody"})


# ---------- delete ----------
def test_cascade_delete_removes_everything(mock_db, make_trainer):
    trainer = make_trainer()
    summary = reconciler.cascade_delete(mock_db, trainer["identity_id"])

    assert summary["identity"] is True
    assert summary["trainer"] == 1
    assert summary["staff"] == 1
    assert summary["errors"] == []
    for name in ("users", "trainers", "employees"):
        assert mock_db[name].count_documents({}) == 0


def test_cascade_delete_of_missing_identity_does_not_raise(mock_db):
    summary = reconciler.cascade_delete(mock_db, ObjectId())
    assert summary["identity"] is False
    assert summary["member"] == 0


def test_cascade_delete_continues_past_a_failing_store(mock_db, make_trainer, monkeypatch):
    trainer = make_trainer()
    original = projections.delete_by_identity

    def failing(db, kind, identity_id):
        if kind == "trainer":
            raise PyMongoError("trainers unavailable")
        return original(db, kind, identity_id)

    monkeypatch.setattr(projections, "delete_by_identity", failing)
    summary = reconciler.cascade_delete(mock_db, trainer["identity_id"])

    assert summary["identity"] is True
    assert summary["staff"] == 1
    assert [e["kind"] for e in summary["errors"]] == ["trainer"]


def test_deleting_member_projection_deletes_identity(mock_db, make_member):
    member = make_member()
    reconciler.delete_from_projection(mock_db, "member", member["_id"])
    assert identities.get_identity(mock_db, member["identity_id"]) is None
    assert mock_db.members.count_documents({}) == 0


def test_deleting_foreign_staff_record_keeps_identity(mock_db, make_member):
    member = make_member(email="both@gym.com")
    staff = reconciler.create_staff(mock_db, {
        "name": "Both", "email": "both@gym.com", "phone": "3", "role": "Reception",
        "gender": "Male", "salary_type": "Monthly", "base_salary": 10,
    })
    summary = reconciler.delete_from_projection(mock_db, "staff", staff["_id"])

    assert summary["staff"] == 1
    assert identities.get_identity(mock_db, member["identity_id"]) is not None
    assert mock_db.members.count_documents({}) == 1

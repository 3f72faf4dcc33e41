from pymongo.database import Database

from gymmini.db import ACTIVITY_LOGS, ATTENDANCE, EMPLOYEES, MEMBERS, OTPS, SESSIONS, TRAINERS, USERS


def ensure_indexes(db: Database):
    # emails are stored lower-cased, so plain unique indexes give case-insensitive uniqueness
    db[USERS].create_index("email", unique=True)
    db[USERS].create_index("role")

    # projections: one per identity (sparse: legacy members carry no identity_id), one per email
    for name in (MEMBERS, TRAINERS, EMPLOYEES):
        db[name].create_index("email", unique=True)
        db[name].create_index("identity_id", unique=True, sparse=True)
        db[name].create_index([("created_at", -1)])

    db[MEMBERS].create_index("membership_end_date")
    db[EMPLOYEES].create_index("staff_code", unique=True, sparse=True)

    db[SESSIONS].create_index([("date", 1), ("status", 1)])
    db[SESSIONS].create_index("trainer_id")

    db[ATTENDANCE].create_index([("session_id", 1), ("member_id", 1)], unique=True)
    db[OTPS].create_index("email")
    db[ACTIVITY_LOGS].create_index([("user_id", 1), ("timestamp", -1)])

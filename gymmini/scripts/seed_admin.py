# gymmini/scripts/seed_admin.py
"""
Create the admin identity from ADMIN_EMAIL / ADMIN_PASSWORD if it is missing.

    python -m gymmini.scripts.seed_admin
"""
from pymongo.database import Database

from gymmini import settings
from gymmini.db import get_db
from gymmini.db.identities import get_identity_by_email
from gymmini.db_init import ensure_indexes
from gymmini.services import reconciler
from gymmini.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


def seed_admin(db: Database) -> bool:
    """Returns True when a new admin was created."""
    if get_identity_by_email(db, settings.ADMIN_EMAIL):
        logger.info("admin %s already exists", settings.ADMIN_EMAIL)
        return False

    reconciler.create_with_projection(
        db,
        {
            "name": "Admin",
            "email": settings.ADMIN_EMAIL,
            "password": settings.ADMIN_PASSWORD,
            "role": "admin",
        },
        send_credentials=False,
    )
    logger.info("admin %s created", settings.ADMIN_EMAIL)
    return True


if __name__ == "__main__":
    configure_logging()
    database = get_db()
    ensure_indexes(database)
    seed_admin(database)

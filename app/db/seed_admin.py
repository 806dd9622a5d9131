"""
Create the first admin from INITIAL_ADMIN_EMAIL / INITIAL_ADMIN_PASSWORD / INITIAL_ADMIN_NAME.

    python -m app.db.seed_admin

Further admins are created through POST /api/auth/admin/signup by an existing admin.
"""
import logging
import sys

from app.core.config import settings
from app.core.security import hash_password
from app.db.session import SessionLocal, init_db
from app.db.transaction import transaction
from app.models.admin import Admin
from app.models.principal import PrincipalKind, get_principal_by_email

logger = logging.getLogger(__name__)


def seed_admin(db) -> Admin:
    if not settings.INITIAL_ADMIN_EMAIL or not settings.INITIAL_ADMIN_PASSWORD:
        raise RuntimeError("INITIAL_ADMIN_EMAIL and INITIAL_ADMIN_PASSWORD must be set")

    existing = get_principal_by_email(db, PrincipalKind.ADMIN, settings.INITIAL_ADMIN_EMAIL)
    if existing:
        logger.info(f"Admin already exists - email: {existing.email}")
        return existing

    admin = Admin(
        name=settings.INITIAL_ADMIN_NAME,
        email=settings.INITIAL_ADMIN_EMAIL,
        password=hash_password(settings.INITIAL_ADMIN_PASSWORD),
        designation="System Administrator",
        is_active=True,
        is_verified=True,
    )
    with transaction(db):
        db.add(admin)
    logger.info(f"Initial admin created - email: {admin.email}")
    return admin


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    init_db()
    db = SessionLocal()
    try:
        seed_admin(db)
    except RuntimeError as e:
        logger.error(str(e))
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())

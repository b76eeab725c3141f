import logging

from sqlalchemy.orm import Session

from ..config import get_settings
from ..db import models
from ..db.session import SessionLocal
from .slot_catalog import seed_catalog

logger = logging.getLogger(__name__)


def ensure_roles(session: Session, user_id: str, roles: list[models.AppRole]) -> None:
    existing = {
        row.role
        for row in session.query(models.UserRole).filter_by(user_id=user_id).all()
    }
    for role in roles:
        if role not in existing:
            session.add(models.UserRole(user_id=user_id, role=role))
            logger.info("Granted role '%s' to user '%s'", role.value, user_id)
    session.commit()


def seed(session: Session) -> None:
    settings = get_settings()
    seed_catalog(session, settings)
    if settings.default_admin_user_id:
        ensure_roles(session, settings.default_admin_user_id, [models.AppRole.admin])


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    with SessionLocal() as session:
        seed(session)
        print("Seed data created")

from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import User
from ..auth.security import get_password_hash
from .workflow import Role

logger = structlog.get_logger(__name__)


def seed_admin(db: Session, email: str, password: str, first_name: str = "Admin", last_name: str = "SPS") -> Optional[User]:
    """Create the first admin when the users table is empty. Returns None if users already exist."""
    if db.query(User).count() > 0:
        return None
    admin = User(
        email=email.strip().lower(),
        password_hash=get_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        role=Role.ADMIN.value,
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("bootstrap_admin_created", email=admin.email)
    return admin

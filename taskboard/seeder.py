import logging

from .auth import hash_password
from .config import ADMIN_PASSWORD
from .db import User
from .storage import Storage

logger = logging.getLogger(__name__)

DEFAULT_ADMIN = {
    "username": "admin",
    "email": "admin@kanban.local",
    "name": "System Administrator",
    "role": "admin",
}


def seed_admin(store: Storage, password: str = ADMIN_PASSWORD) -> bool:
    """Create the default administrator when the user table is empty."""
    if store.count_users():
        logger.info("Users already present, skipping admin seed")
        return False
    admin = store.add(User(password=hash_password(password), **DEFAULT_ADMIN))
    logger.info("Created default admin %r (id=%s)", admin.username, admin.id)
    return True

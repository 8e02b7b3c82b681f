"""
User Service - accounts and logins
"""
from datetime import datetime
from typing import Optional
import logging

from sqlalchemy.orm import Session

from balance_service.models import User, Role
from balance_service.core.errors import ConflictError
from balance_service.core.security import get_password_hash, verify_password

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def create(self, username: str, password: str, role: Role = Role.AUDITOR,
               full_name: str = None) -> User:
        if self.get_by_username(username):
            raise ConflictError(f"Username '{username}' is already taken")
        user = User(
            username=username,
            hashed_password=get_password_hash(password),
            full_name=full_name,
            role=Role(role).value,
            is_active=True,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Returns the user on a correct password, else None"""
        user = self.get_by_username(username)
        if not user or not verify_password(password, user.hashed_password):
            return None
        return user

    def record_login(self, user: User):
        user.last_login = datetime.utcnow()
        self.db.flush()

    def ensure_admin(self, username: str, password: str) -> User:
        """Create the bootstrap manager account once"""
        user = self.get_by_username(username)
        if user is None:
            user = self.create(username, password, role=Role.MANAGER, full_name="Administrator")
            logger.info(f"Bootstrap manager account '{username}' created")
        return user

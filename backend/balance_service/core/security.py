"""
Security Module - Authentication & Role Gates
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Iterable
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from balance_service.core.config import settings
from balance_service.core.database import get_db
from balance_service.core.errors import AuthorizationError
from balance_service.models import Role

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)

REPORT_READERS = (Role.ACCOUNTANT, Role.AUDITOR, Role.MANAGER)
BOOKKEEPERS = (Role.ACCOUNTANT, Role.MANAGER)
SALES_WRITERS = (Role.SALES_GROCERY, Role.SALES_BAKERY, Role.ACCOUNTANT, Role.MANAGER)
PROCUREMENT_WRITERS = (Role.PROCUREMENT, Role.INVENTORY, Role.ACCOUNTANT, Role.MANAGER)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db)
):
    """
    Dependency to get the current authenticated user from JWT token.
    Supports both Authorization header and cookies.
    """
    from balance_service.services.user_service import UserService

    token = credentials.credentials if credentials else None

    # Fall back to cookie
    if not token:
        token = request.cookies.get("access_token")

    if not token:
        raise AuthorizationError("Not authenticated")

    payload = decode_access_token(token)
    if payload is None:
        raise AuthorizationError("Invalid or expired token")

    username: str = payload.get("sub")
    if username is None:
        raise AuthorizationError("Invalid token payload")

    user = UserService(db).get_by_username(username)
    if user is None:
        raise AuthorizationError("User not found")

    if not user.is_active:
        raise AuthorizationError("User account is disabled", forbidden=True)

    return user


class RoleChecker:
    """Dependency for checking that the current user holds one of the given roles"""

    def __init__(self, roles: Iterable[Role]):
        self.roles = {Role(r).value for r in roles}

    def __call__(self, user=Depends(get_current_user)):
        if user.role not in self.roles:
            raise AuthorizationError(
                f"Role {user.role} is not permitted for this operation", forbidden=True
            )
        return user


require_report_reader = RoleChecker(REPORT_READERS)
require_bookkeeper = RoleChecker(BOOKKEEPERS)

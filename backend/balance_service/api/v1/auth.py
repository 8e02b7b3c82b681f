"""
Authentication API Routes
"""
from fastapi import APIRouter, Depends, Response, Request
from sqlalchemy.orm import Session
from datetime import timedelta

from balance_service.core.database import get_db
from balance_service.core.errors import AuthorizationError
from balance_service.core.security import create_access_token, get_current_user
from balance_service.core.config import settings
from balance_service.core.rate_limit import client_ip
from balance_service.schemas import LoginRequest, LoginResponse, UserOut, MessageResponse
from balance_service.services.user_service import UserService
from balance_service.services.audit_service import AuditService, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """Login and get access token"""
    user_service = UserService(db)
    audit_service = AuditService(db)
    ip_address = client_ip(request)

    user = user_service.authenticate(login_data.username, login_data.password)

    if user is None:
        audit_service.log(
            action=AuditAction.LOGIN_FAILED,
            resource_type="User",
            description=f"Failed login attempt for username '{login_data.username}'",
            ip_address=ip_address,
            request_path=request.url.path,
            status="failure",
            error_message="Invalid credentials"
        )
        db.commit()
        raise AuthorizationError("Invalid username or password")

    if not user.is_active:
        audit_service.log(
            action=AuditAction.LOGIN_FAILED,
            resource_type="User",
            resource_id=user.id,
            description=f"Login attempt for disabled account '{user.username}'",
            user=user,
            ip_address=ip_address,
            request_path=request.url.path,
            status="failure",
            error_message="Account is disabled"
        )
        db.commit()
        raise AuthorizationError("Account is disabled", forbidden=True)

    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.username, "role": user.role},
        expires_delta=access_token_expires
    )

    user_service.record_login(user)
    audit_service.log(
        action=AuditAction.LOGIN,
        resource_type="User",
        resource_id=user.id,
        description=f"User '{user.username}' logged in",
        user=user,
        ip_address=ip_address,
        request_path=request.url.path
    )
    db.commit()

    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        max_age=int(access_token_expires.total_seconds()),
        samesite="lax",
        secure=settings.is_production
    )

    return {"token": access_token, "user": UserOut.model_validate(user)}


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Logout and clear the token cookie"""
    AuditService(db).log(
        action=AuditAction.LOGOUT,
        resource_type="User",
        resource_id=current_user.id,
        description=f"User '{current_user.username}' logged out",
        user=current_user,
        ip_address=client_ip(request),
        request_path=request.url.path
    )
    db.commit()

    response.delete_cookie(key="access_token")
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserOut)
async def get_current_user_info(
    current_user = Depends(get_current_user)
):
    """Get current user info"""
    return current_user

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import func
from sqlalchemy.orm import Session

from autoparts.app.api.deps import client_ip
from autoparts.app.core.database import atomic, get_db
from autoparts.app.core.security import create_access_token, verify_password
from autoparts.app.models.user import User
from autoparts.app.services.audit import log_action

router = APIRouter()


@router.post("/login/access-token")
def login_access_token(
    request: Request,
    db: Session = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
) -> dict[str, str]:
    """OAuth2 password login for the till.

    Besides the bearer token the response carries the role and display name,
    so the POS client can hide privileged actions without a second call.
    """
    username = form_data.username.strip()
    user = db.query(User).filter(func.lower(User.username) == username.lower()).first()
    authenticated = user is not None and verify_password(form_data.password, user.hashed_password)

    with atomic(db):
        log_action(
            db,
            user_id=user.id if user else None,
            action="LOGIN" if authenticated and user.is_active else "LOGIN_FAILED",
            resource_type="auth",
            resource_id=username,
            ip_address=client_ip(request),
        )

    if not authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")

    return {
        "access_token": create_access_token(user.id),
        "token_type": "bearer",
        "role": user.role.value,
        "full_name": user.full_name or user.username,
    }

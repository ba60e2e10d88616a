from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from kitchen_pos.core.database import get_db
from kitchen_pos.core.errors import IdentityProviderError
from kitchen_pos.deps import get_current_user, get_identity
from kitchen_pos.models.user import User
from kitchen_pos.services.auth import create_access_token
from kitchen_pos.services.identity import IdentityProvider

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = logging.getLogger(__name__)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _authenticate(db: Session, identity: IdentityProvider, email: str, password: str) -> User:
    normalized = email.strip().lower()
    try:
        account = identity.verify_password(normalized, password)
    except IdentityProviderError:
        logger.exception("identity provider sign-in failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Identity provider unavailable")
    if account is None:
        raise _invalid_credentials()

    user = db.query(User).filter(User.email == normalized).first()
    if not user or not user.is_active:
        raise _invalid_credentials()
    if user.auth_user_id and user.auth_user_id != account.id:
        logger.warning("identity account mismatch user_id=%s", user.id)
        raise _invalid_credentials()
    return user


def _token_response(user: User) -> dict:
    token = create_access_token(
        user.id,
        extra={"role": user.role, "restaurant_id": user.restaurant_id},
    )
    return {"access_token": token, "token_type": "bearer"}


@router.post("/login")
def login(
    payload: LoginPayload,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
):
    return _token_response(_authenticate(db, identity, payload.email, payload.password))


@router.post("/token")
def token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
):
    """Swagger "Authorize" flow: form fields ``username`` and ``password``."""
    return _token_response(_authenticate(db, identity, form_data.username, form_data.password))


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "restaurant_id": user.restaurant_id,
    }

"""
Authentication and profile routes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from splan.config import Settings, get_settings
from splan.db import DbClient, DuplicateUserError, UserRecord
from splan.dependencies import get_current_user, get_db_client
from splan.schemas import (
    AuthData,
    Envelope,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    UpdateProfileRequest,
    UserOut,
    model_values,
)
from splan.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
users_router = APIRouter(prefix="/users", tags=["users"])


def _auth_data(user: UserRecord, settings: Settings) -> AuthData:
    token = create_access_token(
        user, settings.jwt_secret, expires_days=settings.jwt_expires_days
    )
    return AuthData(user=UserOut(**user.public_dict()), token=token)


@router.post("/register", response_model=Envelope[AuthData], status_code=201)
def register(
    payload: RegisterRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    email = payload.email.lower()
    if db.find_user(email=email, username=payload.username):
        raise HTTPException(
            status_code=400, detail="User with this email or username already exists"
        )
    try:
        user = db.create_user(
            username=payload.username,
            email=email,
            password_hash=hash_password(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
    except DuplicateUserError:
        raise HTTPException(
            status_code=400, detail="User with this email or username already exists"
        )
    logger.info("Registered user %s", user.id)
    return Envelope[AuthData](
        message="User registered successfully", data=_auth_data(user, settings)
    )


@router.post("/login", response_model=Envelope[AuthData])
def login(
    payload: LoginRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    user = db.get_user_by_email(payload.email.lower())
    if not user or not verify_password(user.password_hash, payload.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return Envelope[AuthData](message="Login successful", data=_auth_data(user, settings))


@router.post("/refresh", response_model=Envelope[AuthData])
def refresh(
    payload: RefreshRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    claims = decode_access_token(payload.refresh_token, settings.jwt_secret)
    user = db.get_user(claims["sub"]) if claims else None
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return Envelope[AuthData](
        message="Token refreshed successfully", data=_auth_data(user, settings)
    )


@router.post("/logout", response_model=MessageResponse)
def logout(user: UserRecord = Depends(get_current_user)):
    # Tokens are stateless; the client drops its copy.
    logger.info("User %s logged out", user.id)
    return MessageResponse(message="Logout successful")


@users_router.get("/profile", response_model=Envelope[UserOut])
def get_profile(user: UserRecord = Depends(get_current_user)):
    return Envelope[UserOut](
        message="Profile retrieved successfully", data=UserOut(**user.public_dict())
    )


@users_router.put("/profile", response_model=Envelope[UserOut])
def update_profile(
    payload: UpdateProfileRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    updated = db.update_user(user.id, model_values(payload, exclude_unset=True))
    if updated is None:
        raise HTTPException(status_code=404, detail="User not found")
    return Envelope[UserOut](
        message="Profile updated successfully", data=UserOut(**updated.public_dict())
    )

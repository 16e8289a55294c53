"""
auth.py

Account endpoints: register, login, token refresh/logout, profile and
password changes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from cinestream.api.deps import get_current_user
from cinestream.core.database import get_db
from cinestream.models import User
from cinestream.schemas import (
    ChangePasswordRequest, LoginRequest, ProfileUpdate, RefreshRequest, RegisterRequest,
    TokenResponse, UserSchema,
)
from cinestream.services import auth as auth_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    user = auth_service.register_user(db, payload.username, payload.email, payload.password, payload.display_name)
    return auth_service.issue_tokens(db, user)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, payload.username_or_email, payload.password)
    logger.info(f"User {user.id} logged in")
    return auth_service.issue_tokens(db, user)


@router.post("/refresh", response_model=TokenResponse)
def refresh(payload: RefreshRequest, db: Session = Depends(get_db)):
    return auth_service.refresh_tokens(db, payload.refresh_token)


@router.post("/logout")
def logout(payload: RefreshRequest, db: Session = Depends(get_db)):
    revoked = auth_service.revoke_refresh_token(db, payload.refresh_token)
    return {"success": True, "revoked": revoked}


@router.get("/me", response_model=UserSchema)
def me(user: User = Depends(get_current_user)):
    return user


@router.put("/me", response_model=UserSchema)
def update_me(payload: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if payload.display_name is not None:
        user.display_name = payload.display_name.strip() or user.username
        db.commit()
        db.refresh(user)
    return user


@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    auth_service.change_password(db, user, payload.current_password, payload.new_password)
    return {"success": True, "message": "Password changed; please log in again on other devices"}

"""
auth.py

Account registration, password hashing (bcrypt), JWT access tokens
(python-jose) and rotating refresh tokens stored as SHA-256 hashes.
"""
import hashlib
import logging
import re
import secrets
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from cinestream.core.config import settings
from cinestream.core.errors import AuthError, ConflictError, ValidationError
from cinestream.models import RefreshToken, User
from cinestream.schemas import UserSchema
from cinestream.utils.timezone import utc_now, ensure_utc

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,50}$")
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72  # bcrypt input limit


def validate_password(password: str) -> None:
    """Require 8+ chars with at least one digit, one uppercase and one lowercase letter."""
    problems = []
    if len(password or "") < MIN_PASSWORD_LENGTH:
        problems.append(f"at least {MIN_PASSWORD_LENGTH} characters")
    if not re.search(r"\d", password or ""):
        problems.append("a digit")
    if not re.search(r"[A-Z]", password or ""):
        problems.append("an uppercase letter")
    if not re.search(r"[a-z]", password or ""):
        problems.append("a lowercase letter")
    if problems:
        raise ValidationError("Password must contain " + ", ".join(problems))
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash or over-long input
        return False


def _hash_refresh_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def create_access_token(user: User) -> Tuple[str, int]:
    """Return (jwt, lifetime seconds)."""
    now = utc_now()
    lifetime = timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "username": user.username,
        "displayName": user.display_name or "",
        "jti": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, int(lifetime.total_seconds())


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise AuthError("Token has expired")
    except JWTError:
        raise AuthError("Invalid token")
    if not payload.get("sub"):
        raise AuthError("Invalid token")
    return payload


def user_id_from_token(token: Optional[str]) -> Optional[int]:
    """Best-effort subject extraction; None when the token is missing or invalid."""
    if not token:
        return None
    try:
        return int(decode_access_token(token)["sub"])
    except (AuthError, ValueError):
        return None


def register_user(db: Session, username: str, email: str, password: str, display_name: Optional[str] = None) -> User:
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not USERNAME_RE.match(username):
        raise ValidationError("Username must be 3-50 letters, digits, '.', '_' or '-'")
    if len(email) > 100 or not EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    validate_password(password)

    existing = db.query(User).filter(or_(User.username == username, User.email == email)).first()
    if existing:
        field = "Username" if existing.username == username else "Email"
        raise ConflictError(f"{field} is already registered")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        display_name=(display_name or "").strip() or username,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id} ({username})")
    return user


def authenticate(db: Session, username_or_email: str, password: str) -> User:
    ident = (username_or_email or "").strip()
    user = db.query(User).filter(or_(User.username == ident, User.email == ident.lower())).first()
    if not user or not verify_password(password or "", user.password_hash):
        logger.warning(f"Failed login for '{ident}'")
        raise AuthError("Invalid username/email or password")
    if not user.is_active:
        raise AuthError("Account is disabled")
    return user


def issue_tokens(db: Session, user: User) -> Dict[str, Any]:
    access_token, expires_in = create_access_token(user)
    raw_refresh = secrets.token_urlsafe(48)
    db.add(RefreshToken(
        user_id=user.id,
        token_hash=_hash_refresh_token(raw_refresh),
        expires_at=utc_now() + timedelta(days=settings.refresh_token_expire_days),
    ))
    db.commit()
    return {
        "access_token": access_token,
        "refresh_token": raw_refresh,
        "token_type": "bearer",
        "expires_in": expires_in,
        "user": UserSchema.model_validate(user).model_dump(),
    }


def _active_refresh_token(db: Session, raw: str) -> RefreshToken:
    token = db.query(RefreshToken).filter(RefreshToken.token_hash == _hash_refresh_token(raw or "")).first()
    if token is None or token.revoked_at is not None:
        raise AuthError("Invalid refresh token")
    if ensure_utc(token.expires_at) <= utc_now():
        raise AuthError("Refresh token has expired")
    return token


def refresh_tokens(db: Session, raw_refresh: str) -> Dict[str, Any]:
    """Rotate: revoke the presented refresh token and issue a new pair."""
    token = _active_refresh_token(db, raw_refresh)
    user = token.user
    if not user or not user.is_active:
        raise AuthError("Account is disabled")
    token.revoked_at = utc_now()
    db.commit()
    return issue_tokens(db, user)


def revoke_refresh_token(db: Session, raw_refresh: str) -> bool:
    token = db.query(RefreshToken).filter(RefreshToken.token_hash == _hash_refresh_token(raw_refresh or "")).first()
    if token is None or token.revoked_at is not None:
        return False
    token.revoked_at = utc_now()
    db.commit()
    return True


def revoke_all_refresh_tokens(db: Session, user_id: int) -> int:
    now = utc_now()
    count = db.query(RefreshToken).filter(
        RefreshToken.user_id == user_id,
        RefreshToken.revoked_at.is_(None),
    ).update({RefreshToken.revoked_at: now}, synchronize_session=False)
    db.commit()
    return count


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password or "", user.password_hash):
        raise AuthError("Current password is incorrect")
    validate_password(new_password)
    user.password_hash = hash_password(new_password)
    db.commit()
    revoked = revoke_all_refresh_tokens(db, user.id)
    logger.info(f"Password changed for user {user.id}; revoked {revoked} refresh tokens")

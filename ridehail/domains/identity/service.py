import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ridehail.core.security import create_access_token, hash_password, verify_password
from ridehail.domains.drivers.models import Driver
from ridehail.domains.identity.models import UserProfile

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def issue_token(user: UserProfile) -> str:
    return create_access_token(sub=user.id, role=user.role, extra={"email": user.email})  # type: ignore[arg-type]


def signup(
    db: Session,
    *,
    email: str,
    password: str,
    role: str,
    full_name: str | None,
    phone: str | None,
) -> UserProfile:
    email = _normalize_email(email)
    if db.query(UserProfile).filter(UserProfile.email == email).one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "EMAIL_TAKEN", "message": "An account with this email already exists."},
        )
    user = UserProfile(
        email=email,
        password_hash=hash_password(password),
        role=role,
        full_name=full_name,
        phone=phone,
    )
    db.add(user)
    db.flush()
    if role == "driver":
        # Drivers start offline until they go online from the dashboard.
        db.add(Driver(id=user.id, is_online=False))
    db.commit()
    db.refresh(user)
    logger.info("user signed up: id=%s role=%s", user.id, role)
    return user


def login(db: Session, *, email: str, password: str) -> UserProfile:
    user = db.query(UserProfile).filter(UserProfile.email == _normalize_email(email)).one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password")
    return user


def get_profile(db: Session, user_id: str) -> UserProfile:
    user = db.get(UserProfile, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return user


def update_profile(db: Session, user_id: str, *, full_name: str | None, phone: str | None) -> UserProfile:
    user = get_profile(db, user_id)
    if full_name is not None:
        user.full_name = full_name
    if phone is not None:
        user.phone = phone
    user.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)
    return user

# core/auth_service.py
import logging

import bcrypt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.access import Caller, require_caller
from core.config import MIN_PASSWORD_LENGTH
from core.db import transaction
from core.errors import NotFound, Unauthenticated, UserAlreadyExists, ValidationError
from core.logger import log_action
from models.enums import Role
from models.user import User

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("username", "phone", "address")


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # malformed hash
        return False


def _check_password_strength(password: str):
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long", code="WEAK_PASSWORD"
        )


def register_user(db: Session, email: str, password: str, role=Role.CUSTOMER, username: str = None,
                  phone: str = "", address: str = None):
    """Create an account; token issuance is left to the transport layer."""
    if not email:
        raise ValidationError("Email is required", code="INVALID_INPUT")
    try:
        role = Role(role)
    except ValueError:
        raise ValidationError(f"Unknown role: {role!r}", code="INVALID_ROLE")
    email = email.strip().lower()

    if db.query(User).filter(User.email == email).first():
        raise UserAlreadyExists(email)
    _check_password_strength(password)

    try:
        with transaction(db):
            user = User(
                email=email,
                username=username,
                password_hash=hash_password(password),
                phone=phone,
                address=address,
                role=role.value,
            )
            db.add(user)
            db.flush()
            log_action(db, Caller(user.id, role), "Registered account")
    except IntegrityError:
        raise UserAlreadyExists(email)
    db.refresh(user)
    logger.info("Registered %s as %s", email, role.value)
    return user


def authenticate_user(db: Session, email: str, password: str) -> Caller:
    """Check credentials and return the identity services act on."""
    user = db.query(User).filter(User.email == (email or "").strip().lower()).first()
    if not user or not verify_password(password or "", user.password_hash):
        logger.warning("Failed login for %s", email)
        raise Unauthenticated("Invalid email or password", code="INVALID_CREDENTIALS")
    return Caller(user.id, user.role)


def get_me(db: Session, caller):
    require_caller(caller)
    user = db.query(User).filter(User.id == caller.user_id).first()
    if not user:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    return user


def update_me(db: Session, caller, **changes):
    unknown = set(changes) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown profile fields: {sorted(unknown)}", code="INVALID_INPUT")
    with transaction(db):
        user = get_me(db, caller)
        for name, value in changes.items():
            if value is not None:
                setattr(user, name, value)
    db.refresh(user)
    return user


def change_password(db: Session, caller, current_password: str, new_password: str) -> bool:
    with transaction(db):
        user = get_me(db, caller)
        if not verify_password(current_password or "", user.password_hash):
            raise ValidationError("Current password is incorrect", code="INVALID_CURRENT_PASSWORD")
        _check_password_strength(new_password)
        user.password_hash = hash_password(new_password)
        log_action(db, caller, "Changed password")
    return True

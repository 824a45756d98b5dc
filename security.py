import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Header, Request
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from config import Settings
from database import create_document, oid_to_str, parse_object_id
from errors import AuthError, ForbiddenError, NotFoundError, ValidationError
from schemas import AdminUser

logger = logging.getLogger(__name__)

JWT_ALG = "HS256"
MIN_PASSWORD_LENGTH = 6
PRIVATE_FIELDS = {"password": 0, "resetPasswordToken": 0, "resetPasswordExpire": 0}

ResetMailer = Callable[[str, str], None]

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_token(data: dict, secret: str, expires_minutes: int) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret, algorithm=JWT_ALG)


def ensure_admin_user(
    db: Database, username: str, password: str, reset_password: bool = False, email: Optional[str] = None
) -> str:
    """Create the admin account if missing; returns its id."""
    existing = db.adminuser.find_one({"username": username})
    if existing is not None:
        if reset_password:
            changes = {"password": hash_password(password), "updatedAt": datetime.now(timezone.utc)}
            if email:
                changes["email"] = email
            db.adminuser.update_one({"_id": existing["_id"]}, {"$set": changes})
            logger.info("Reset password for admin %s", username)
        return str(existing["_id"])
    admin = AdminUser(username=username, password=hash_password(password), email=email)
    admin_id = create_document(db, "adminuser", admin)
    logger.info("Created admin user %s", username)
    return admin_id


def _issue_token(admin: Dict[str, Any], settings: Settings) -> str:
    return create_token(
        {"sub": admin["username"], "id": str(admin["_id"]), "role": admin.get("role", "admin")},
        settings.jwt_secret,
        settings.jwt_expires_minutes,
    )


def authenticate(
    db: Database, settings: Settings, username: Optional[str], password: Optional[str]
) -> Dict[str, Any]:
    """Check credentials; returns the token and the public part of the admin."""
    if not username or not password:
        raise ValidationError("Please enter a username and password")
    admin = db.adminuser.find_one({"username": username})
    if admin is None or not verify_password(password, admin.get("password", "")):
        logger.warning("Failed login for %r", username)
        raise AuthError("Invalid credentials")
    logger.info("Login successful for username: %s", username)
    return {
        "token": _issue_token(admin, settings),
        "username": admin["username"],
        "role": admin.get("role", "admin"),
        "expires_in": settings.jwt_expires_minutes * 60,
    }


# ----------------------------- Password reset -----------------------------
def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def log_reset_mail(to: str, reset_url: str) -> None:
    """Default mailer: no mail transport is configured, so the link goes to the log."""
    logger.info("Password reset link for %s: %s", to, reset_url)


def forgot_password(db: Database, settings: Settings, email: Optional[str], send_mail: ResetMailer) -> None:
    """Issue a reset token for the admin with this email, if there is one.

    Only the SHA-256 hash of the token is stored; the raw token travels in the
    link handed to ``send_mail``. Unknown emails are ignored so the response
    never reveals which addresses exist.
    """
    admin = db.adminuser.find_one({"email": email}) if email else None
    if admin is None:
        logger.info("Password reset requested for unknown email %r", email)
        return

    token = secrets.token_hex(20)
    expires = datetime.now(timezone.utc) + timedelta(minutes=settings.reset_token_minutes)
    db.adminuser.update_one(
        {"_id": admin["_id"]},
        {"$set": {"resetPasswordToken": _hash_reset_token(token), "resetPasswordExpire": expires}},
    )
    reset_url = f"{settings.frontend_url.rstrip('/')}/reset-password/{token}"
    try:
        send_mail(admin["email"], reset_url)
    except Exception:
        logger.exception("Error sending admin password reset email to %s", admin["email"])
        db.adminuser.update_one(
            {"_id": admin["_id"]}, {"$set": {"resetPasswordToken": None, "resetPasswordExpire": None}}
        )
        return
    logger.info("Admin password reset email sent to: %s", admin["email"])


def reset_password(db: Database, settings: Settings, token: str, password: Optional[str]) -> str:
    """Consume a reset token, set the new password and return a fresh JWT."""
    admin = db.adminuser.find_one({"resetPasswordToken": _hash_reset_token(token)})
    expires = admin.get("resetPasswordExpire") if admin is not None else None
    if expires is not None and expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    if expires is None or expires <= datetime.now(timezone.utc):
        logger.warning("Reset password attempt with an invalid or expired token")
        raise ValidationError("Invalid or expired token")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    db.adminuser.update_one(
        {"_id": admin["_id"]},
        {
            "$set": {
                "password": hash_password(password),
                "resetPasswordToken": None,
                "resetPasswordExpire": None,
                "updatedAt": datetime.now(timezone.utc),
            }
        },
    )
    logger.info("Admin password for user '%s' reset successfully", admin["username"])
    return _issue_token(admin, settings)


def verify_token(db: Database, settings: Settings, token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])
    except JWTError as exc:
        raise AuthError("Not authorized, token failed or expired") from exc
    try:
        oid = parse_object_id(payload.get("id"), "Admin")
    except NotFoundError as exc:
        raise AuthError("Not authorized, token failed") from exc
    admin = db.adminuser.find_one({"_id": oid}, PRIVATE_FIELDS)
    if admin is None:
        raise AuthError("Not authorized, user no longer exists")
    return oid_to_str(admin)


def get_current_admin(request: Request, authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthError("Not authorized, no token")
    token = authorization.split(" ", 1)[1].strip()
    return verify_token(request.app.state.db, request.app.state.settings, token)


def require_roles(*roles: str):
    def dependency(admin: Dict[str, Any] = Depends(get_current_admin)) -> Dict[str, Any]:
        if admin.get("role") not in roles:
            raise ForbiddenError("Not authorized to access this route")
        return admin

    return dependency


require_admin = require_roles("admin")

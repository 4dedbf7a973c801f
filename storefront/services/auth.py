from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
import hashlib
import hmac
import os
import binascii
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from storefront.config import settings
from storefront.errors import AuthenticationError, AuthorizationError, ValidationError
from storefront.models_sqlalchemy import get_db
from storefront.models_sqlalchemy.models import User
from storefront.utils.logger import logger

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

# Stored format: "pbkdf2_sha256$<iterations>$<salt_hex>$<hash_hex>".
_PBKDF2_ALGO_PREFIX = "pbkdf2_sha256"
_PBKDF2_ITERATIONS = 100_000
_PBKDF2_SALT_BYTES = 16


def get_password_hash(password: str) -> str:
    """Return a PBKDF2-SHA256 hash string for the given password."""
    if not isinstance(password, str):
        raise TypeError("password must be a string")

    salt = os.urandom(_PBKDF2_SALT_BYTES)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ITERATIONS)
    salt_hex = binascii.hexlify(salt).decode("ascii")
    hash_hex = binascii.hexlify(dk).decode("ascii")
    return f"{_PBKDF2_ALGO_PREFIX}${_PBKDF2_ITERATIONS}${salt_hex}${hash_hex}"


def verify_password(password: str, encoded: str) -> bool:
    """Verify a password against a PBKDF2-SHA256 encoded hash.

    Returns False if the hash is malformed.
    """
    if not encoded:
        return False
    try:
        prefix, iter_str, salt_hex, hash_hex = encoded.split("$", 3)
        if prefix != _PBKDF2_ALGO_PREFIX:
            return False
        iterations = int(iter_str)
        salt = binascii.unhexlify(salt_hex.encode("ascii"))
        expected = binascii.unhexlify(hash_hex.encode("ascii"))
    except (ValueError, binascii.Error):
        return False

    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(dk, expected)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.ALGORITHM)
    return encoded_jwt


def register_user(db: Session, email: str, password: str, full_name: Optional[str] = None) -> User:
    email = email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise ValidationError("Email already registered")

    user = User(
        email=email,
        full_name=full_name,
        hashed_password=get_password_hash(password),
        is_admin=email in settings.admin_emails,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User registered: {email}{' (admin)' if user.is_admin else ''}")
    return user


def authenticate_user(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if not user:
        logger.warning(f"Authentication failed: User not found - {email}")
        raise AuthenticationError("Incorrect email or password")

    if not verify_password(password, user.hashed_password):
        logger.warning(f"Authentication failed: Invalid password - {email}")
        raise AuthenticationError("Incorrect email or password")

    if not user.is_active:
        logger.warning(f"Inactive user attempted login: {email}")
        raise AuthorizationError("Account is inactive")

    logger.info(f"User authenticated successfully: {email}")
    return user


def _user_from_token(db: Session, token: str) -> Optional[User]:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.error(f"JWT validation error: {str(e)}")
        return None

    user_id = payload.get("sub")
    if user_id is None:
        return None

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.error(f"User not found for token: {user_id}")
        return None
    if not user.is_active:
        logger.warning(f"Inactive user attempted access: {user.email}")
        return None
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    user = _user_from_token(db, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Signed-in user when a valid bearer token is sent, else None (guest)."""
    if credentials is None:
        return None
    return _user_from_token(db, credentials.credentials)


async def admin_required(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        logger.warning(f"Non-admin user attempted admin action: {current_user.email}")
        raise AuthorizationError("Admin access required")
    return current_user


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "fullName": user.full_name,
        "phone": user.phone,
        "isAdmin": bool(user.is_admin),
        "isActive": bool(user.is_active),
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }

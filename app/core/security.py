import hashlib
import hmac
import os
import uuid
from typing import List, Optional, Tuple

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select
from jose.exceptions import ExpiredSignatureError, JWTError

from ..database import get_session
from ..models.household import Household
from ..models.user import User
from .jwt import decode_access_token


ALGORITHM = "pbkdf2_sha256"
ITERATIONS = 100_000
SALT_BYTES = 16

ACCESS_TOKEN_COOKIE = "access_token"


def _pbkdf2_hash(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, ITERATIONS)


def hash_password(password: str) -> str:
    salt = os.urandom(SALT_BYTES)
    digest = _pbkdf2_hash(password, salt)
    return f"{ALGORITHM}${salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, salt_hex, hash_hex = stored.strip().split("$")
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(hash_hex)
    except ValueError:
        return False
    if algorithm != ALGORITHM:
        return False
    return hmac.compare_digest(_pbkdf2_hash(password, salt), expected)


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


def _raise_invalid(detail: str):
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:
    # Bearer header first, then the HttpOnly cookie set at login
    token = token or request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        _raise_invalid("Not authenticated")

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        _raise_invalid("Token expired")
    except JWTError:
        _raise_invalid("Invalid token")

    sub = payload.get("sub")
    if sub is None:
        _raise_invalid("Invalid token: missing subject")
    try:
        user_id = uuid.UUID(str(sub))
    except ValueError:
        _raise_invalid("Invalid token: bad subject format")

    user = session.get(User, user_id)
    if user is None or user.deleted_at is not None:
        _raise_invalid("User not found")
    return user


def get_current_household(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> Household:
    if current_user.household_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No household found")
    household = session.get(Household, current_user.household_id)
    if household is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No household found")
    return household


def household_members(session: Session, household_id: uuid.UUID) -> List[User]:
    stmt = (
        select(User)
        .where(User.household_id == household_id, User.deleted_at.is_(None))
        .order_by(User.created_at.asc())
    )
    return list(session.exec(stmt).all())


def find_partner(session: Session, user: User) -> Tuple[List[User], Optional[User]]:
    """Return the household members and the member who is not ``user``."""
    if user.household_id is None:
        return [], None
    members = household_members(session, user.household_id)
    partner = next((m for m in members if m.id != user.id), None)
    return members, partner

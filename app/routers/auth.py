import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import SQLModel, Field, Session, select
from pydantic import EmailStr

from ..database import commit_with_retry, get_session
from ..models.user import User
from ..core.security import ACCESS_TOKEN_COOKIE, get_current_user, hash_password, verify_password
from ..core.jwt import create_access_token
from ..config import settings


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)

SUPPORTED_CURRENCIES = {"USD", "CAD", "EUR", "GBP"}


class RegisterIn(SQLModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: Optional[str] = Field(default=None, max_length=120)
    default_currency: str = Field(default="USD", min_length=3, max_length=3)


class UserRead(SQLModel):
    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    household_id: Optional[uuid.UUID] = None
    default_currency: str
    created_at: datetime
    updated_at: datetime


class LoginIn(SQLModel):
    email: EmailStr
    password: str


class TokenOut(SQLModel):
    access_token: str
    token_type: str


def _reject_whitespace(password: str) -> None:
    if any(c.isspace() for c in password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must not contain whitespace",
        )


def _authenticate(session: Session, email: str, password: str) -> User:
    _reject_whitespace(password)
    email_norm = email.strip().lower()
    user = session.exec(select(User).where(User.email == email_norm)).first()
    if user is None or user.deleted_at is not None or not verify_password(password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return user


def _token_for(user: User) -> str:
    return create_access_token({"sub": str(user.id), "email": user.email})


@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
)
def register_user(
    payload: RegisterIn,
    session: Session = Depends(get_session),
):
    _reject_whitespace(payload.password)
    email_norm = payload.email.strip().lower()
    existing = session.exec(select(User).where(User.email == email_norm)).first()
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    currency = (payload.default_currency or "USD").strip().upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid default_currency",
        )

    now = datetime.utcnow()
    user = User(
        id=uuid.uuid4(),
        email=email_norm,
        hashed_password=hash_password(payload.password),
        full_name=(payload.full_name or "").strip() or None,
        default_currency=currency,
        created_at=now,
        updated_at=now,
    )
    commit_with_retry(session, lambda: session.add(user))
    session.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


@router.post(
    "/login",
    response_model=UserRead,
    status_code=status.HTTP_200_OK,
)
def login(payload: LoginIn, response: Response, session: Session = Depends(get_session)):
    user = _authenticate(session, payload.email, payload.password)

    # HttpOnly cookie keeps the token away from JS; cross-site production
    # deployments need SameSite=None and Secure.
    response.set_cookie(
        key=ACCESS_TOKEN_COOKIE,
        value=_token_for(user),
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
        max_age=60 * settings.access_token_expire_minutes,
        path="/",
    )
    return user


@router.get(
    "/me",
    response_model=UserRead,
    status_code=status.HTTP_200_OK,
)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
)
def logout(response: Response):
    response.delete_cookie(key=ACCESS_TOKEN_COOKIE, path="/")
    return None


@router.post(
    "/token",
    response_model=TokenOut,
    status_code=status.HTTP_200_OK,
)
def token(form_data: OAuth2PasswordRequestForm = Depends(), session: Session = Depends(get_session)):
    # OAuth2PasswordRequestForm carries the email in 'username'
    user = _authenticate(session, form_data.username, form_data.password)
    return TokenOut(access_token=_token_for(user), token_type="bearer")

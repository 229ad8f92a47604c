from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import SQLModel, Session, select

from ..core.security import get_current_user
from ..database import commit_with_retry, get_session
from ..models.notification import NotificationPreference, PushSubscription
from ..models.user import User
from ..services.notifications import get_preferences


router = APIRouter(
    prefix="/notifications",
    tags=["notifications"],
)


class SubscriptionKeys(SQLModel):
    p256dh: Optional[str] = None
    auth: Optional[str] = None


class SubscriptionIn(SQLModel):
    endpoint: Optional[str] = None
    keys: Optional[SubscriptionKeys] = None


class SubscribeIn(SQLModel):
    subscription: Optional[SubscriptionIn] = None


class UnsubscribeIn(SQLModel):
    endpoint: Optional[str] = None


class PreferencesIO(SQLModel):
    push_enabled: bool = True
    new_transaction: bool = True
    toggle_change: bool = True
    budget_alert: bool = True


class PreferencesUpdate(SQLModel):
    push_enabled: Optional[bool] = None
    new_transaction: Optional[bool] = None
    toggle_change: Optional[bool] = None
    budget_alert: Optional[bool] = None


@router.post(
    "/subscribe",
    status_code=status.HTTP_200_OK,
)
def subscribe(
    payload: SubscribeIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    sub = payload.subscription
    if sub is None or not sub.endpoint or sub.keys is None or not sub.keys.p256dh or not sub.keys.auth:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid subscription object")

    def stage():
        existing = session.exec(
            select(PushSubscription).where(
                PushSubscription.user_id == current_user.id,
                PushSubscription.endpoint == sub.endpoint,
            )
        ).first()
        if existing is None:
            existing = PushSubscription(user_id=current_user.id, endpoint=sub.endpoint, p256dh="", auth="")
        existing.p256dh = sub.keys.p256dh
        existing.auth = sub.keys.auth
        existing.updated_at = datetime.utcnow()
        session.add(existing)

    commit_with_retry(session, stage)
    return {"success": True}


@router.delete(
    "/subscribe",
    status_code=status.HTTP_200_OK,
)
def unsubscribe(
    payload: Optional[UnsubscribeIn] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Remove one subscription by endpoint, or all of them."""
    stmt = select(PushSubscription).where(PushSubscription.user_id == current_user.id)
    if payload is not None and payload.endpoint:
        stmt = stmt.where(PushSubscription.endpoint == payload.endpoint)

    def stage():
        for sub in session.exec(stmt).all():
            session.delete(sub)

    commit_with_retry(session, stage)
    return {"success": True}


@router.get(
    "/preferences",
    response_model=PreferencesIO,
)
def read_preferences(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return get_preferences(session, current_user.id)


@router.put(
    "/preferences",
    response_model=PreferencesIO,
)
def update_preferences(
    payload: PreferencesUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    def stage() -> NotificationPreference:
        prefs = session.get(NotificationPreference, current_user.id) or NotificationPreference(user_id=current_user.id)
        for field, value in payload.model_dump(exclude_none=True).items():
            setattr(prefs, field, value)
        prefs.updated_at = datetime.utcnow()
        session.add(prefs)
        return prefs

    prefs = commit_with_retry(session, stage)
    session.refresh(prefs)
    return prefs

"""Web push notifications to household members.

Delivery goes through pywebpush when VAPID keys are configured. A failed
push never fails the request that triggered it; subscriptions the push
service reports as gone (404/410) are deleted.
"""

import json
import logging
import uuid
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from ..config import settings
from ..core.security import household_members
from ..models.notification import NotificationPreference, PushSubscription
from ..models.user import User
from .settlement import format_currency


logger = logging.getLogger(__name__)


@dataclass
class NotificationPayload:
    title: str
    body: str
    url: Optional[str] = None
    tag: Optional[str] = None


def get_preferences(session: Session, user_id: uuid.UUID) -> NotificationPreference:
    prefs = session.get(NotificationPreference, user_id)
    return prefs or NotificationPreference(user_id=user_id)


def _deliver(subscription: PushSubscription, payload: NotificationPayload) -> None:
    from pywebpush import webpush

    webpush(
        subscription_info={
            "endpoint": subscription.endpoint,
            "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
        },
        data=json.dumps(asdict(payload)),
        vapid_private_key=settings.vapid_private_key,
        vapid_claims={"sub": settings.vapid_subject},
    )


def send_push_to_user(session: Session, user_id: uuid.UUID, payload: NotificationPayload):
    """Push to every subscription of a user; returns ``(success, failed)``."""
    subscriptions = list(session.exec(select(PushSubscription).where(PushSubscription.user_id == user_id)).all())
    if not subscriptions:
        return 0, 0
    if not settings.push_enabled:
        logger.info("Push disabled (VAPID keys not configured); dropping %r", payload.title)
        return 0, len(subscriptions)

    from pywebpush import WebPushException

    success = failed = 0
    gone = []
    for sub in subscriptions:
        try:
            _deliver(sub, payload)
            success += 1
        except WebPushException as e:
            failed += 1
            status_code = getattr(e.response, "status_code", None)
            if status_code in (404, 410):
                gone.append(sub)
            logger.warning("Push failed for subscription %s: %s", sub.id, e)
        except Exception:
            # Bad keys or network errors; the triggering request still succeeds
            failed += 1
            logger.exception("Push delivery error for subscription %s", sub.id)

    if gone:
        for sub in gone:
            session.delete(sub)
        try:
            session.commit()
            logger.info("Removed %s expired push subscription(s) for user %s", len(gone), user_id)
        except OperationalError:
            session.rollback()
            logger.warning("Could not remove expired push subscriptions for user %s", user_id)
    return success, failed


def _partner(session: Session, actor: User) -> Optional[User]:
    if actor.household_id is None:
        return None
    return next((m for m in household_members(session, actor.household_id) if m.id != actor.id), None)


def notify_partner_new_transaction(session: Session, actor: User, amount: float, merchant_name: str) -> None:
    partner = _partner(session, actor)
    if partner is None:
        return
    prefs = get_preferences(session, partner.id)
    if not prefs.push_enabled or not prefs.new_transaction:
        return
    send_push_to_user(
        session,
        partner.id,
        NotificationPayload(
            title="New expense added",
            body=f"{actor.display_name} added {format_currency(amount)} at {merchant_name}",
            url="/dashboard",
            tag="new-transaction",
        ),
    )


def notify_partner_toggle_change(session: Session, actor: User, amount: float, merchant_name: str, is_joint: bool) -> None:
    partner = _partner(session, actor)
    if partner is None:
        return
    prefs = get_preferences(session, partner.id)
    if not prefs.push_enabled or not prefs.toggle_change:
        return
    status = "Joint" if is_joint else "Personal"
    send_push_to_user(
        session,
        partner.id,
        NotificationPayload(
            title=f"Expense marked {status}",
            body=f"{actor.display_name} marked {format_currency(amount)} {merchant_name} as {status}",
            url="/dashboard",
            tag="toggle-change",
        ),
    )


def notify_budget_alert(session: Session, household_id: uuid.UUID, name: str, alert) -> None:
    exceeded = alert.level == "exceeded"
    title = "🚨 Budget Exceeded!" if exceeded else "⚠️ Budget Alert"
    body = (
        f"{name} spending is at {alert.percentage:.0f}% "
        f"({format_currency(alert.spent, 0)}/{format_currency(alert.monthly_limit, 0)})"
    )
    for member in household_members(session, household_id):
        prefs = get_preferences(session, member.id)
        if not prefs.push_enabled or not prefs.budget_alert:
            continue
        send_push_to_user(
            session,
            member.id,
            NotificationPayload(
                title=title,
                body=body,
                url="/settings",
                tag="budget-alert-" + "-".join(name.lower().split()),
            ),
        )

import logging
import uuid
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Field, Session, SQLModel, select

from ..core.security import find_partner, get_current_household, get_current_user
from ..database import commit_with_retry, get_session
from ..models.household import Household
from ..models.settlement import Settlement
from ..models.transaction import Transaction
from ..models.user import User
from ..services.settlement import (
    SettlementError,
    calculate_settlement,
    describe_for,
    from_snapshot,
    month_bounds,
    month_start,
    parse_month,
    validate_snapshot,
)


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/settlement",
    tags=["settlement"],
)


class SettlementSummaryRead(SQLModel):
    month: date
    month_name: str
    has_partner: bool
    partner_id: Optional[uuid.UUID] = None
    partner_name: str
    joint_total: float = 0
    my_contribution: float = 0
    partner_contribution: float = 0
    my_percentage: float = 0
    partner_percentage: float = 0
    fair_share: float = 0
    # Positive: partner owes me; negative: I owe partner
    balance: float = 0
    direction: str = "squared_up"
    squared_up: bool = True
    is_settled: bool = False
    can_settle: bool = False
    source: str = "live"
    settled_at: Optional[datetime] = None


class SettleIn(SQLModel):
    month: str
    total_joint: Optional[float] = None
    user_a_id: Optional[uuid.UUID] = None
    user_a_paid: Optional[float] = Field(default=None, ge=0)
    user_b_id: Optional[uuid.UUID] = None
    user_b_paid: Optional[float] = Field(default=None, ge=0)


class SettlementRead(SQLModel):
    id: uuid.UUID
    household_id: uuid.UUID
    month: date
    total_joint: float
    user_a_id: uuid.UUID
    user_a_paid: float
    user_b_id: uuid.UUID
    user_b_paid: float
    settled_at: Optional[datetime] = None
    settled_by: Optional[uuid.UUID] = None


class SettlementHistoryItem(SettlementRead):
    month_name: str
    my_paid: float
    partner_paid: float
    balance: float
    squared_up: bool
    summary: str


def _month_name(month: date) -> str:
    return month.strftime("%B %Y")


def _parse_month_or_400(value: str) -> date:
    try:
        return parse_month(value)
    except SettlementError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _stored_settlement(session: Session, household_id: uuid.UUID, month: date) -> Optional[Settlement]:
    return session.exec(
        select(Settlement).where(Settlement.household_id == household_id, Settlement.month == month)
    ).first()


def _joint_transactions(session: Session, household_id: uuid.UUID, month: date) -> List[Transaction]:
    start, end = month_bounds(month)
    stmt = select(Transaction).where(
        Transaction.household_id == household_id,
        Transaction.is_joint.is_(True),
        Transaction.date >= start,
        Transaction.date <= end,
    )
    return list(session.exec(stmt).all())


@router.get(
    "/current",
    response_model=SettlementSummaryRead,
)
def get_settlement_summary(
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    household: Household = Depends(get_current_household),
):
    """
    Who owes whom for a month (default: the current month).

    - A month with a stored ``settled_at`` is reported from its snapshot,
      never recomputed from live transactions.
    """
    month_date = _parse_month_or_400(month) if month else month_start(date.today())
    _, partner = find_partner(session, current_user)

    if partner is None:
        return SettlementSummaryRead(
            month=month_date,
            month_name=_month_name(month_date),
            has_partner=False,
            partner_name="Partner",
        )

    stored = _stored_settlement(session, household.id, month_date)
    is_settled = stored is not None and stored.settled_at is not None
    if is_settled and current_user.id in (stored.user_a_id, stored.user_b_id):
        breakdown = from_snapshot(stored)
        source = "snapshot"
    else:
        breakdown = calculate_settlement(
            _joint_transactions(session, household.id, month_date), current_user.id, partner.id
        )
        source = "live"

    return SettlementSummaryRead(
        month=month_date,
        month_name=_month_name(month_date),
        has_partner=True,
        partner_id=partner.id,
        partner_name=partner.display_name,
        joint_total=float(breakdown.joint_total),
        my_contribution=float(breakdown.paid_by(current_user.id)),
        partner_contribution=float(breakdown.paid_by(partner.id)),
        my_percentage=breakdown.share_percentage(current_user.id),
        partner_percentage=breakdown.share_percentage(partner.id),
        fair_share=float(breakdown.fair_share),
        balance=float(breakdown.balance_for(current_user.id)),
        direction=breakdown.direction_for(current_user.id),
        squared_up=breakdown.squared_up,
        is_settled=is_settled,
        can_settle=not is_settled and breakdown.can_settle,
        source=source,
        settled_at=stored.settled_at if is_settled else None,
    )


@router.post(
    "/settle",
    response_model=SettlementRead,
    status_code=status.HTTP_200_OK,
)
def settle_month(
    payload: SettleIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    household: Household = Depends(get_current_household),
):
    """Store (or overwrite) the settlement snapshot for a month."""
    members, partner = find_partner(session, current_user)
    if partner is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You need a partner to settle expenses",
        )

    month_date = _parse_month_or_400(payload.month)
    try:
        snapshot = validate_snapshot(
            payload.total_joint, payload.user_a_id, payload.user_a_paid, payload.user_b_id, payload.user_b_paid
        )
    except SettlementError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if {payload.user_a_id, payload.user_b_id} != {m.id for m in members}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Settlement users must be the two household members",
        )

    def stage() -> Settlement:
        stored = _stored_settlement(session, household.id, month_date)
        if stored is None:
            stored = Settlement(household_id=household.id, month=month_date)
        stored.total_joint = float(snapshot.joint_total)
        stored.user_a_id = payload.user_a_id
        stored.user_a_paid = float(snapshot.user_a_paid)
        stored.user_b_id = payload.user_b_id
        stored.user_b_paid = float(snapshot.user_b_paid)
        stored.settled_at = datetime.utcnow()
        stored.settled_by = current_user.id
        session.add(stored)
        return stored

    stored = commit_with_retry(session, stage)
    session.refresh(stored)
    logger.info("Household %s settled %s (joint total %s)", household.id, month_date.isoformat(), snapshot.joint_total)
    return stored


@router.get(
    "/history",
    response_model=List[SettlementHistoryItem],
)
def settlement_history(
    limit: int = Query(default=12, ge=1, le=60),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    household: Household = Depends(get_current_household),
):
    """Settled months before the current one, newest first."""
    _, partner = find_partner(session, current_user)
    partner_name = partner.display_name if partner else "Partner"

    stmt = (
        select(Settlement)
        .where(
            Settlement.household_id == household.id,
            Settlement.month < month_start(date.today()),
            Settlement.settled_at.is_not(None),
        )
        .order_by(Settlement.month.desc())
        .limit(limit)
    )

    items: List[SettlementHistoryItem] = []
    for s in session.exec(stmt).all():
        if current_user.id not in (s.user_a_id, s.user_b_id):
            logger.warning("Skipping settlement %s: user %s is not a party", s.id, current_user.id)
            continue
        breakdown = from_snapshot(s)
        other_id = s.user_b_id if current_user.id == s.user_a_id else s.user_a_id
        items.append(
            SettlementHistoryItem(
                **SettlementRead.model_validate(s).model_dump(),
                month_name=_month_name(s.month),
                my_paid=float(breakdown.paid_by(current_user.id)),
                partner_paid=float(breakdown.paid_by(other_id)),
                balance=float(breakdown.balance_for(current_user.id)),
                squared_up=breakdown.squared_up,
                summary=describe_for(breakdown, current_user.id, partner_name, past=True),
            )
        )
    return items

import logging
import re
import uuid
from datetime import datetime, date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import ValidationError
from sqlmodel import SQLModel, Field, Session, select

from ..core.security import get_current_household, get_current_user
from ..database import commit_with_retry, get_session
from ..models.category import Category
from ..models.household import Household
from ..models.transaction import Transaction
from ..models.user import User
from ..services.budget_alerts import check_and_notify_budget_alerts
from ..services.export import export_filename, transactions_csv
from ..services.filters import DateRangePreset, FilterState, TransactionType, filter_transactions
from ..services.notifications import notify_partner_new_transaction, notify_partner_toggle_change


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/transactions",
    tags=["transactions"],
)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ─────────────────────────────
#   SCHEMAS
# ─────────────────────────────

class TransactionCreate(SQLModel):
    amount: float = Field(gt=0)
    merchant_name: str = Field(min_length=1, max_length=255)
    date: date
    category_id: Optional[uuid.UUID] = None
    description: Optional[str] = Field(default=None, max_length=255)


class TransactionRead(SQLModel):
    id: uuid.UUID
    household_id: uuid.UUID
    user_id: uuid.UUID
    amount: float
    date: date
    description: str
    merchant_name: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    is_joint: bool
    source: str
    created_at: datetime
    updated_at: datetime


class ToggleJointIn(SQLModel):
    transaction_id: uuid.UUID
    is_joint: bool


def _check_date(value: Optional[str], name: str) -> None:
    if value and not _DATE_RE.match(value):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {name} date")


def _household_transactions(session: Session, household_id: uuid.UUID) -> List[Transaction]:
    stmt = (
        select(Transaction)
        .where(Transaction.household_id == household_id)
        .order_by(Transaction.date.desc(), Transaction.created_at.desc())
    )
    return list(session.exec(stmt).all())


# ─────────────────────────────
#   ENDPOINTS
# ─────────────────────────────

@router.get(
    "",
    response_model=List[TransactionRead],
)
def list_transactions(
    request: Request,
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    """
    List household transactions matching the filter query params.

    - Keys: q, range, from, to, category, type, min, max.
    - Newest first; the default range is the current month.
    """
    try:
        filters = FilterState.from_query_params(request.query_params)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid filter: {e.errors()[0]['msg']}")
    _check_date(filters.start_date, "from")
    _check_date(filters.end_date, "to")

    return filter_transactions(_household_transactions(session, household.id), filters)


@router.post(
    "",
    response_model=TransactionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_transaction(
    payload: TransactionCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    household: Household = Depends(get_current_household),
):
    """Add a manual transaction; new transactions start out personal."""
    merchant = payload.merchant_name.strip()
    if not merchant:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Merchant name is required")

    if payload.category_id is not None:
        category = session.get(Category, payload.category_id)
        if category is None or category.household_id not in (None, household.id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown category")

    now = datetime.utcnow()
    txn = Transaction(
        household_id=household.id,
        user_id=current_user.id,
        amount=payload.amount,
        date=payload.date,
        description=(payload.description or "").strip() or merchant,
        merchant_name=merchant,
        category_id=payload.category_id,
        is_joint=False,
        source="manual",
        created_at=now,
        updated_at=now,
    )
    commit_with_retry(session, lambda: session.add(txn))
    session.refresh(txn)

    notify_partner_new_transaction(session, current_user, txn.amount, merchant)
    check_and_notify_budget_alerts(session, household.id)
    return txn


@router.post(
    "/toggle-joint",
    response_model=TransactionRead,
    status_code=status.HTTP_200_OK,
)
def toggle_joint(
    payload: ToggleJointIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    household: Household = Depends(get_current_household),
):
    txn = session.get(Transaction, payload.transaction_id)
    if txn is None or txn.household_id != household.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")

    if txn.is_joint != payload.is_joint:
        def stage():
            txn.is_joint = payload.is_joint
            txn.updated_at = datetime.utcnow()
            session.add(txn)

        commit_with_retry(session, stage)
        session.refresh(txn)
        notify_partner_toggle_change(
            session, current_user, txn.amount, txn.merchant_name or txn.description, txn.is_joint
        )
        check_and_notify_budget_alerts(session, household.id)
    return txn


@router.get("/export")
def export_transactions(
    start: Optional[str] = None,
    end: Optional[str] = None,
    type: TransactionType = TransactionType.ALL,
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    """Download the household's transactions between two dates as CSV."""
    if not start or not end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start and end date params are required",
        )
    _check_date(start, "start")
    _check_date(end, "end")

    filters = FilterState(date_range=DateRangePreset.CUSTOM, start_date=start, end_date=end, type=type)
    selected = filter_transactions(_household_transactions(session, household.id), filters)

    category_ids = {t.category_id for t in selected if t.category_id is not None}
    categories = {}
    if category_ids:
        categories = {c.id: c.name for c in session.exec(select(Category).where(Category.id.in_(category_ids))).all()}
    users = {u.id: u.full_name for u in session.exec(select(User).where(User.household_id == household.id)).all()}

    content = transactions_csv(
        (t, categories.get(t.category_id), users.get(t.user_id)) for t in selected
    )
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(type, start, end)}"'},
    )


@router.get(
    "/{transaction_id}",
    response_model=TransactionRead,
)
def get_transaction(
    transaction_id: uuid.UUID,
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    txn = session.get(Transaction, transaction_id)
    if txn is None or txn.household_id != household.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    return txn

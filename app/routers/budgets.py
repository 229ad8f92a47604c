import logging
import uuid
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Field, Session, SQLModel, select

from ..core.security import get_current_household
from ..database import commit_with_retry, get_session
from ..models.alert_state import BudgetAlertState
from ..models.budget import DEFAULT_ALERT_THRESHOLD, Budget
from ..models.category import Category
from ..models.household import Household
from ..services.budget_alerts import budget_name, budget_status, check_and_notify_budget_alerts, month_spending


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/budgets",
    tags=["budgets"],
)


class BudgetUpsert(SQLModel):
    # None means the household total budget
    category_id: Optional[uuid.UUID] = None
    monthly_limit: Optional[float] = None
    alert_threshold: Optional[int] = None


class BudgetRead(SQLModel):
    id: uuid.UUID
    household_id: uuid.UUID
    category_id: Optional[uuid.UUID] = None
    category_name: str
    monthly_limit: float
    alert_threshold: int
    created_at: datetime
    updated_at: datetime


class BudgetStatusRead(SQLModel):
    budget_id: uuid.UUID
    category_id: Optional[uuid.UUID] = None
    name: str
    spent: float
    monthly_limit: float
    remaining: float
    alert_threshold: int
    percentage: float
    level: str


def _budget_out(session: Session, budget: Budget) -> BudgetRead:
    return BudgetRead(
        id=budget.id,
        household_id=budget.household_id,
        category_id=budget.category_id,
        category_name=budget_name(session, budget),
        monthly_limit=budget.monthly_limit,
        alert_threshold=budget.alert_threshold if budget.alert_threshold is not None else DEFAULT_ALERT_THRESHOLD,
        created_at=budget.created_at,
        updated_at=budget.updated_at,
    )


def _household_budgets(session: Session, household_id: uuid.UUID) -> List[Budget]:
    stmt = select(Budget).where(Budget.household_id == household_id).order_by(Budget.created_at.asc())
    return list(session.exec(stmt).all())


@router.get(
    "",
    response_model=List[BudgetRead],
    status_code=status.HTTP_200_OK,
)
def list_budgets(
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    return [_budget_out(session, b) for b in _household_budgets(session, household.id)]


@router.post(
    "",
    response_model=BudgetRead,
    status_code=status.HTTP_200_OK,
)
def upsert_budget(
    payload: BudgetUpsert,
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    """Create or replace the budget for ``(household, category_id)``."""
    if payload.monthly_limit is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="monthly_limit is required")
    if payload.monthly_limit < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="monthly_limit must be positive")

    threshold = DEFAULT_ALERT_THRESHOLD if payload.alert_threshold is None else payload.alert_threshold
    if not 1 <= threshold <= 100:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="alert_threshold must be between 1 and 100")

    if payload.category_id is not None:
        category = session.get(Category, payload.category_id)
        if category is None or category.household_id not in (None, household.id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown category")
        category_clause = Budget.category_id == payload.category_id
    else:
        category_clause = Budget.category_id.is_(None)

    def stage() -> Budget:
        now = datetime.utcnow()
        budget = session.exec(
            select(Budget).where(Budget.household_id == household.id, category_clause)
        ).first()
        if budget is None:
            budget = Budget(
                household_id=household.id,
                category_id=payload.category_id,
                created_at=now,
            )
        budget.monthly_limit = payload.monthly_limit
        budget.alert_threshold = threshold
        budget.updated_at = now
        session.add(budget)
        return budget

    existing = commit_with_retry(session, stage)
    session.refresh(existing)

    check_and_notify_budget_alerts(session, household.id)
    return _budget_out(session, existing)


@router.get(
    "/status",
    response_model=List[BudgetStatusRead],
)
def get_budget_status(
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    """Current-month progress of every budget."""
    budgets = _household_budgets(session, household.id)
    by_category, total = month_spending(session, household.id, date.today())
    names = {b.id: budget_name(session, b) for b in budgets}
    return [
        BudgetStatusRead(
            budget_id=s.budget_id,
            category_id=s.category_id,
            name=names[s.budget_id],
            spent=s.spent,
            monthly_limit=s.monthly_limit,
            remaining=s.remaining,
            alert_threshold=s.alert_threshold,
            percentage=round(s.percentage, 2),
            level=s.level,
        )
        for s in budget_status(budgets, by_category, total)
    ]


@router.delete(
    "/{budget_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_budget(
    budget_id: uuid.UUID,
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    b = session.get(Budget, budget_id)
    if not b or b.household_id != household.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Budget not found")
    def stage():
        for state in session.exec(select(BudgetAlertState).where(BudgetAlertState.budget_id == b.id)).all():
            session.delete(state)
        session.delete(b)

    commit_with_retry(session, stage)
    return None

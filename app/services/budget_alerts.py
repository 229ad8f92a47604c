"""Budget threshold alerting.

A budget fires a ``warning`` once spending reaches its alert threshold and an
``exceeded`` alert at 100%. Repeated evaluation in the same month only fires
again when a new tier (the threshold, 90 or 100) has been crossed since the
last alert for that budget; that high-water mark lives in
``budget_alert_states`` so it survives restarts.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, select

from ..models.alert_state import BudgetAlertState
from ..models.budget import DEFAULT_ALERT_THRESHOLD, Budget
from ..models.category import Category
from ..models.transaction import Transaction
from .notifications import notify_budget_alert
from .settlement import month_start


logger = logging.getLogger(__name__)

EXCEEDED = "exceeded"
WARNING = "warning"
OK = "ok"

WARNING_TIER = 90
EXCEEDED_TIER = 100

TOTAL_BUDGET_NAME = "Total Household"


@dataclass(frozen=True)
class BudgetAlert:
    budget_id: uuid.UUID
    category_id: Optional[uuid.UUID]
    level: str
    percentage: float
    spent: float
    monthly_limit: float

    @property
    def severity(self) -> str:
        return "error" if self.level == EXCEEDED else "warning"

    @property
    def percentage_floor(self) -> int:
        return int(math.floor(self.percentage))


@dataclass(frozen=True)
class BudgetStatus:
    budget_id: uuid.UUID
    category_id: Optional[uuid.UUID]
    spent: float
    monthly_limit: float
    alert_threshold: int
    percentage: float
    level: str

    @property
    def remaining(self) -> float:
        return self.monthly_limit - self.spent


def effective_threshold(budget) -> int:
    threshold = getattr(budget, "alert_threshold", None)
    return DEFAULT_ALERT_THRESHOLD if threshold is None else threshold


def budget_percentage(spent: float, monthly_limit: float) -> float:
    if not monthly_limit:
        return 0.0
    return 100.0 * spent / monthly_limit


def alert_level(percentage: float, threshold: int) -> Optional[str]:
    if percentage >= EXCEEDED_TIER:
        return EXCEEDED
    if percentage >= threshold:
        return WARNING
    return None


def crossed_new_tier(percentage: float, threshold: int, last_alerted: int) -> bool:
    for tier in (EXCEEDED_TIER, WARNING_TIER, threshold):
        if percentage >= tier and last_alerted < tier:
            return True
    return False


def spent_for(budget, spending_by_category: Mapping, total_spending: float) -> float:
    if budget.category_id is None:
        return total_spending
    return spending_by_category.get(budget.category_id, 0) or 0


def _is_well_formed(budget) -> bool:
    if budget is None or getattr(budget, "id", None) is None:
        return False
    limit = getattr(budget, "monthly_limit", None)
    if not isinstance(limit, (int, float)) or limit < 0:
        return False
    return True


def evaluate_budgets(
    budgets: Iterable,
    spending_by_category: Mapping,
    total_spending: float,
    last_alerted: Optional[Mapping[uuid.UUID, int]] = None,
) -> List[BudgetAlert]:
    """Return the alerts that should fire now.

    ``last_alerted`` maps a budget id to the highest floored percentage
    already alerted this month; budgets missing from it have never alerted.
    """
    last_alerted = last_alerted or {}
    alerts: List[BudgetAlert] = []
    for budget in budgets:
        if not _is_well_formed(budget):
            logger.warning("Skipping malformed budget record: %r", budget)
            continue

        spent = spent_for(budget, spending_by_category, total_spending)
        percentage = budget_percentage(spent, budget.monthly_limit)
        threshold = effective_threshold(budget)

        level = alert_level(percentage, threshold)
        if level is None:
            continue
        if not crossed_new_tier(percentage, threshold, last_alerted.get(budget.id, 0)):
            continue

        alerts.append(
            BudgetAlert(
                budget_id=budget.id,
                category_id=budget.category_id,
                level=level,
                percentage=percentage,
                spent=spent,
                monthly_limit=budget.monthly_limit,
            )
        )
    return alerts


def budget_status(budgets: Iterable, spending_by_category: Mapping, total_spending: float) -> List[BudgetStatus]:
    out: List[BudgetStatus] = []
    for budget in budgets:
        if not _is_well_formed(budget):
            logger.warning("Skipping malformed budget record: %r", budget)
            continue
        spent = spent_for(budget, spending_by_category, total_spending)
        threshold = effective_threshold(budget)
        percentage = budget_percentage(spent, budget.monthly_limit)
        out.append(
            BudgetStatus(
                budget_id=budget.id,
                category_id=budget.category_id,
                spent=spent,
                monthly_limit=budget.monthly_limit,
                alert_threshold=threshold,
                percentage=percentage,
                level=alert_level(percentage, threshold) or OK,
            )
        )
    return out


def month_key(day: date) -> str:
    return day.strftime("%Y-%m")


def month_spending(session: Session, household_id: uuid.UUID, today: date):
    """Total and per-category spending from the first of the month onwards."""
    stmt = select(Transaction).where(
        Transaction.household_id == household_id,
        Transaction.date >= month_start(today),
    )
    by_category: Dict[uuid.UUID, float] = {}
    total = 0.0
    for txn in session.exec(stmt).all():
        total += txn.amount
        if txn.category_id is not None:
            by_category[txn.category_id] = by_category.get(txn.category_id, 0.0) + txn.amount
    return by_category, total


def budget_name(session: Session, budget) -> str:
    if budget.category_id is None:
        return TOTAL_BUDGET_NAME
    category = session.get(Category, budget.category_id)
    return category.name if category else "Category"


def check_and_notify_budget_alerts(session: Session, household_id: uuid.UUID, today: Optional[date] = None) -> List[BudgetAlert]:
    """Evaluate household budgets after a mutation and push new alerts."""
    today = today or date.today()
    budgets = list(session.exec(select(Budget).where(Budget.household_id == household_id)).all())
    if not budgets:
        return []

    by_category, total = month_spending(session, household_id, today)
    key = month_key(today)
    states = {
        s.budget_id: s
        for s in session.exec(
            select(BudgetAlertState).where(
                BudgetAlertState.household_id == household_id,
                BudgetAlertState.month == key,
            )
        ).all()
    }

    alerts = evaluate_budgets(
        budgets,
        by_category,
        total,
        {budget_id: s.last_percentage for budget_id, s in states.items()},
    )
    if not alerts:
        return []

    names = {b.id: budget_name(session, b) for b in budgets}
    now = datetime.utcnow()
    for alert in alerts:
        state = states.get(alert.budget_id)
        if state is None:
            state = BudgetAlertState(household_id=household_id, budget_id=alert.budget_id, month=key)
        state.last_percentage = max(state.last_percentage, alert.percentage_floor)
        state.updated_at = now
        session.add(state)
        logger.info(
            "Budget %s %s at %.0f%% for household %s",
            alert.budget_id, alert.level, alert.percentage, household_id,
        )
        try:
            session.commit()
        except (IntegrityError, OperationalError) as e:
            # A concurrent evaluation recorded this tier first; the alert may go out twice
            session.rollback()
            logger.warning("Alert state for budget %s not recorded: %s", alert.budget_id, e)

    for alert in alerts:
        notify_budget_alert(session, household_id, names[alert.budget_id], alert)
    return alerts

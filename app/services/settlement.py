"""Monthly joint-expense settlement between the two household members.

Everything here is pure arithmetic over rows the router already fetched.
Amounts are summed as ``Decimal`` so that the two contributions always add
back up to the joint total exactly.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Tuple, Union

# Balances smaller than one cent are reported as squared up
SQUARED_UP_EPSILON = Decimal("0.01")

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})(?:-(\d{2}))?$")

Amount = Union[int, float, Decimal, str]


class SettlementError(ValueError):
    """Raised when a settlement cannot be computed or persisted."""


def to_decimal(value: Optional[Amount]) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of its binary float expansion
    return Decimal(str(value))


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_bounds(month: date) -> Tuple[date, date]:
    """First and last calendar day of the month containing ``month``."""
    start = month_start(month)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month - timedelta(days=1)


def parse_month(value: str) -> date:
    """Parse ``YYYY-MM`` or ``YYYY-MM-DD`` into the first day of that month."""
    match = _MONTH_RE.match(value.strip()) if value else None
    if not match:
        raise SettlementError(f"Invalid month: {value!r}")
    try:
        return date(int(match.group(1)), int(match.group(2)), 1)
    except ValueError as e:
        raise SettlementError(f"Invalid month: {value!r}") from e


@dataclass(frozen=True)
class SettlementBreakdown:
    user_a_id: uuid.UUID
    user_b_id: uuid.UUID
    joint_total: Decimal
    user_a_paid: Decimal
    user_b_paid: Decimal

    @property
    def fair_share(self) -> Decimal:
        return self.joint_total / 2

    @property
    def balance(self) -> Decimal:
        """Positive when A overpaid and B owes A; negative when A owes B."""
        return self.user_a_paid - self.fair_share

    @property
    def squared_up(self) -> bool:
        return abs(self.balance) < SQUARED_UP_EPSILON

    @property
    def can_settle(self) -> bool:
        return self.joint_total > 0 and not self.squared_up

    def paid_by(self, user_id: uuid.UUID) -> Decimal:
        if user_id == self.user_a_id:
            return self.user_a_paid
        if user_id == self.user_b_id:
            return self.user_b_paid
        raise SettlementError(f"User {user_id} is not part of this settlement")

    def balance_for(self, user_id: uuid.UUID) -> Decimal:
        """Signed balance from one member's point of view."""
        if user_id == self.user_a_id:
            return self.balance
        if user_id == self.user_b_id:
            return -self.balance
        raise SettlementError(f"User {user_id} is not part of this settlement")

    def share_percentage(self, user_id: uuid.UUID) -> float:
        if self.joint_total <= 0:
            return 0.0
        return float(self.paid_by(user_id) / self.joint_total * 100)

    def direction_for(self, user_id: uuid.UUID) -> str:
        if self.squared_up:
            return "squared_up"
        return "partner_owes_me" if self.balance_for(user_id) > 0 else "i_owe_partner"


def _check_members(user_a_id, user_b_id) -> None:
    if user_a_id is None or user_b_id is None:
        raise SettlementError("Both household members are required to settle")
    if user_a_id == user_b_id:
        raise SettlementError("Settlement members must be two different users")


def calculate_settlement(transactions: Iterable, user_a_id: uuid.UUID, user_b_id: uuid.UUID) -> SettlementBreakdown:
    """Split the joint transactions of one month between members A and B.

    Rows that are not flagged joint are ignored, so callers may pass the
    month's full transaction list.
    """
    _check_members(user_a_id, user_b_id)

    joint_total = Decimal("0")
    user_a_paid = Decimal("0")
    for txn in transactions:
        if not txn.is_joint:
            continue
        amount = to_decimal(txn.amount)
        joint_total += amount
        if txn.user_id == user_a_id:
            user_a_paid += amount

    if joint_total < 0:
        raise SettlementError("Joint total cannot be negative")

    return SettlementBreakdown(
        user_a_id=user_a_id,
        user_b_id=user_b_id,
        joint_total=joint_total,
        user_a_paid=user_a_paid,
        user_b_paid=joint_total - user_a_paid,
    )


def from_snapshot(settlement) -> SettlementBreakdown:
    """Rebuild the breakdown from a stored settlement row."""
    _check_members(settlement.user_a_id, settlement.user_b_id)
    return SettlementBreakdown(
        user_a_id=settlement.user_a_id,
        user_b_id=settlement.user_b_id,
        joint_total=to_decimal(settlement.total_joint),
        user_a_paid=to_decimal(settlement.user_a_paid),
        user_b_paid=to_decimal(settlement.user_b_paid),
    )


def validate_snapshot(
    total_joint: Optional[Amount],
    user_a_id: Optional[uuid.UUID],
    user_a_paid: Optional[Amount],
    user_b_id: Optional[uuid.UUID],
    user_b_paid: Optional[Amount],
) -> SettlementBreakdown:
    """Check a settle request before anything is written.

    The two contributions must add up to the joint total exactly, so every
    later read of the snapshot keeps ``a + b == total``.
    """
    if total_joint is None:
        raise SettlementError("total_joint is required")
    _check_members(user_a_id, user_b_id)
    total = to_decimal(total_joint)
    if total < 0:
        raise SettlementError("total_joint cannot be negative")
    paid_a, paid_b = to_decimal(user_a_paid), to_decimal(user_b_paid)
    if paid_a < 0 or paid_b < 0:
        raise SettlementError("Contributions cannot be negative")
    if paid_a + paid_b != total:
        raise SettlementError("user_a_paid and user_b_paid must add up to total_joint")
    return SettlementBreakdown(
        user_a_id=user_a_id,
        user_b_id=user_b_id,
        joint_total=total,
        user_a_paid=paid_a,
        user_b_paid=paid_b,
    )


def format_currency(amount: Amount, decimals: int = 2) -> str:
    value = abs(to_decimal(amount))
    return f"${value:,.{decimals}f}"


def describe_for(breakdown: SettlementBreakdown, viewer_id: uuid.UUID, partner_name: str, past: bool = False) -> str:
    if breakdown.squared_up:
        return "Squared up"
    amount = format_currency(breakdown.balance_for(viewer_id))
    if breakdown.balance_for(viewer_id) > 0:
        verb = "owed" if past else "owes"
        return f"{partner_name} {verb} you {amount}"
    verb = "owed" if past else "owe"
    return f"You {verb} {partner_name} {amount}"

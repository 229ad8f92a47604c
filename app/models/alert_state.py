import uuid
from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class BudgetAlertState(SQLModel, table=True):
    """Highest floored percentage already alerted for a budget in a month."""

    __tablename__ = "budget_alert_states"
    __table_args__ = (UniqueConstraint("household_id", "budget_id", "month"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    household_id: uuid.UUID = Field(foreign_key="households.id", index=True)
    budget_id: uuid.UUID = Field(foreign_key="budgets.id", index=True)

    # YYYY-MM
    month: str = Field(min_length=7, max_length=7, index=True)

    last_percentage: int = Field(default=0)

    updated_at: datetime = Field(default_factory=datetime.utcnow)

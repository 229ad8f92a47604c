import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


DEFAULT_ALERT_THRESHOLD = 80


class Budget(SQLModel, table=True):
    __tablename__ = "budgets"
    __table_args__ = (UniqueConstraint("household_id", "category_id"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    household_id: uuid.UUID = Field(foreign_key="households.id", index=True)

    # NULL category_id is the household total budget
    category_id: Optional[uuid.UUID] = Field(default=None, foreign_key="categories.id", index=True)

    monthly_limit: float = Field(ge=0)
    alert_threshold: Optional[int] = Field(default=DEFAULT_ALERT_THRESHOLD)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

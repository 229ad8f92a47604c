import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Settlement(SQLModel, table=True):
    __tablename__ = "settlements"
    __table_args__ = (UniqueConstraint("household_id", "month"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    household_id: uuid.UUID = Field(foreign_key="households.id", index=True)

    # First day of the settled month
    month: date = Field(index=True)

    total_joint: float = Field(ge=0)
    user_a_id: uuid.UUID = Field(foreign_key="users.id")
    user_a_paid: float = Field(default=0)
    user_b_id: uuid.UUID = Field(foreign_key="users.id")
    user_b_paid: float = Field(default=0)

    settled_at: Optional[datetime] = Field(default=None)
    settled_by: Optional[uuid.UUID] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)

import datetime as dt
import uuid
from typing import Optional
from sqlmodel import SQLModel, Field


class Transaction(SQLModel, table=True):
    __tablename__ = "transactions"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    household_id: uuid.UUID = Field(foreign_key="households.id", index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)

    amount: float
    # Calendar day only; compared as YYYY-MM-DD strings
    date: dt.date = Field(default_factory=dt.date.today, index=True)
    description: str = Field(default="", max_length=255)
    merchant_name: Optional[str] = Field(default=None, max_length=255)
    category_id: Optional[uuid.UUID] = Field(default=None, foreign_key="categories.id", index=True)

    is_joint: bool = Field(default=False, index=True)
    source: str = Field(default="manual", max_length=20)

    created_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)
    updated_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)

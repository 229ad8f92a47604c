import uuid
from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    email: str = Field(index=True, unique=True)
    hashed_password: str
    full_name: Optional[str] = Field(default=None, max_length=120)
    default_currency: str = Field(default="USD", max_length=3)

    # At most two users share a household
    household_id: Optional[uuid.UUID] = Field(default=None, foreign_key="households.id", index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    deleted_at: Optional[datetime] = Field(default=None)

    @property
    def display_name(self) -> str:
        """First name if known, otherwise the local part of the email."""
        if self.full_name and self.full_name.strip():
            return self.full_name.split()[0]
        return self.email.split("@")[0] or "Partner"

import secrets
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field


MAX_MEMBERS = 2


def generate_invite_code() -> str:
    return secrets.token_hex(4)


class Household(SQLModel, table=True):
    __tablename__ = "households"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    name: str = Field(default="Our Household", max_length=100)
    invite_code: str = Field(default_factory=generate_invite_code, index=True, unique=True)
    created_by: Optional[uuid.UUID] = Field(default=None)
    show_settlement: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

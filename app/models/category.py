import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field


# System categories every household sees; seeded by init_db
DEFAULT_CATEGORIES = (
    ("Groceries", "🛒"),
    ("Dining Out", "🍽️"),
    ("Transportation", "🚗"),
    ("Shopping", "🛍️"),
    ("Bills & Utilities", "💡"),
    ("Entertainment", "🎮"),
    ("Healthcare", "💊"),
    ("Travel", "✈️"),
    ("Personal Care", "💅"),
    ("Other", "📦"),
)


class Category(SQLModel, table=True):
    __tablename__ = "categories"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    # NULL household_id means a global default category
    household_id: Optional[uuid.UUID] = Field(default=None, foreign_key="households.id", index=True)

    name: str = Field(max_length=50)
    icon: Optional[str] = Field(default=None, max_length=16)
    color: Optional[str] = Field(default=None, max_length=16)
    is_default: bool = Field(default=False)

    created_at: datetime = Field(default_factory=datetime.utcnow)

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlmodel import Field, Session, SQLModel, or_, select

from ..core.security import get_current_household
from ..database import commit_with_retry, get_session
from ..models.alert_state import BudgetAlertState
from ..models.budget import Budget
from ..models.category import Category
from ..models.household import Household
from ..models.transaction import Transaction


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/categories",
    tags=["categories"],
)


class CategoryCreate(SQLModel):
    name: str = Field(min_length=1, max_length=50)
    icon: Optional[str] = Field(default=None, max_length=16)
    color: Optional[str] = Field(default=None, max_length=16)


class CategoryRead(CategoryCreate):
    id: uuid.UUID
    household_id: Optional[uuid.UUID] = None
    is_default: bool
    created_at: datetime


class CategoryDeleteIn(SQLModel):
    reassign_to: Optional[uuid.UUID] = None


def _clean_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category name is required")
    return cleaned


def _ensure_unique_name(session: Session, household_id: uuid.UUID, name: str, exclude_id: Optional[uuid.UUID] = None):
    stmt = select(Category).where(
        Category.household_id == household_id,
        func.lower(Category.name) == name.lower(),
    )
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    if session.exec(stmt).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A category with this name already exists",
        )


def _editable_category(session: Session, category_id: uuid.UUID, household: Household, action: str) -> Category:
    category = session.get(Category, category_id)
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    if category.is_default:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Cannot {action} system categories")
    if category.household_id != household.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Category belongs to another household")
    return category


@router.get(
    "",
    response_model=List[CategoryRead],
)
def list_categories(
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    """Global default categories followed by the household's own."""
    stmt = (
        select(Category)
        .where(or_(Category.household_id == household.id, Category.household_id.is_(None)))
        .order_by(Category.is_default.desc(), Category.name.asc())
    )
    return list(session.exec(stmt).all())


@router.post(
    "",
    response_model=CategoryRead,
    status_code=status.HTTP_201_CREATED,
)
def create_category(
    payload: CategoryCreate,
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    name = _clean_name(payload.name)
    _ensure_unique_name(session, household.id, name)

    category = Category(
        household_id=household.id,
        name=name,
        icon=payload.icon or None,
        color=payload.color or None,
        is_default=False,
    )
    commit_with_retry(session, lambda: session.add(category))
    session.refresh(category)
    return category


@router.put(
    "/{category_id}",
    response_model=CategoryRead,
)
def update_category(
    category_id: uuid.UUID,
    payload: CategoryCreate,
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    """Rename or restyle one of the household's own categories."""
    category = _editable_category(session, category_id, household, "edit")
    name = _clean_name(payload.name)
    _ensure_unique_name(session, household.id, name, exclude_id=category.id)

    def stage():
        category.name = name
        category.icon = payload.icon or None
        category.color = payload.color or None
        session.add(category)

    commit_with_retry(session, stage)
    session.refresh(category)
    return category


@router.delete(
    "/{category_id}",
    status_code=status.HTTP_200_OK,
)
def delete_category(
    category_id: uuid.UUID,
    payload: Optional[CategoryDeleteIn] = None,
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    """
    Delete a custom category.

    - Its transactions move to ``reassign_to`` when given, otherwise they
      become uncategorized.
    - Budgets on the deleted category are removed with it.
    """
    category = _editable_category(session, category_id, household, "delete")
    reassign_to = payload.reassign_to if payload is not None else None
    if reassign_to is not None:
        target = session.get(Category, reassign_to)
        if target is None or target.id == category.id or target.household_id not in (None, household.id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid reassign_to category")

    def stage() -> int:
        moved = session.exec(
            select(Transaction).where(
                Transaction.household_id == household.id,
                Transaction.category_id == category.id,
            )
        ).all()
        now = datetime.utcnow()
        for txn in moved:
            txn.category_id = reassign_to
            txn.updated_at = now
            session.add(txn)

        budgets = session.exec(
            select(Budget).where(Budget.household_id == household.id, Budget.category_id == category.id)
        ).all()
        for budget in budgets:
            for state in session.exec(select(BudgetAlertState).where(BudgetAlertState.budget_id == budget.id)).all():
                session.delete(state)
            session.delete(budget)

        session.delete(category)
        return len(moved)

    moved = commit_with_retry(session, stage)
    logger.info("Household %s deleted category %s (%s transactions moved)", household.id, category_id, moved)
    return {"success": True, "reassigned": moved}

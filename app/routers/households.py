import logging
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Field, Session, SQLModel, select

from ..core.security import get_current_household, get_current_user, household_members
from ..database import commit_with_retry, get_session
from ..models.household import MAX_MEMBERS, Household
from ..models.user import User


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/households",
    tags=["households"],
)


class HouseholdCreate(SQLModel):
    name: str = Field(default="Our Household", min_length=1, max_length=100)


class HouseholdUpdate(SQLModel):
    name: Optional[str] = Field(default=None, max_length=100)
    show_settlement: Optional[bool] = None


class MemberRead(SQLModel):
    id: uuid.UUID
    email: str
    full_name: Optional[str] = None


class HouseholdRead(SQLModel):
    id: uuid.UUID
    name: str
    invite_code: str
    show_settlement: bool = True
    created_at: datetime
    members: List[MemberRead]


def _household_out(session: Session, household: Household) -> HouseholdRead:
    members = household_members(session, household.id)
    return HouseholdRead(
        id=household.id,
        name=household.name,
        invite_code=household.invite_code,
        show_settlement=household.show_settlement,
        created_at=household.created_at,
        members=[MemberRead(id=m.id, email=m.email, full_name=m.full_name) for m in members],
    )


@router.post(
    "",
    response_model=HouseholdRead,
    status_code=status.HTTP_201_CREATED,
)
def create_household(
    payload: HouseholdCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if current_user.household_id is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already in a household")

    now = datetime.utcnow()
    household = Household(name=payload.name.strip(), created_by=current_user.id, created_at=now, updated_at=now)

    def stage():
        session.add(household)
        session.flush()
        current_user.household_id = household.id
        current_user.updated_at = now
        session.add(current_user)

    commit_with_retry(session, stage)
    session.refresh(household)
    logger.info("User %s created household %s", current_user.id, household.id)
    return _household_out(session, household)


@router.post(
    "/join/{invite_code}",
    response_model=HouseholdRead,
    status_code=status.HTTP_200_OK,
)
def join_household(
    invite_code: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    household = session.exec(select(Household).where(Household.invite_code == invite_code.strip().lower())).first()
    if household is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid invite code")
    if current_user.household_id == household.id:
        return _household_out(session, household)
    if current_user.household_id is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already in a household")

    if len(household_members(session, household.id)) >= MAX_MEMBERS:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This household already has two members",
        )

    def stage():
        current_user.household_id = household.id
        current_user.updated_at = datetime.utcnow()
        session.add(current_user)

    commit_with_retry(session, stage)
    logger.info("User %s joined household %s", current_user.id, household.id)
    return _household_out(session, household)


@router.get(
    "/me",
    response_model=HouseholdRead,
    status_code=status.HTTP_200_OK,
)
def get_my_household(
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    return _household_out(session, household)


@router.patch(
    "/me",
    response_model=HouseholdRead,
    status_code=status.HTTP_200_OK,
)
def update_my_household(
    payload: HouseholdUpdate,
    session: Session = Depends(get_session),
    household: Household = Depends(get_current_household),
):
    """Rename the household or toggle whether the settlement view is shown."""
    if payload.name is None and payload.show_settlement is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields to update")

    name = payload.name.strip() if payload.name is not None else None
    if name == "":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Household name cannot be empty")

    def stage():
        if name is not None:
            household.name = name
        if payload.show_settlement is not None:
            household.show_settlement = payload.show_settlement
        household.updated_at = datetime.utcnow()
        session.add(household)

    commit_with_retry(session, stage)
    session.refresh(household)
    logger.info("Household %s updated", household.id)
    return _household_out(session, household)

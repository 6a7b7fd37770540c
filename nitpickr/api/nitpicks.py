"""
Nitpick API routes.

A nitpick is a user's saved listing inside one of their teams.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.database import get_db
from nitpickr.middleware.auth import get_current_active_user, is_team_member
from nitpickr.models import Nitpick, RealEstate, TeamMember, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/nitpicks", tags=["nitpicks"])


# Pydantic schemas
class NitpickCreate(BaseModel):
    """Schema for saving a listing."""

    real_estate_id: str = Field(..., alias="realEstateId", min_length=1)
    team_id: Optional[UUID] = Field(None, alias="teamId")

    class Config:
        populate_by_name = True


class NitpickResponse(BaseModel):
    """Schema for nitpick response."""

    id: UUID
    user_id: UUID = Field(..., alias="userId")
    team_id: Optional[UUID] = Field(None, alias="teamId")
    real_estate_id: str = Field(..., alias="realEstateId")
    created_at: datetime = Field(..., alias="createdAt")

    class Config:
        from_attributes = True
        populate_by_name = True


@router.post("", response_model=NitpickResponse, status_code=status.HTTP_201_CREATED)
async def create_nitpick(
    nitpick: NitpickCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """
    Save a listing for the current user.

    Without ``teamId`` the nitpick goes to the first team the user belongs to.

    Raises:
        HTTPException: 400 if the user has no team, 403 if not a member of the
            given team, 404 if the listing is unknown
    """
    real_estate = await db.get(RealEstate, nitpick.real_estate_id)
    if real_estate is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Real estate not found")

    team_id = nitpick.team_id
    if team_id is None:
        result = await db.execute(
            select(TeamMember)
            .where(TeamMember.user_id == current_user.id)
            .order_by(TeamMember.created_at)
            .limit(1)
        )
        membership = result.scalar_one_or_none()
        if membership is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User is not a member of any team",
            )
        team_id = membership.team_id
    elif not await is_team_member(current_user.id, team_id, db):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this team",
        )

    db_nitpick = Nitpick(user_id=current_user.id, team_id=team_id, real_estate_id=real_estate.id)
    db.add(db_nitpick)
    await db.commit()
    await db.refresh(db_nitpick)

    logger.info(f"User {current_user.id} saved {real_estate.id} to team {team_id}")
    return db_nitpick


@router.get("", response_model=List[NitpickResponse])
async def list_nitpicks(
    team_id: Optional[UUID] = Query(None, alias="teamId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """List the current user's nitpicks, newest first, optionally for one team (``teamId``)."""
    query = select(Nitpick).where(Nitpick.user_id == current_user.id)
    if team_id is not None:
        query = query.where(Nitpick.team_id == team_id)

    result = await db.execute(query.order_by(Nitpick.created_at.desc()))
    return result.scalars().all()


@router.delete("/{nitpick_id}")
async def delete_nitpick(
    nitpick_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """
    Delete a nitpick and every other nitpick of the same user for the same listing.

    Raises:
        HTTPException: 404 if not found, 403 if owned by someone else
    """
    nitpick = await db.get(Nitpick, nitpick_id)
    if nitpick is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Nitpick not found")

    if nitpick.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    await db.execute(
        delete(Nitpick).where(
            Nitpick.user_id == nitpick.user_id,
            Nitpick.real_estate_id == nitpick.real_estate_id,
        )
    )
    await db.commit()

    return {"message": "Nitpick deleted successfully"}

"""
Issue API routes.

Issues are concerns flagged on a listing, either by the AI backend or by
users. Team members discuss them with comments and rank them with votes.
"""

import logging
from collections import defaultdict
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nitpickr.database import get_db
from nitpickr.middleware.auth import get_current_active_user, is_team_member
from nitpickr.models import IssueComment, IssueVote, RealEstate, RealEstateIssue, User
from nitpickr.services.listings import serialize_comment, serialize_issue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/issues", tags=["issues"])


# Pydantic schemas
class IssueCreate(BaseModel):
    """Schema for a user-created issue."""

    real_estate_id: str = Field(..., alias="realEstateId", min_length=1)
    category: str = Field(..., min_length=1, max_length=100)
    area: Optional[str] = Field(None, max_length=100)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    severity: Optional[str] = Field(None, max_length=20)

    class Config:
        populate_by_name = True


class CommentCreate(BaseModel):
    issue_id: Optional[str] = Field(None, alias="issueId")
    text: Optional[str] = None

    class Config:
        populate_by_name = True


class VoteRequest(BaseModel):
    issue_id: Optional[str] = Field(None, alias="issueId")
    # Validated in the handler so non-integers answer 400
    vote: Any = None

    class Config:
        populate_by_name = True


async def _team_from_cookie(
    current_team_id: Optional[str], user: User, db: AsyncSession
) -> Optional[UUID]:
    """The ``currentTeamId`` cookie, if it names a team the user belongs to."""
    if not current_team_id:
        return None
    try:
        team_id = UUID(current_team_id)
    except ValueError:
        return None
    if not await is_team_member(user.id, team_id, db):
        logger.warning(f"Ignoring currentTeamId {team_id}: user {user.id} is not a member")
        return None
    return team_id


def _parse_issue_id(value: Optional[str]) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


async def _get_issue(db: AsyncSession, issue_id: UUID) -> RealEstateIssue:
    issue = await db.get(RealEstateIssue, issue_id)
    if issue is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Issue not found")
    return issue


@router.get("")
async def list_issues(
    real_estate_id: str = Query(..., alias="realEstateId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """
    Issues of a listing grouped by category.

    Returns:
        ``{category: [issue, ...]}`` where each issue carries its comments
        and the sum of its votes
    """
    result = await db.execute(
        select(RealEstateIssue)
        .options(
            selectinload(RealEstateIssue.comments),
            selectinload(RealEstateIssue.votes),
        )
        .where(RealEstateIssue.real_estate_id == real_estate_id)
        .order_by(RealEstateIssue.category, RealEstateIssue.created_at)
        .execution_options(populate_existing=True)
    )

    grouped: dict[str, list[dict]] = defaultdict(list)
    for issue in result.scalars().all():
        grouped[issue.category].append(serialize_issue(issue))
    return dict(grouped)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_issue(
    issue: IssueCreate,
    current_team_id: Optional[str] = Cookie(None, alias="currentTeamId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Flag a new issue on a listing."""
    if await db.get(RealEstate, issue.real_estate_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Real estate not found")

    db_issue = RealEstateIssue(
        real_estate_id=issue.real_estate_id,
        category=issue.category,
        area=issue.area,
        title=issue.title,
        description=issue.description,
        severity=issue.severity,
        created_by=current_user.id,
        team_id=await _team_from_cookie(current_team_id, current_user, db),
    )
    db.add(db_issue)
    await db.commit()

    result = await db.execute(
        select(RealEstateIssue)
        .options(selectinload(RealEstateIssue.comments), selectinload(RealEstateIssue.votes))
        .where(RealEstateIssue.id == db_issue.id)
    )
    return serialize_issue(result.scalar_one())


@router.post("/comment", status_code=status.HTTP_201_CREATED)
async def create_comment(
    comment: CommentCreate,
    current_team_id: Optional[str] = Cookie(None, alias="currentTeamId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """
    Comment on an issue. The team comes from the ``currentTeamId`` cookie.

    Raises:
        HTTPException: 400 on missing parameters, 404 if the issue is unknown
    """
    issue_id = _parse_issue_id(comment.issue_id)
    if issue_id is None or not comment.text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing parameters")

    await _get_issue(db, issue_id)

    db_comment = IssueComment(
        issue_id=issue_id,
        content=comment.text,
        created_by=current_user.id,
        team_id=await _team_from_cookie(current_team_id, current_user, db),
    )
    db.add(db_comment)
    await db.commit()
    await db.refresh(db_comment)

    return serialize_comment(db_comment)


@router.delete("/comment/{comment_id}")
async def delete_comment(
    comment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Delete a comment; only its author may do so."""
    comment = await db.get(IssueComment, comment_id)
    if comment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")

    if comment.created_by != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden: You are not the owner of this comment",
        )

    await db.delete(comment)
    await db.commit()
    return {"message": "Comment deleted successfully"}


async def _find_vote(db: AsyncSession, issue_id: UUID, user_id: UUID) -> Optional[IssueVote]:
    result = await db.execute(
        select(IssueVote).where(IssueVote.issue_id == issue_id, IssueVote.user_id == user_id)
    )
    return result.scalar_one_or_none()


@router.post("/vote")
async def vote_issue(
    vote_request: VoteRequest,
    current_team_id: Optional[str] = Cookie(None, alias="currentTeamId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """
    Vote on an issue. Voting again replaces the previous vote.

    Raises:
        HTTPException: 400 on missing or non-integer vote, 404 if the issue is unknown
    """
    vote = vote_request.vote
    issue_id = _parse_issue_id(vote_request.issue_id)
    if issue_id is None or not isinstance(vote, int) or isinstance(vote, bool):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing or invalid parameters",
        )

    await _get_issue(db, issue_id)
    user_id = current_user.id
    team_id = await _team_from_cookie(current_team_id, current_user, db)

    db_vote = await _find_vote(db, issue_id, user_id)
    if db_vote is None:
        db_vote = IssueVote(issue_id=issue_id, user_id=user_id, team_id=team_id, vote=vote)
        db.add(db_vote)
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent request inserted the vote first
            await db.rollback()
            logger.info(f"Vote by {user_id} on issue {issue_id} raced; updating instead")
            db_vote = await _find_vote(db, issue_id, user_id)
            db_vote.vote = vote
            await db.commit()
    else:
        db_vote.vote = vote
        await db.commit()
    await db.refresh(db_vote)

    return {
        "id": str(db_vote.id),
        "issueId": str(db_vote.issue_id),
        "userId": str(db_vote.user_id),
        "teamId": str(db_vote.team_id) if db_vote.team_id else None,
        "vote": db_vote.vote,
    }


@router.delete("/{issue_id}")
async def delete_issue(
    issue_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Delete an issue; only the user who created it may do so."""
    issue = await _get_issue(db, issue_id)

    if issue.created_by != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden: Only the owner can delete this issue",
        )

    await db.delete(issue)
    await db.commit()
    return {"message": "Issue deleted successfully"}

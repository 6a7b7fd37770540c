"""
Listing search API routes.

Proxies search, geosearch and town listings to the search backend,
streams AI nitpick analyses, and serves the saved-listing history.
"""

import json
import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nitpickr.database import get_db
from nitpickr.infrastructure.ai_backend import AIBackendClient, AIBackendError, get_ai_client
from nitpickr.middleware.auth import get_current_active_user, is_team_member
from nitpickr.middleware.usage import enforce_api_usage, track_api_usage
from nitpickr.models import Nitpick, RealEstate, RealEstateIssue, User
from nitpickr.services.listings import (
    serialize_issue,
    transform_listing,
    transform_nitpick,
    transform_town_listing,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["listings"])

HISTORY_LIMIT = 50

# Upstream headers that must not be forwarded on a re-chunked body
HOP_BY_HOP_HEADERS = {
    "connection",
    "content-encoding",
    "content-length",
    "keep-alive",
    "transfer-encoding",
}


def _upstream_error(e: AIBackendError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Failed to fetch listings", "message": e.message},
    )


@router.post("/search")
async def search(
    payload: Any = Body(...),
    current_user: User = Depends(get_current_active_user),
    ai_client: AIBackendClient = Depends(get_ai_client),
):
    """
    Full-text listing search.

    The request body is forwarded unchanged to the search backend.

    Raises:
        HTTPException: 400 for a search term under 2 characters, 404 when nothing matches
    """
    if isinstance(payload, str) and len(payload) < 2:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Search term must be at least 2 characters long",
        )

    try:
        data = await ai_client.search(str(current_user.id), payload)
    except AIBackendError as e:
        logger.error(f"Error fetching listings: {e.message}")
        return _upstream_error(e)

    hits = data.get("hits") if isinstance(data, dict) else None
    if not hits:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No listings found")

    return [transform_listing(hit) for hit in hits]


@router.get("/listings")
async def listings(
    town: str = Query(""),
    ai_client: AIBackendClient = Depends(get_ai_client),
):
    """
    Listings of a town.

    Raises:
        HTTPException: 400 for a town under 3 characters, 404 when the town has no listings
    """
    if len(town) < 3:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Search term must be at least 3 characters long",
        )

    try:
        rows = await ai_client.listings(town)
    except AIBackendError as e:
        logger.error(f"Error fetching listings for {town}: {e.message}")
        return _upstream_error(e)

    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No listings found")

    return [transform_town_listing(row) for row in rows]


@router.post("/geosearch", dependencies=[Depends(track_api_usage("views"))])
async def geosearch(
    payload: Any = Body(...),
    current_user: User = Depends(get_current_active_user),
    ai_client: AIBackendClient = Depends(get_ai_client),
):
    """
    Listings within ``radius`` of (``lat``, ``lng``). Counted as ``views`` usage.

    Raises:
        HTTPException: 400 when the body is not JSON or lacks lat, lng or radius
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON in request body"
            )

    if not isinstance(payload, dict) or any(
        payload.get(field) in (None, "") for field in ("lat", "lng", "radius")
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Must include lat, lng, and radius",
        )

    try:
        data = await ai_client.geosearch(
            str(current_user.id), payload["lat"], payload["lng"], payload["radius"]
        )
    except AIBackendError as e:
        logger.error(f"Error fetching geosearch listings: {e.message}")
        return _upstream_error(e)

    hits = data.get("hits") if isinstance(data, dict) else None
    if not hits:
        return {"listings": []}

    return [transform_listing(hit) for hit in hits]


@router.post("/nitpick", dependencies=[Depends(enforce_api_usage("analysis"))])
async def nitpick(
    payload: Optional[dict] = Body(None),
    current_user: User = Depends(get_current_active_user),
    ai_client: AIBackendClient = Depends(get_ai_client),
):
    """
    Stream the AI analysis of an address.

    The upstream status, headers and body chunks are forwarded as they
    arrive. Counted against the ``analysis`` limit.
    """
    address = (payload or {}).get("address")
    if not address:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Address is required")

    try:
        upstream = await ai_client.open_nitpick_stream(str(current_user.id), address)
    except AIBackendError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": e.message}
        )

    headers = {
        name: value
        for name, value in upstream.headers.items()
        if name.lower() not in HOP_BY_HOP_HEADERS
    }
    headers.setdefault("content-type", "text/plain; charset=utf-8")
    headers["cache-control"] = "no-cache"

    async def relay():
        try:
            async for chunk in upstream.aiter_bytes():
                yield chunk
        finally:
            await upstream.aclose()

    return StreamingResponse(
        relay(),
        status_code=upstream.status_code,
        headers=headers,
        media_type=headers.get("content-type"),
    )


@router.post("/history")
async def history(
    team: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """
    Saved listings, one entry per listing.

    Listings the current user saved come first, then the rest by most
    recent save. ``team`` limits the history to one of the user's teams.
    """
    if team is not None and not await is_team_member(current_user.id, team, db):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this team",
        )

    user_flag = func.min(case((Nitpick.user_id == current_user.id, 0), else_=1)).label("user_flag")
    last_created = func.max(Nitpick.created_at).label("last_created")

    query = select(Nitpick.real_estate_id, user_flag, last_created).group_by(
        Nitpick.real_estate_id
    )
    if team is not None:
        query = query.where(Nitpick.team_id == team)
    query = query.order_by(user_flag, last_created.desc()).limit(HISTORY_LIMIT)

    ordered_ids = [row.real_estate_id for row in (await db.execute(query)).all()]
    if not ordered_ids:
        return []

    result = await db.execute(
        select(RealEstate)
        .options(
            selectinload(RealEstate.issues).selectinload(RealEstateIssue.comments),
            selectinload(RealEstate.issues).selectinload(RealEstateIssue.votes),
        )
        .where(RealEstate.id.in_(ordered_ids))
        .execution_options(populate_existing=True)
    )
    real_estates = {real_estate.id: real_estate for real_estate in result.scalars().all()}

    # The caller's own nitpick per listing, so the client can delete it
    result = await db.execute(
        select(Nitpick)
        .where(Nitpick.user_id == current_user.id, Nitpick.real_estate_id.in_(ordered_ids))
        .order_by(Nitpick.created_at)
    )
    own_nitpicks = {nitpick.real_estate_id: str(nitpick.id) for nitpick in result.scalars().all()}

    return [
        transform_nitpick(
            real_estates[real_estate_id],
            nitpick_id=own_nitpicks.get(real_estate_id),
            issues=[serialize_issue(issue) for issue in real_estates[real_estate_id].issues],
        )
        for real_estate_id in ordered_ids
        if real_estate_id in real_estates
    ]

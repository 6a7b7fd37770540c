"""
Listing transforms.

Turn search backend hits, listings service rows and stored real estates
into the card dictionaries the front end renders.
"""

from typing import Any, Optional

from nitpickr.models import RealEstate


def _int(value: Any) -> Optional[int]:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _geo(hit: dict) -> dict:
    geo = hit.get("_geo") or {}
    return {"lat": _float(geo.get("lat")), "lng": _float(geo.get("lng"))}


def transform_listing(hit: dict) -> dict:
    """Search or geosearch hit -> listing card."""
    geo = _geo(hit)
    return {
        "id": hit.get("id"),
        "address": hit.get("address"),
        "price": hit.get("price"),
        "status": hit.get("status"),
        "beds": _int(hit.get("bedrooms")),
        "baths": _float(hit.get("bathrooms")),
        "garage": _int(hit.get("garage")),
        "sqft": hit.get("area"),
        "url": hit.get("url"),
        "image": hit.get("image"),
        "_geo": geo,
        "lat": geo["lat"],
        "lng": geo["lng"],
    }


def transform_town_listing(row: dict) -> dict:
    """Listings service row -> listing card. ``sqft`` arrives as "1,234"."""
    geo = row.get("_geo") or {}
    sqft = row.get("sqft")
    if isinstance(sqft, str):
        sqft = sqft.replace(",", "")
    return {
        "id": row.get("id"),
        "address": row.get("address"),
        "price": row.get("price"),
        "beds": _int(row.get("beds")),
        "baths": _float(row.get("baths")),
        "sqft": sqft,
        "url": row.get("url"),
        "image": row.get("image"),
        "_geo": geo,
        "lat": geo.get("lat"),
        "lng": geo.get("lng"),
    }


def transform_status(status: Optional[str]) -> str:
    """Collapse listing statuses into Active, Pending, Sold or the raw value."""
    if status == "Active" or (status and status.startswith("FOR SALE")):
        return "Active"
    if status in ("Pending", "CONTINGENT", "ACTIVE WITH CONTRACT"):
        return "Pending"
    if status in ("Sold", "Off Market"):
        return "Sold"
    return status or "Unknown"


def serialize_issue(issue) -> dict:
    votes = list(issue.votes or [])
    return {
        "id": str(issue.id),
        "realEstateId": issue.real_estate_id,
        "category": issue.category,
        "area": issue.area,
        "title": issue.title,
        "description": issue.description,
        "severity": issue.severity,
        "createdBy": str(issue.created_by) if issue.created_by else None,
        "teamId": str(issue.team_id) if issue.team_id else None,
        "createdAt": issue.created_at.isoformat() if issue.created_at else None,
        "comments": [serialize_comment(comment) for comment in issue.comments or []],
        "votes": sum(vote.vote for vote in votes),
    }


def serialize_comment(comment) -> dict:
    return {
        "id": str(comment.id),
        "issueId": str(comment.issue_id),
        "content": comment.content,
        "createdBy": str(comment.created_by),
        "teamId": str(comment.team_id) if comment.team_id else None,
        "createdAt": comment.created_at.isoformat() if comment.created_at else None,
    }


def transform_nitpick(
    record: RealEstate,
    nitpick_id: Optional[str] = None,
    issues: Optional[list] = None,
) -> dict:
    """Stored real estate (and the nitpick that saved it) -> nitpick card."""
    images = record.images or []
    return {
        "id": record.id,
        "nid": nitpick_id,
        "address": record.address,
        "price": record.price,
        "beds": record.bedrooms,
        "baths": record.bathrooms,
        "sqft": record.area,
        "garage": record.garage,
        "lotSize": record.lot_size,
        "history": record.property_history,
        "year_built": record.year_built,
        "url": record.listing_url,
        "image": images[0] if images else None,
        "description": record.description,
        "_geo": record.geo,
        "town": record.town,
        "status": record.status,
        "country": record.country,
        "zipcode": record.postal_code,
        "createdAt": record.created_at.isoformat() if record.created_at else None,
        "extraInfo": record.extra_info,
        "issues": issues or [],
    }

"""
Request helpers shared by the routers: tenant header and date window.
"""
from datetime import date
from typing import Optional

from fastapi import Header, HTTPException, Query

from courierhub.services.courier_types import DateRange


def require_brand_id(brand_id: Optional[str] = Header(None, alias="brand-id")) -> str:
    """Dependency that returns the tenant id from the brand-id header, 400 if missing."""
    if not brand_id or not brand_id.strip():
        raise HTTPException(status_code=400, detail="Missing brand-id header")
    return brand_id.strip()


def date_range_params(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
) -> DateRange:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")
    return DateRange(start=start_date, end=end_date)

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from courierhub.api.dependencies import date_range_params, require_brand_id
from courierhub.database import get_db
from courierhub.models.enums import parse_courier
from courierhub.schemas.core import DiscrepancyListResponse, DiscrepancyResponse, DiscrepancySummary
from courierhub.services import discrepancy_service
from courierhub.services.courier_types import DateRange
from courierhub.services.errors import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/discrepancies", tags=["discrepancies"])


@router.get("", response_model=DiscrepancyListResponse)
def list_discrepancies(
    courier: str = Query("all"),
    brand_id: str = Depends(require_brand_id),
    date_range: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
):
    """Courier returns not reflected as a refund or void on the storefront."""
    if courier.lower() != "all" and parse_courier(courier) is None:
        raise HTTPException(status_code=404, detail=f"Unknown courier: {courier}")
    try:
        report = discrepancy_service.find_discrepancies(db, brand_id, courier, date_range)
    except StorageError as e:
        logger.error(f"[DISCREPANCIES] storage failure for brand={brand_id}: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")

    return DiscrepancyListResponse(
        discrepancies=[DiscrepancyResponse.model_validate(d) for d in report.discrepancies],
        summary=DiscrepancySummary(
            total=report.total,
            per_courier_counts=report.per_courier_counts,
            total_amount_at_risk=report.total_amount_at_risk,
        ),
    )

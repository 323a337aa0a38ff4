import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from courierhub.api.dependencies import date_range_params, require_brand_id
from courierhub.database import get_db
from courierhub.schemas.core import FinanceSummaryResponse
from courierhub.services import finance_service
from courierhub.services.courier_types import DateRange
from courierhub.services.errors import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/finance", tags=["finance"])


@router.get("/summary", response_model=FinanceSummaryResponse)
def get_finance_summary(
    brand_id: str = Depends(require_brand_id),
    date_range: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
):
    try:
        summary = finance_service.finance_summary(db, brand_id, date_range)
    except StorageError as e:
        logger.error(f"[FINANCE] storage failure for brand={brand_id}: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")
    return FinanceSummaryResponse(**summary)

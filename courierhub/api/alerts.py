import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from courierhub.api.dependencies import date_range_params, require_brand_id
from courierhub.config import settings
from courierhub.database import get_db
from courierhub.schemas.core import AlertListResponse, AlertResponse, AlertThresholdsResponse
from courierhub.services import alert_service
from courierhub.services.alert_service import AlertThresholds
from courierhub.services.courier_types import DateRange
from courierhub.services.errors import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("", response_model=AlertListResponse)
def list_alerts(
    transit_days: int = Query(settings.ALERT_TRANSIT_DAYS, alias="transitDays", ge=1),
    return_rate_pct: float = Query(settings.ALERT_RETURN_RATE_PCT, alias="returnRatePct", ge=0, le=100),
    delivery_rate_pct: float = Query(settings.ALERT_DELIVERY_RATE_PCT, alias="deliveryRatePct", ge=0, le=100),
    brand_id: str = Depends(require_brand_id),
    date_range: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
):
    """Stuck shipments, city return spikes and courier delivery-rate drops."""
    thresholds = AlertThresholds(
        transit_days=transit_days,
        return_rate_pct=return_rate_pct,
        delivery_rate_pct=delivery_rate_pct,
    )
    try:
        evaluation = alert_service.evaluate(db, brand_id, thresholds, date_range=date_range)
    except StorageError as e:
        logger.error(f"[ALERTS] storage failure for brand={brand_id}: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")

    return AlertListResponse(
        alerts=[
            AlertResponse(
                id=alert.id,
                type=alert.type.value,
                severity=alert.severity.value,
                title=alert.title,
                description=alert.description,
                details=alert.details,
                created_at=alert.created_at,
            )
            for alert in evaluation.alerts
        ],
        summary=evaluation.summary,
        thresholds_used=AlertThresholdsResponse.model_validate(evaluation.thresholds),
    )

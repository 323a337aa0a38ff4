"""
Couriers API - Per-courier order sync and tracking refresh

Provides endpoints for:
- Syncing a courier's orders for a brand (cache, live, or fallback)
- Refreshing tracking status for stored orders in bulk
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from courierhub.api.dependencies import date_range_params, require_brand_id
from courierhub.database import get_db
from courierhub.models.enums import Courier, parse_courier
from courierhub.schemas.core import (
    ChangeSummaryResponse, ItemFailureResponse, OrderResponse, OrderSyncResponse,
    TrackingRefreshRequest, TrackingRefreshResponse
)
from courierhub.services import sync_orchestrator, tracking_service
from courierhub.services.courier_types import CourierCredentials, DateRange
from courierhub.services.errors import StorageError, UnsupportedCourierOperation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/couriers", tags=["couriers"])


def resolve_courier(courier: str) -> Courier:
    resolved = parse_courier(courier)
    if resolved is None:
        raise HTTPException(status_code=404, detail=f"Unknown courier: {courier}")
    return resolved


def courier_credentials(
    token: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
    x_proxy: Optional[str] = Header(None, alias="x-proxy"),
) -> CourierCredentials:
    """Courier token from the `token` header (PostEx style) or `Authorization`."""
    return CourierCredentials(token=token or authorization, proxy=x_proxy)


@router.get("/{courier}/orders", response_model=OrderSyncResponse)
def sync_courier_orders(
    courier: str,
    force: bool = Query(False),
    brand_id: str = Depends(require_brand_id),
    date_range: DateRange = Depends(date_range_params),
    credentials: CourierCredentials = Depends(courier_credentials),
    db: Session = Depends(get_db),
):
    """
    Orders for one courier, served from the store when present.

    `force=true` skips the store and fetches live. When the live fetch fails
    the stored orders are returned with `source=fallback` and a warning.
    """
    resolved = resolve_courier(courier)
    try:
        result = sync_orchestrator.sync(
            db, brand_id, resolved,
            date_range=date_range,
            force_live=force,
            credentials=credentials,
        )
    except StorageError as e:
        logger.error(f"[SYNC] storage failure for brand={brand_id} courier={resolved.value}: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")

    return OrderSyncResponse(
        source=result.source.value,
        count=len(result.orders),
        records=[OrderResponse.model_validate(o) for o in result.orders],
        change_summary=(
            ChangeSummaryResponse.model_validate(result.change_summary)
            if result.change_summary else None
        ),
        warning=result.warning,
        error_kind=result.error_kind,
    )


@router.post("/{courier}/tracking/refresh", response_model=TrackingRefreshResponse)
def refresh_courier_tracking(
    courier: str,
    request: Optional[TrackingRefreshRequest] = None,
    brand_id: str = Depends(require_brand_id),
    credentials: CourierCredentials = Depends(courier_credentials),
    db: Session = Depends(get_db),
):
    request = request or TrackingRefreshRequest()
    resolved = resolve_courier(courier)
    try:
        result = tracking_service.refresh_tracking(
            db, brand_id, resolved, credentials,
            tracking_numbers=request.tracking_numbers,
            include_payment_status=request.include_payment_status,
        )
    except UnsupportedCourierOperation as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.error(f"[TRACKING] storage failure for brand={brand_id}: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")

    return TrackingRefreshResponse(
        requested=result.requested,
        updated=result.updated,
        statuses=result.statuses,
        payment_statuses=result.payment_statuses,
        failures=[ItemFailureResponse.model_validate(f) for f in result.failures],
    )

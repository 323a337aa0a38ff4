"""
Storefront API - Storefront order sync

Storefront credentials travel as headers: the store domain plus either an
Admin API access token or a client id / secret pair.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from courierhub.api.dependencies import date_range_params, require_brand_id
from courierhub.database import get_db
from courierhub.schemas.core import StorefrontOrderResponse, StorefrontSyncResponse
from courierhub.services import storefront_service
from courierhub.services.courier_types import DateRange
from courierhub.services.errors import StorageError
from courierhub.services.storefront_service import StorefrontCredentials

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/storefront", tags=["storefront"])


def storefront_credentials(
    store: Optional[str] = Header(None, alias="x-storefront-domain"),
    access_token: Optional[str] = Header(None, alias="x-storefront-token"),
    client_id: Optional[str] = Header(None, alias="x-storefront-client-id"),
    client_secret: Optional[str] = Header(None, alias="x-storefront-client-secret"),
) -> StorefrontCredentials:
    return StorefrontCredentials(
        store=store or "",
        access_token=access_token,
        client_id=client_id,
        client_secret=client_secret,
    )


@router.get("/orders", response_model=StorefrontSyncResponse)
def sync_storefront_orders(
    force: bool = Query(False),
    brand_id: str = Depends(require_brand_id),
    date_range: DateRange = Depends(date_range_params),
    credentials: StorefrontCredentials = Depends(storefront_credentials),
    db: Session = Depends(get_db),
):
    try:
        result = storefront_service.sync_storefront(
            db, brand_id, credentials, date_range, force_live=force
        )
    except StorageError as e:
        logger.error(f"[STOREFRONT] storage failure for brand={brand_id}: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")

    return StorefrontSyncResponse(
        source=result.source.value,
        count=len(result.orders),
        orders=[StorefrontOrderResponse.model_validate(o) for o in result.orders],
        upserted=result.upserted,
        unchanged=result.unchanged,
        conflicts=result.conflicts,
        failed_chunks=result.failed_chunks,
        warning=result.warning,
        error_kind=result.error_kind,
    )

"""
Status classification for courier shipments.

Each courier prints its own status vocabulary. Known values are looked up in
an explicit per-courier table; anything unmapped falls back to substring
classification, in this priority order:

1. contains "deliver"  -> DELIVERED
2. contains "return"   -> RETURNED
3. contains "cancel"   -> CANCELLED
4. otherwise           -> IN_TRANSIT

The order matters: some upstream strings combine words ("Delivered - Return
Requested" is a delivery, "Return Cancelled By Shipper" is a return).
"""
import re
from typing import Dict, Optional

from courierhub.models.enums import Courier, StatusBucket, parse_courier


_COMMON_STATUSES: Dict[str, StatusBucket] = {
    "delivered": StatusBucket.DELIVERED,
    "returned": StatusBucket.RETURNED,
    "returned to shipper": StatusBucket.RETURNED,
    "return to shipper": StatusBucket.RETURNED,
    "cancelled": StatusBucket.CANCELLED,
    "canceled": StatusBucket.CANCELLED,
    "booked": StatusBucket.IN_TRANSIT,
    "in transit": StatusBucket.IN_TRANSIT,
    # "deliver" substring would call these delivered
    "out for delivery": StatusBucket.IN_TRANSIT,
    "delivery under review": StatusBucket.IN_TRANSIT,
    "attempted delivery": StatusBucket.IN_TRANSIT,
    "undelivered": StatusBucket.IN_TRANSIT,
}

STATUS_TABLES: Dict[Courier, Dict[str, StatusBucket]] = {
    Courier.POSTEX: {
        **_COMMON_STATUSES,
        "payment transferred": StatusBucket.DELIVERED,
        "transferred": StatusBucket.DELIVERED,
        "return verified": StatusBucket.RETURNED,
        "return in process": StatusBucket.RETURNED,
        "unbooked": StatusBucket.CANCELLED,
        "un assigned by me": StatusBucket.IN_TRANSIT,
        "postex warehouse": StatusBucket.IN_TRANSIT,
        "picked by postex": StatusBucket.IN_TRANSIT,
        "en route to postex warehouse": StatusBucket.IN_TRANSIT,
        "expired": StatusBucket.IN_TRANSIT,
    },
    Courier.TRANZO: {
        **_COMMON_STATUSES,
        "pending": StatusBucket.IN_TRANSIT,
        "arrived at origin": StatusBucket.IN_TRANSIT,
        "arrived at destination": StatusBucket.IN_TRANSIT,
        "dispatched": StatusBucket.IN_TRANSIT,
        "rto": StatusBucket.RETURNED,
        "rto delivered": StatusBucket.RETURNED,
        "return in transit": StatusBucket.RETURNED,
    },
    Courier.ZOOM: {
        **_COMMON_STATUSES,
        "shipment picked": StatusBucket.IN_TRANSIT,
        "arrival at destination": StatusBucket.IN_TRANSIT,
        "shipment returned to origin": StatusBucket.RETURNED,
        "unknown": StatusBucket.IN_TRANSIT,
    },
}


def normalize_status(status: Optional[str]) -> str:
    """Lower-case, treat "-" and "_" as spaces, collapse whitespace."""
    text = (status or "").lower().replace("-", " ").replace("_", " ")
    return re.sub(r"\s+", " ", text).strip()


def classify_by_substring(status: Optional[str]) -> StatusBucket:
    """Fallback classification for statuses no table knows about."""
    text = (status or "").lower()
    if "deliver" in text:
        return StatusBucket.DELIVERED
    if "return" in text:
        return StatusBucket.RETURNED
    if "cancel" in text:
        return StatusBucket.CANCELLED
    return StatusBucket.IN_TRANSIT


def classify_status(status: Optional[str], courier: Optional[Courier] = None) -> StatusBucket:
    """Classify a courier status string into a StatusBucket."""
    key = normalize_status(status)
    courier = parse_courier(courier)
    table = STATUS_TABLES.get(courier) if courier else _COMMON_STATUSES
    if table and key in table:
        return table[key]
    return classify_by_substring(status)

import enum

class Courier(str, enum.Enum):
    POSTEX = "PostEx"
    TRANZO = "Tranzo"
    ZOOM = "Zoom"

class StatusBucket(str, enum.Enum):
    DELIVERED = "delivered"
    RETURNED = "returned"
    CANCELLED = "cancelled"
    IN_TRANSIT = "in_transit"

class SyncSource(str, enum.Enum):
    CACHE = "cache"
    LIVE = "live"
    FALLBACK = "fallback"

class AlertType(str, enum.Enum):
    STUCK = "stuck"
    RETURN_SPIKE = "return-spike"
    PERFORMANCE_DROP = "performance-drop"

class AlertSeverity(str, enum.Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


def parse_courier(value):
    """Resolve a courier from its enum value or name, case-insensitively. Returns None if unknown."""
    if value is None:
        return None
    if isinstance(value, Courier):
        return value
    needle = str(value).strip().lower()
    for courier in Courier:
        if needle in (courier.value.lower(), courier.name.lower()):
            return courier
    return None

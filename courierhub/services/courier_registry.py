from typing import Dict, Optional

from courierhub.models.enums import Courier, parse_courier
from courierhub.services.courier_strategy import CourierStrategy
from courierhub.services.postex_service import PostExStrategy
from courierhub.services.tranzo_service import TranzoStrategy
from courierhub.services.zoom_service import ZoomStrategy

STRATEGIES: Dict[Courier, CourierStrategy] = {
    Courier.POSTEX: PostExStrategy(),
    Courier.TRANZO: TranzoStrategy(),
    Courier.ZOOM: ZoomStrategy(),
}


def get_strategy(courier) -> Optional[CourierStrategy]:
    """Strategy for a courier given as enum, value or name; None if unknown."""
    resolved = parse_courier(courier)
    if resolved is None:
        return None
    return STRATEGIES[resolved]

from __future__ import annotations

from courierhub.models.enums import Courier, StatusBucket
from courierhub.services import financial_normalizer
from courierhub.services.courier_types import FetchContext, FetchResult, FinancialFields, RawShipment
from courierhub.services.status_mapping import classify_status


class CourierStrategy:
    """
    One courier's behaviour behind a single interface.

    Subclasses set `courier` and implement `fetch`; classification and
    settlement arithmetic come from the shared status tables and financial
    rules keyed by that courier.
    """
    courier: Courier

    def classify(self, status: str | None) -> StatusBucket:
        return classify_status(status, self.courier)

    def compute_financials(self, raw: RawShipment) -> FinancialFields:
        return financial_normalizer.normalize(raw, self.courier)

    def fetch(self, context: FetchContext) -> FetchResult:
        raise NotImplementedError

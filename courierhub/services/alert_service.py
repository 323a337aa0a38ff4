"""
Alert engine.

One pass over a brand's orders builds per-city, per-courier and
per-courier-per-city tallies; three rules turn them into severity-tiered
alerts. Alerts are computed per request and never persisted.

Rules (all thresholds inclusive on the alerting side):
- stuck: in-transit orders with floor(days since order_date) >= transit_days
  (critical at >= 2x)
- return-spike: cities with >= 5 orders and return rate >= return_rate_pct
  (critical at >= 1.5x)
- performance-drop: couriers with >= 10 orders and delivery rate below
  delivery_rate_pct (critical when more than 20 points below)
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from courierhub.config import settings
from courierhub.models.core import Order
from courierhub.models.enums import AlertSeverity, AlertType, StatusBucket
from courierhub.services import order_store
from courierhub.services.courier_types import DateRange
from courierhub.services.status_mapping import classify_status
from courierhub.utils.normalization import city_key, display_city

logger = logging.getLogger(__name__)

STUCK_EXAMPLE_LIMIT = 50
PROBLEM_CITY_LIMIT = 10
MIN_CITY_ORDERS = 5
MIN_COURIER_ORDERS = 10
MIN_COURIER_CITY_ORDERS = 3
CRITICAL_RETURN_MULTIPLIER = 1.5
CRITICAL_DELIVERY_GAP = 20

SEVERITY_RANK = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.INFO: 2,
}


@dataclass(frozen=True)
class AlertThresholds:
    transit_days: int = 5
    return_rate_pct: float = 15
    delivery_rate_pct: float = 80

    @classmethod
    def defaults(cls) -> "AlertThresholds":
        return cls(
            transit_days=settings.ALERT_TRANSIT_DAYS,
            return_rate_pct=settings.ALERT_RETURN_RATE_PCT,
            delivery_rate_pct=settings.ALERT_DELIVERY_RATE_PCT,
        )


@dataclass
class Alert:
    id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    details: Dict[str, Any]
    created_at: datetime


@dataclass
class AlertEvaluation:
    alerts: List[Alert]
    summary: Dict[str, Any]
    thresholds: AlertThresholds


@dataclass
class _Tally:
    total: int = 0
    delivered: int = 0
    returned: int = 0
    cancelled: int = 0
    in_transit: int = 0

    def add(self, bucket: StatusBucket) -> None:
        self.total += 1
        if bucket == StatusBucket.DELIVERED:
            self.delivered += 1
        elif bucket == StatusBucket.RETURNED:
            self.returned += 1
        elif bucket == StatusBucket.CANCELLED:
            self.cancelled += 1
        else:
            self.in_transit += 1

    def rate(self, count: int) -> float:
        return count / self.total * 100 if self.total else 0.0


@dataclass
class _Aggregates:
    by_city: Dict[str, _Tally] = field(default_factory=dict)
    by_courier: Dict[str, _Tally] = field(default_factory=dict)
    by_courier_city: Dict[str, Dict[str, _Tally]] = field(default_factory=dict)
    stuck: List[Dict[str, Any]] = field(default_factory=list)


def _round1(value: float) -> float:
    return round(value, 1)


def days_in_transit(order_date: datetime, now: datetime) -> int:
    """Whole days elapsed since dispatch, floored."""
    return int((now - order_date).total_seconds() // 86400)


def _aggregate(orders: List[Order], thresholds: AlertThresholds, now: datetime) -> _Aggregates:
    agg = _Aggregates()
    for order in orders:
        courier = order.courier
        status = order.transaction_status or order.order_status or order.last_status
        bucket = classify_status(status, courier)
        city = city_key(order.city_name)

        agg.by_courier.setdefault(courier, _Tally()).add(bucket)
        agg.by_city.setdefault(city, _Tally()).add(bucket)
        agg.by_courier_city.setdefault(courier, {}).setdefault(city, _Tally()).add(bucket)

        if bucket != StatusBucket.IN_TRANSIT or order.order_date is None:
            continue
        days = days_in_transit(order.order_date, now)
        if days >= thresholds.transit_days:
            agg.stuck.append({
                "tracking_number": order.tracking_number,
                "courier": courier,
                "customer_name": order.customer_name,
                "customer_phone": order.customer_phone,
                "city": display_city(city),
                "order_date": order.order_date,
                "days_in_transit": days,
                "amount": order.invoice_payment,
                "last_status": order.last_status or order.transaction_status or order.order_status,
                "product": order.order_detail,
            })
    return agg


def _stuck_alerts(agg: _Aggregates, thresholds: AlertThresholds, now: datetime) -> List[Alert]:
    transit_days = thresholds.transit_days
    stuck = sorted(agg.stuck, key=lambda o: o["days_in_transit"], reverse=True)
    critical = [o for o in stuck if o["days_in_transit"] >= transit_days * 2]
    warning = [o for o in stuck if transit_days <= o["days_in_transit"] < transit_days * 2]

    alerts = []
    if critical:
        alerts.append(Alert(
            id="stuck_critical",
            type=AlertType.STUCK,
            severity=AlertSeverity.CRITICAL,
            title=f"{len(critical)} orders stuck for {transit_days * 2}+ days",
            description=f"These orders have been in transit for {transit_days * 2} days or more and need immediate attention.",
            details={"orders": critical[:STUCK_EXAMPLE_LIMIT], "total_count": len(critical)},
            created_at=now,
        ))
    if warning:
        alerts.append(Alert(
            id="stuck_warning",
            type=AlertType.STUCK,
            severity=AlertSeverity.WARNING,
            title=f"{len(warning)} orders stuck for {transit_days}+ days",
            description=f"These orders have exceeded the expected {transit_days}-day delivery window.",
            details={"orders": warning[:STUCK_EXAMPLE_LIMIT], "total_count": len(warning)},
            created_at=now,
        ))
    return alerts


def _plural_city(count: int) -> str:
    return "city" if count == 1 else "cities"


def _return_spike_alerts(agg: _Aggregates, thresholds: AlertThresholds, now: datetime) -> List[Alert]:
    limit = thresholds.return_rate_pct
    critical_limit = limit * CRITICAL_RETURN_MULTIPLIER
    critical: List[Dict[str, Any]] = []
    warning: List[Dict[str, Any]] = []

    for city, tally in agg.by_city.items():
        if tally.total < MIN_CITY_ORDERS:
            continue
        rate = tally.rate(tally.returned)
        if rate < limit:
            continue
        entry = {
            "city": display_city(city),
            "total": tally.total,
            "returned": tally.returned,
            "return_rate": _round1(rate),
            "in_transit": tally.in_transit,
            "_rate": rate,
        }
        (critical if rate >= critical_limit else warning).append(entry)

    alerts = []
    for severity, cities, alert_id, title, description in (
        (AlertSeverity.CRITICAL, critical, "return_spike_critical",
         "Return rates critically high in {n} {cities}",
         f"Return rates are at or above {_round1(critical_limit)}% in these cities. "
         f"Investigate product quality or courier issues."),
        (AlertSeverity.WARNING, warning, "return_spike_warning",
         "Return rates elevated in {n} {cities}",
         f"Return rates are at or above {_round1(limit)}% in these cities. Monitor closely."),
    ):
        if not cities:
            continue
        cities.sort(key=lambda c: c["_rate"], reverse=True)
        for entry in cities:
            entry.pop("_rate")
        alerts.append(Alert(
            id=alert_id,
            type=AlertType.RETURN_SPIKE,
            severity=severity,
            title=title.format(n=len(cities), cities=_plural_city(len(cities))),
            description=description,
            details={"cities": cities},
            created_at=now,
        ))
    return alerts


def _performance_alerts(agg: _Aggregates, thresholds: AlertThresholds, now: datetime) -> List[Alert]:
    limit = thresholds.delivery_rate_pct
    alerts = []
    for courier, tally in sorted(agg.by_courier.items()):
        if tally.total < MIN_COURIER_ORDERS:
            continue
        delivery_rate = tally.rate(tally.delivered)
        if delivery_rate >= limit:
            continue
        severity = AlertSeverity.CRITICAL if delivery_rate < limit - CRITICAL_DELIVERY_GAP else AlertSeverity.WARNING

        problem_cities = []
        for city, city_tally in agg.by_courier_city.get(courier, {}).items():
            if city_tally.total < MIN_COURIER_CITY_ORDERS:
                continue
            city_rate = city_tally.rate(city_tally.delivered)
            if city_rate < limit:
                problem_cities.append((city_rate, {
                    "city": display_city(city),
                    "total": city_tally.total,
                    "delivered": city_tally.delivered,
                    "delivery_rate": _round1(city_rate),
                }))
        problem_cities.sort(key=lambda item: item[0])

        alerts.append(Alert(
            id=f"perf_{courier.lower()}",
            type=AlertType.PERFORMANCE_DROP,
            severity=severity,
            title=f"{courier} delivery rate at {_round1(delivery_rate)}%",
            description=(
                f"{courier}'s delivery rate is below the {limit}% threshold. "
                f"{tally.returned} returns and {tally.in_transit} still in transit out of {tally.total} orders."
            ),
            details={
                "courier": courier,
                "total": tally.total,
                "delivered": tally.delivered,
                "returned": tally.returned,
                "in_transit": tally.in_transit,
                "cancelled": tally.cancelled,
                "delivery_rate": _round1(delivery_rate),
                "return_rate": _round1(tally.rate(tally.returned)),
                "problem_cities": [entry for _, entry in problem_cities[:PROBLEM_CITY_LIMIT]],
            },
            created_at=now,
        ))
    return alerts


def build_alerts(orders: List[Order], thresholds: AlertThresholds, now: datetime) -> AlertEvaluation:
    """Pure rule evaluation over already-loaded orders."""
    agg = _aggregate(orders, thresholds, now)
    alerts = (
        _stuck_alerts(agg, thresholds, now)
        + _return_spike_alerts(agg, thresholds, now)
        + _performance_alerts(agg, thresholds, now)
    )
    alerts.sort(key=lambda a: SEVERITY_RANK[a.severity])

    by_type = {alert_type.value: 0 for alert_type in AlertType}
    for alert in alerts:
        by_type[alert.type.value] += 1

    summary = {
        "total_alerts": len(alerts),
        "critical": sum(1 for a in alerts if a.severity == AlertSeverity.CRITICAL),
        "warning": sum(1 for a in alerts if a.severity == AlertSeverity.WARNING),
        "info": sum(1 for a in alerts if a.severity == AlertSeverity.INFO),
        "by_type": by_type,
        "stuck_in_transit": len(agg.stuck),
        "cities_with_high_returns": sum(len(a.details["cities"]) for a in alerts if a.type == AlertType.RETURN_SPIKE),
        "couriers_underperforming": by_type[AlertType.PERFORMANCE_DROP.value],
    }
    return AlertEvaluation(alerts=alerts, summary=summary, thresholds=thresholds)


def evaluate(
    db: Session,
    brand_id: str,
    thresholds: Optional[AlertThresholds] = None,
    date_range: Optional[DateRange] = None,
    now: Optional[datetime] = None,
) -> AlertEvaluation:
    """
    Evaluate alert rules over a brand's stored orders.

    Raises:
        StorageError: If the order store cannot be read
    """
    thresholds = thresholds or AlertThresholds.defaults()
    now = now or datetime.utcnow()
    orders = order_store.query_orders(db, brand_id, date_range=date_range)
    evaluation = build_alerts(orders, thresholds, now)
    logger.info(
        f"[ALERTS] brand={brand_id} orders={len(orders)} alerts={evaluation.summary['total_alerts']} "
        f"critical={evaluation.summary['critical']}"
    )
    return evaluation

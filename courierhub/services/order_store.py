"""
Canonical order store.

Persistence helpers over the `orders` table: point lookup, range query by
dispatch date, bulk load of existing rows, and chunked idempotent upsert
keyed by (courier, tracking_number). Every read failure surfaces as
StorageError; a failed upsert chunk is rolled back and reported without
undoing earlier chunks.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courierhub.config import settings
from courierhub.models.core import Order
from courierhub.services.batching import chunked
from courierhub.services.courier_types import DateRange, ItemFailure
from courierhub.services.errors import StorageError

logger = logging.getLogger(__name__)

ORDER_KEY_COLUMNS = ("courier", "tracking_number")
# Never rewritten once a row exists
ORDER_PINNED_COLUMNS = ("courier", "tracking_number", "brand_id")

# Columns compared to decide whether a re-synced row actually changed
ORDER_CONTENT_COLUMNS = tuple(
    column.name for column in Order.__table__.columns
    if column.name not in ("id", "last_fetched_at")
)

_IN_CLAUSE_CHUNK = 500


@dataclass
class UpsertOutcome:
    written: int = 0
    failed_chunks: List[ItemFailure] = field(default_factory=list)


def build_upsert_statement(
    db: Session,
    table: Any,
    rows: List[Dict[str, Any]],
    key_columns: Sequence[str],
    pinned_columns: Sequence[str] = (),
    guard_column: Optional[str] = None,
) -> Any:
    """
    INSERT ... ON CONFLICT (key) DO UPDATE for PostgreSQL and SQLite.

    With `guard_column`, a conflicting row is only updated when its stored
    value in that column equals the incoming one; otherwise it is left as is.
    """
    dialect = db.get_bind().dialect.name
    insert_fn = sqlite_insert if dialect == "sqlite" else pg_insert
    insert = insert_fn(table).values(rows)
    skip = {"id", *key_columns, *pinned_columns}
    set_cols = {name: insert.excluded[name] for name in rows[0].keys() if name not in skip}
    where = None
    if guard_column is not None:
        where = table.c[guard_column] == insert.excluded[guard_column]
    return insert.on_conflict_do_update(index_elements=list(key_columns), set_=set_cols, where=where)


def upsert_rows(
    db: Session,
    table: Any,
    rows: List[Dict[str, Any]],
    key_columns: Sequence[str],
    pinned_columns: Sequence[str] = (),
    chunk_size: Optional[int] = None,
    label: str = "ORDER_STORE",
    guard_column: Optional[str] = None,
) -> UpsertOutcome:
    """
    Upsert rows in fixed-size chunks, one transaction per chunk.

    A chunk that fails is rolled back and recorded in `failed_chunks`;
    chunks committed before it stay committed.
    """
    outcome = UpsertOutcome()
    size = chunk_size or settings.SYNC_CHUNK_SIZE
    for index, chunk in enumerate(chunked(rows, size)):
        chunk = list(chunk)
        try:
            db.execute(build_upsert_statement(db, table, chunk, key_columns, pinned_columns, guard_column))
            db.commit()
            outcome.written += len(chunk)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"[{label}] chunk {index} ({len(chunk)} rows) failed: {e}")
            outcome.failed_chunks.append(ItemFailure(key=f"chunk:{index}", error=str(e)))
    return outcome


def query_orders(
    db: Session,
    brand_id: str,
    courier: Optional[str] = None,
    date_range: Optional[DateRange] = None,
) -> List[Order]:
    """
    Orders for a brand (optionally one courier) whose order_date falls in the range,
    newest courier event first.
    """
    try:
        query = db.query(Order).filter(Order.brand_id == brand_id)
        if courier:
            query = query.filter(Order.courier == courier)
        if date_range is not None:
            start, end = date_range.bounds()
            if start is not None:
                query = query.filter(Order.order_date >= start)
            if end is not None:
                query = query.filter(Order.order_date < end)
        return query.order_by(
            Order.transaction_date.desc().nulls_last(),
            Order.tracking_number,
        ).all()
    except SQLAlchemyError as e:
        logger.error(f"[ORDER_STORE] query failed for brand={brand_id} courier={courier}: {e}")
        raise StorageError(f"Order query failed: {str(e)}") from e


def get_order(db: Session, courier: str, tracking_number: str) -> Optional[Order]:
    try:
        return db.query(Order).filter(
            Order.courier == courier,
            Order.tracking_number == tracking_number,
        ).first()
    except SQLAlchemyError as e:
        raise StorageError(f"Order lookup failed: {str(e)}") from e


def load_existing_orders(db: Session, courier: str, tracking_numbers: Sequence[str]) -> Dict[str, Order]:
    """Existing rows for the given tracking numbers, keyed by tracking number."""
    existing: Dict[str, Order] = {}
    try:
        for batch in chunked(list(tracking_numbers), _IN_CLAUSE_CHUNK):
            rows = db.query(Order).filter(
                Order.courier == courier,
                Order.tracking_number.in_(list(batch)),
            ).all()
            for row in rows:
                existing[row.tracking_number] = row
    except SQLAlchemyError as e:
        logger.error(f"[ORDER_STORE] existing-row load failed for courier={courier}: {e}")
        raise StorageError(f"Existing order load failed: {str(e)}") from e
    return existing


def owned_by_other_brand(db: Session, courier: str, tracking_numbers: Sequence[str], brand_id: str) -> Set[str]:
    """Tracking numbers among these whose stored row belongs to a different brand."""
    owned: Set[str] = set()
    try:
        for batch in chunked(list(tracking_numbers), _IN_CLAUSE_CHUNK):
            rows = db.query(Order.tracking_number).filter(
                Order.courier == courier,
                Order.tracking_number.in_(list(batch)),
                Order.brand_id != brand_id,
            ).all()
            owned.update(row.tracking_number for row in rows)
    except SQLAlchemyError as e:
        logger.error(f"[ORDER_STORE] ownership check failed for courier={courier}: {e}")
        raise StorageError(f"Ownership check failed: {str(e)}") from e
    return owned


def order_content(order: Order) -> Dict[str, Any]:
    """Comparable snapshot of a stored row, without bookkeeping columns."""
    return {name: getattr(order, name) for name in ORDER_CONTENT_COLUMNS}


def upsert_orders(db: Session, rows: List[Dict[str, Any]], chunk_size: Optional[int] = None) -> UpsertOutcome:
    if not rows:
        return UpsertOutcome()
    outcome = upsert_rows(
        db, Order.__table__, rows,
        key_columns=ORDER_KEY_COLUMNS,
        pinned_columns=ORDER_PINNED_COLUMNS,
        chunk_size=chunk_size,
        guard_column="brand_id",
    )
    # Rows read earlier in this session may be stale after a core-level upsert
    db.expire_all()
    logger.info(f"[ORDER_STORE] upserted={outcome.written} failed_chunks={len(outcome.failed_chunks)}")
    return outcome


def apply_status_updates(
    db: Session,
    brand_id: str,
    courier: str,
    updates: Dict[str, Tuple[Optional[str], Optional[datetime]]],
) -> int:
    """
    Write last_status / last_status_time onto existing orders of this brand.

    Returns:
        Number of rows changed
    """
    if not updates:
        return 0
    existing = load_existing_orders(db, courier, list(updates.keys()))
    changed = 0
    try:
        for tracking_number, (status, status_time) in updates.items():
            order = existing.get(tracking_number)
            if order is None or order.brand_id != brand_id:
                continue
            if order.last_status == status and order.last_status_time == status_time:
                continue
            order.last_status = status
            order.last_status_time = status_time
            order.last_fetched_at = datetime.utcnow()
            changed += 1
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[ORDER_STORE] status update failed for courier={courier}: {e}")
        raise StorageError(f"Status update failed: {str(e)}") from e
    return changed

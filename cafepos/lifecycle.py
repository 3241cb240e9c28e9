"""Cancelling parks an order in CANCELLATION_PENDING for the grace period.

COMPLETED and CANCELLED are terminal.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from cafepos.clock import as_utc, utc_now
from cafepos.config import settings
from cafepos.errors import CancellationWindowExpiredError, NotFoundError, OrderStateError
from cafepos.models import Order, OrderStatus

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})

# cancellation targets go through request_cancellation
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.COMPLETED}
    ),
    OrderStatus.PREPARING: frozenset(
        {OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.COMPLETED}
    ),
    OrderStatus.READY: frozenset({OrderStatus.READY, OrderStatus.COMPLETED}),
    OrderStatus.CANCELLATION_PENDING: frozenset(),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

CANCELLATION_TARGETS = frozenset({OrderStatus.CANCELLED, OrderStatus.CANCELLATION_PENDING})


def grace_period() -> timedelta:
    return timedelta(seconds=settings.cancellation_grace_seconds)


def sweep_expired_cancellations(db: Session, now: Optional[datetime] = None) -> None:
    now = now or utc_now()
    result = db.execute(
        update(Order)
        .where(
            Order.status == OrderStatus.CANCELLATION_PENDING,
            Order.cancellation_expires_at <= now,
        )
        .values(
            status=OrderStatus.CANCELLED,
            cancellation_finalized_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info("finalized %s expired cancellation(s)", result.rowcount)


def load_scoped_order(
    db: Session,
    order_id: int,
    tenant_id: Optional[int] = None,
    branch_id: Optional[int] = None,
) -> Order:
    query = select(Order).where(Order.id == order_id)
    if tenant_id is not None:
        query = query.where(Order.tenant_id == tenant_id)
    if branch_id is not None:
        query = query.where(Order.branch_id == branch_id)
    order = db.execute(query).scalar_one_or_none()
    if order is None:
        raise NotFoundError("order not found")
    return order


def _clear_cancellation(order: Order) -> None:
    order.cancellation_requested_at = None
    order.cancellation_requested_by = None
    order.cancellation_expires_at = None
    order.cancellation_previous_status = None
    order.cancellation_finalized_at = None


def _commit(db: Session, order: Order) -> Order:
    db.commit()
    db.refresh(order)
    return order


def update_order_status(
    db: Session,
    order_id: int,
    status: OrderStatus,
    actor_id: Optional[str] = None,
    tenant_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Order:
    now = now or utc_now()
    order = load_scoped_order(db, order_id, tenant_id, branch_id)

    if order.status in TERMINAL_STATUSES:
        raise OrderStateError("completed or cancelled orders cannot be updated")

    if status in CANCELLATION_TARGETS:
        return request_cancellation(db, order_id, actor_id, tenant_id, branch_id, now=now)

    if order.status == OrderStatus.CANCELLATION_PENDING:
        raise OrderStateError("order has a pending cancellation, undo it before updating")

    if status not in ALLOWED_TRANSITIONS[order.status]:
        raise OrderStateError(
            f"cannot move order from {order.status.value} to {status.value}"
        )

    previous = order.status
    order.status = status
    _clear_cancellation(order)
    if status == OrderStatus.COMPLETED:
        order.completed_at = now
        order.completed_by = actor_id
    order.updated_at = now
    logger.info("order %s: %s -> %s", order.id, previous.value, status.value)
    return _commit(db, order)


def complete_order(
    db: Session,
    order_id: int,
    actor_id: Optional[str] = None,
    tenant_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Order:
    return update_order_status(
        db, order_id, OrderStatus.COMPLETED, actor_id, tenant_id, branch_id, now=now
    )


def request_cancellation(
    db: Session,
    order_id: int,
    actor_id: Optional[str] = None,
    tenant_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Order:
    now = now or utc_now()
    order = load_scoped_order(db, order_id, tenant_id, branch_id)

    if order.status == OrderStatus.CANCELLED:
        raise OrderStateError("order already cancelled")
    if order.status == OrderStatus.COMPLETED:
        raise OrderStateError("completed or cancelled orders cannot be updated")
    if order.status == OrderStatus.CANCELLATION_PENDING:
        raise OrderStateError("cancellation already pending for this order")

    order.cancellation_previous_status = order.status
    order.status = OrderStatus.CANCELLATION_PENDING
    order.cancellation_requested_at = now
    order.cancellation_requested_by = actor_id
    order.cancellation_expires_at = now + grace_period()
    order.cancellation_finalized_at = None
    order.updated_at = now
    logger.info(
        "order %s: cancellation requested by %s, expires %s",
        order.id,
        actor_id,
        order.cancellation_expires_at.isoformat(),
    )
    return _commit(db, order)


def undo_cancellation(
    db: Session,
    order_id: int,
    actor_id: Optional[str] = None,
    tenant_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Order:
    now = now or utc_now()
    order = load_scoped_order(db, order_id, tenant_id, branch_id)

    if order.status != OrderStatus.CANCELLATION_PENDING:
        raise OrderStateError("no pending cancellation to undo")

    expires_at = as_utc(order.cancellation_expires_at)
    if expires_at is not None and expires_at <= now:
        order.status = OrderStatus.CANCELLED
        order.cancellation_finalized_at = now
        order.updated_at = now
        db.commit()
        logger.info("order %s: undo by %s arrived after the grace period", order.id, actor_id)
        raise CancellationWindowExpiredError("cancellation already finalized")

    restored = order.cancellation_previous_status or OrderStatus.PENDING
    order.status = restored
    _clear_cancellation(order)
    order.updated_at = now
    logger.info("order %s: cancellation undone by %s, back to %s", order.id, actor_id, restored.value)
    return _commit(db, order)


def confirm_cancellation(
    db: Session,
    order_id: int,
    actor_id: Optional[str] = None,
    tenant_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Order:
    now = now or utc_now()
    order = load_scoped_order(db, order_id, tenant_id, branch_id)

    if order.status != OrderStatus.CANCELLATION_PENDING:
        raise OrderStateError("no pending cancellation to confirm")

    order.status = OrderStatus.CANCELLED
    order.cancellation_finalized_at = now
    order.updated_at = now
    logger.info("order %s: cancellation confirmed by %s", order.id, actor_id)
    return _commit(db, order)

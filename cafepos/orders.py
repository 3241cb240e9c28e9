import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from cafepos.clock import as_utc, utc_now
from cafepos.errors import (
    CrossTenantError,
    InvalidRequestError,
    MenuItemUnavailableError,
    NotFoundError,
)
from cafepos.lifecycle import sweep_expired_cancellations
from cafepos.menu_scope import sellable_query
from cafepos.models import Branch, MenuItem, Order, OrderItem, OrderStatus, OrderType
from cafepos.tokens import allocate_token

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

ACTIVE_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.CANCELLATION_PENDING,
)


class OrderLine(NamedTuple):
    menu_item_id: int
    quantity: int


def _order_loader():
    return (
        selectinload(Order.items).selectinload(OrderItem.menu_item).selectinload(MenuItem.branch),
        selectinload(Order.branch),
    )


def create_order(
    db: Session,
    branch_id: int,
    lines: Sequence[OrderLine],
    order_type: OrderType = OrderType.DINE_IN,
    customer_name: Optional[str] = None,
    customer_phone: Optional[str] = None,
    device_id: Optional[str] = None,
    tenant_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Order:
    """Validate, price and persist an order with its lines in one transaction."""
    now = now or utc_now()
    if not lines:
        raise InvalidRequestError("at least one item is required")
    for line in lines:
        if line.quantity < 1:
            raise InvalidRequestError("quantity must be at least 1")

    branch = db.get(Branch, branch_id)
    if branch is None or not branch.is_active:
        raise NotFoundError("branch not found")
    if tenant_id is not None and branch.tenant_id != tenant_id:
        raise CrossTenantError("forbidden: cross-tenant order creation not allowed")

    requested_ids = {line.menu_item_id for line in lines}
    menu_items = {
        item.id: item
        for item in db.execute(
            sellable_query(branch, available_only=True).where(MenuItem.id.in_(requested_ids))
        ).scalars()
    }
    if len(menu_items) != len(requested_ids):
        missing = sorted(requested_ids - set(menu_items))
        raise MenuItemUnavailableError(
            f"some menu items are not available at this branch: {missing}"
        )

    try:
        total = Decimal("0")
        order_items = []
        for line in lines:
            price = Decimal(menu_items[line.menu_item_id].price).quantize(CENTS)
            total += price * line.quantity
            order_items.append(
                OrderItem(
                    menu_item_id=line.menu_item_id,
                    quantity=line.quantity,
                    price=price,
                    created_at=now,
                )
            )

        token_number = None
        if order_type != OrderType.TAKEAWAY:
            token_number = allocate_token(db, branch.id, now=now)

        order = Order(
            tenant_id=branch.tenant_id,
            branch_id=branch.id,
            status=OrderStatus.PENDING,
            token_number=token_number,
            order_type=order_type,
            customer_name=customer_name,
            customer_phone=customer_phone,
            device_id=device_id,
            total_amount=total.quantize(CENTS, rounding=ROUND_HALF_UP),
            created_at=now,
            updated_at=now,
            items=order_items,
        )
        db.add(order)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "order %s created at branch %s (%s, token=%s, total=%s)",
        order.id,
        branch.id,
        order_type.value,
        token_number,
        order.total_amount,
    )
    return get_order(db, order.id, sweep=False)


def get_order(
    db: Session,
    order_id: int,
    tenant_id: Optional[int] = None,
    sweep: bool = True,
) -> Order:
    if sweep:
        sweep_expired_cancellations(db)
    query = select(Order).options(*_order_loader()).where(Order.id == order_id)
    if tenant_id is not None:
        query = query.where(Order.tenant_id == tenant_id)
    order = db.execute(query).scalar_one_or_none()
    if order is None:
        raise NotFoundError("order not found")
    return order


def list_orders(
    db: Session,
    tenant_id: int,
    branch_id: Optional[int] = None,
    status: Optional[OrderStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = 50,
    cursor: Optional[int] = None,
) -> tuple[list[Order], Optional[int]]:
    """Newest first, paginated by descending id."""
    sweep_expired_cancellations(db)
    query = select(Order).options(*_order_loader()).where(Order.tenant_id == tenant_id)
    if branch_id is not None:
        query = query.where(Order.branch_id == branch_id)
    if status is not None:
        query = query.where(Order.status == status)
    if start_date is not None:
        query = query.where(Order.created_at >= as_utc(start_date))
    if end_date is not None:
        query = query.where(Order.created_at <= as_utc(end_date))
    if cursor is not None:
        query = query.where(Order.id < cursor)
    rows = list(db.execute(query.order_by(Order.id.desc()).limit(limit + 1)).scalars())
    next_cursor = None
    if len(rows) > limit:
        next_cursor = rows[limit - 1].id
        rows = rows[:limit]
    return rows, next_cursor


def list_orders_by_device(db: Session, device_id: str) -> list[Order]:
    sweep_expired_cancellations(db)
    query = (
        select(Order)
        .options(*_order_loader())
        .where(Order.device_id == device_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(db.execute(query).scalars())


def list_active_orders(
    db: Session,
    tenant_id: Optional[int] = None,
    branch_id: Optional[int] = None,
) -> list[Order]:
    """Open orders for the staff queue, oldest first."""
    sweep_expired_cancellations(db)
    query = select(Order).options(*_order_loader()).where(Order.status.in_(ACTIVE_STATUSES))
    if tenant_id is not None:
        query = query.where(Order.tenant_id == tenant_id)
    if branch_id is not None:
        query = query.where(Order.branch_id == branch_id)
    return list(db.execute(query.order_by(Order.created_at, Order.id)).scalars())


def list_orders_by_status(
    db: Session,
    status: OrderStatus,
    tenant_id: Optional[int] = None,
    branch_id: Optional[int] = None,
) -> list[Order]:
    sweep_expired_cancellations(db)
    query = select(Order).options(*_order_loader()).where(Order.status == status)
    if tenant_id is not None:
        query = query.where(Order.tenant_id == tenant_id)
    if branch_id is not None:
        query = query.where(Order.branch_id == branch_id)
    return list(db.execute(query.order_by(Order.created_at.desc(), Order.id.desc())).scalars())


def reload_order(db: Session, order: Order) -> Order:
    return get_order(db, order.id, sweep=False)

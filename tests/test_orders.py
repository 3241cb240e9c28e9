from decimal import Decimal

import pytest

from cafepos.errors import (
    CrossTenantError,
    InvalidRequestError,
    MenuItemUnavailableError,
    NotFoundError,
)
from cafepos.lifecycle import complete_order, request_cancellation
from cafepos.menu_scope import source_branch_id
from cafepos.models import Order, OrderStatus, OrderType, Tenant
from cafepos.orders import (
    OrderLine,
    create_order,
    get_order,
    list_active_orders,
    list_orders,
    list_orders_by_device,
    list_orders_by_status,
)


def test_total_is_sum_of_snapshotted_lines(db, make_branch, make_menu_item, now) -> None:
    branch = make_branch()
    espresso = make_menu_item(branch, price=Decimal("10.00"))
    cake = make_menu_item(branch, name="Cake", price=Decimal("3.25"))
    order = create_order(
        db,
        branch.id,
        [OrderLine(espresso.id, 2), OrderLine(cake.id, 1)],
        customer_name="Sam",
        now=now,
    )
    assert order.total_amount == Decimal("23.25")
    assert [(item.menu_item_id, item.quantity, item.price) for item in order.items] == [
        (espresso.id, 2, Decimal("10.00")),
        (cake.id, 1, Decimal("3.25")),
    ]
    assert order.status == OrderStatus.PENDING
    assert order.customer_name == "Sam"


def test_price_change_does_not_touch_existing_orders(db, make_branch, make_menu_item, now) -> None:
    branch = make_branch()
    item = make_menu_item(branch, price=Decimal("10.00"))
    order = create_order(db, branch.id, [OrderLine(item.id, 1)], now=now)

    item.price = Decimal("15.00")
    db.commit()

    reloaded = get_order(db, order.id)
    assert reloaded.items[0].price == Decimal("10.00")
    assert reloaded.total_amount == Decimal("10.00")


def test_repeated_item_lines_are_accepted(db, make_branch, make_menu_item, now) -> None:
    branch = make_branch()
    item = make_menu_item(branch, price=Decimal("2.50"))
    order = create_order(db, branch.id, [OrderLine(item.id, 1), OrderLine(item.id, 3)], now=now)
    assert len(order.items) == 2
    assert order.total_amount == Decimal("10.00")


def test_unavailable_item_rejects_whole_order(db, make_branch, make_menu_item, now) -> None:
    branch = make_branch()
    good = make_menu_item(branch)
    sold_out = make_menu_item(branch, name="Croissant", is_available=False)
    with pytest.raises(MenuItemUnavailableError):
        create_order(db, branch.id, [OrderLine(good.id, 1), OrderLine(sold_out.id, 1)], now=now)
    assert db.query(Order).count() == 0
    db.refresh(branch)
    assert branch.current_token == 0


def test_item_from_unrelated_branch_is_rejected(db, make_branch, make_menu_item, now) -> None:
    home = make_branch(name="Home")
    other = make_branch(name="Other")
    item = make_menu_item(home)
    with pytest.raises(MenuItemUnavailableError):
        create_order(db, other.id, [OrderLine(item.id, 1)], now=now)


def test_unknown_item_is_rejected(db, make_branch, now) -> None:
    branch = make_branch()
    with pytest.raises(MenuItemUnavailableError):
        create_order(db, branch.id, [OrderLine(31337, 1)], now=now)


def test_borrowed_item_sold_through_other_branch(db, make_branch, make_menu_item, now) -> None:
    owner = make_branch(name="Owner")
    seller = make_branch(name="Seller")
    item = make_menu_item(owner, is_transferable=True)
    order = create_order(db, seller.id, [OrderLine(item.id, 1)], now=now)

    assert order.branch_id == seller.id
    line = order.items[0]
    assert line.menu_item.branch_id == owner.id
    assert source_branch_id(line.menu_item, order.branch_id) == owner.id
    db.refresh(owner)
    db.refresh(seller)
    assert seller.current_token == 1
    assert owner.current_token == 0


def test_missing_or_inactive_branch_is_not_found(db, make_branch, make_menu_item, now) -> None:
    closed = make_branch(is_active=False)
    item = make_menu_item(closed)
    with pytest.raises(NotFoundError):
        create_order(db, closed.id, [OrderLine(item.id, 1)], now=now)
    with pytest.raises(NotFoundError):
        create_order(db, 777, [OrderLine(item.id, 1)], now=now)


def test_cross_tenant_creation_is_forbidden(db, make_branch, make_menu_item, now) -> None:
    branch = make_branch()
    item = make_menu_item(branch)
    stranger = Tenant(name="Stranger", status="ACTIVE", created_at=now)
    db.add(stranger)
    db.commit()
    with pytest.raises(CrossTenantError):
        create_order(db, branch.id, [OrderLine(item.id, 1)], tenant_id=stranger.id, now=now)
    order = create_order(db, branch.id, [OrderLine(item.id, 1)], tenant_id=branch.tenant_id, now=now)
    assert order.tenant_id == branch.tenant_id


def test_bad_lines_are_rejected_before_lookup(db, now) -> None:
    with pytest.raises(InvalidRequestError):
        create_order(db, 1, [], now=now)
    with pytest.raises(InvalidRequestError):
        create_order(db, 1, [OrderLine(1, 0)], now=now)


def test_takeaway_orders_never_get_tokens(db, make_branch, make_menu_item, now) -> None:
    branch = make_branch()
    item = make_menu_item(branch)
    order = create_order(db, branch.id, [OrderLine(item.id, 1)], order_type=OrderType.TAKEAWAY, now=now)
    assert order.token_number is None
    assert order.order_type == OrderType.TAKEAWAY
    db.refresh(branch)
    assert branch.current_token == 0


def test_read_helpers_filter_orders(db, make_branch, make_menu_item) -> None:
    branch = make_branch()
    item = make_menu_item(branch)
    first = create_order(db, branch.id, [OrderLine(item.id, 1)], device_id="device-abc")
    second = create_order(db, branch.id, [OrderLine(item.id, 1)], device_id="device-abc")
    third = create_order(db, branch.id, [OrderLine(item.id, 1)])
    complete_order(db, first.id, actor_id="staff-1")
    request_cancellation(db, second.id, actor_id="staff-1")

    assert {o.id for o in list_orders_by_device(db, "device-abc")} == {first.id, second.id}
    assert [o.id for o in list_active_orders(db, branch_id=branch.id)] == [second.id, third.id]
    assert [o.id for o in list_orders_by_status(db, OrderStatus.COMPLETED)] == [first.id]

    rows, next_cursor = list_orders(db, tenant_id=branch.tenant_id, limit=2)
    assert [o.id for o in rows] == [third.id, second.id]
    rows, _ = list_orders(db, tenant_id=branch.tenant_id, limit=2, cursor=next_cursor)
    assert [o.id for o in rows] == [first.id]
    with pytest.raises(NotFoundError):
        get_order(db, first.id, tenant_id=branch.tenant_id + 1)

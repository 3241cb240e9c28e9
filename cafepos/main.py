from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cafepos import categories, lifecycle, orders
from cafepos.auth import Actor, get_optional_actor, require_roles
from cafepos.clock import as_utc, utc_now
from cafepos.config import settings
from cafepos.db import SessionLocal
from cafepos.errors import BusinessRuleError, CafePosError
from cafepos.menu_scope import resolve_sellable, set_transferability, source_branch_id
from cafepos.models import (
    Branch,
    Category,
    MenuItem,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    Role,
    Tenant,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Cafe POS")

ADMIN_ONLY = require_roles(Role.ADMIN)
ADMIN_OR_MANAGER = require_roles(Role.ADMIN, Role.MANAGER)
ANY_STAFF = require_roles(Role.ADMIN, Role.MANAGER, Role.EMPLOYEE)

STATUS_UPDATE_TARGETS = frozenset(
    {OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
)


def _meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _paginate_by_id(query, model, limit: int, cursor: Optional[int]) -> tuple[list[Any], Optional[int]]:
    if cursor is not None:
        query = query.filter(model.id > cursor)
    rows = query.order_by(model.id).limit(limit + 1).all()
    next_cursor = None
    if len(rows) > limit:
        next_cursor = rows[limit - 1].id
        rows = rows[:limit]
    return rows, next_cursor


def _list_meta(limit: int, cursor: Optional[int], next_cursor: Optional[int]) -> dict:
    meta = _meta()
    if next_cursor is not None:
        meta["page"] = {"limit": limit, "cursor": str(next_cursor)}
    elif cursor is not None:
        meta["page"] = {"limit": limit, "cursor": str(cursor)}
    else:
        meta["page"] = {"limit": limit, "cursor": None}
    return meta


def _branch_filter(actor: Actor, branch_id: Optional[int]) -> Optional[int]:
    scope = actor.branch_scope
    if scope is None:
        return branch_id
    if branch_id is not None and branch_id != scope:
        raise HTTPException(status_code=403, detail="forbidden: not your branch")
    return scope


def _get_tenant_branch(db: Session, branch_id: int, tenant_id: int) -> Branch:
    branch = db.get(Branch, branch_id)
    if not branch or branch.tenant_id != tenant_id or not branch.is_active:
        raise HTTPException(status_code=404, detail="branch not found")
    return branch


def _get_tenant_menu_item(db: Session, menu_item_id: int, tenant_id: int) -> MenuItem:
    menu_item = db.get(MenuItem, menu_item_id)
    if not menu_item or menu_item.tenant_id != tenant_id:
        raise HTTPException(status_code=404, detail="menu item not found")
    return menu_item


@app.exception_handler(CafePosError)
async def cafepos_error_handler(request: Request, exc: CafePosError) -> JSONResponse:
    logger.warning(
        "%s",
        exc.message,
        extra={
            "status": exc.status_code,
            "route": request.url.path,
            "tenant": request.headers.get("X-Tenant-Id"),
            "actor": request.headers.get("X-Actor-Id"),
        },
    )
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check() -> dict:
    return {"status": "healthy"}


class TenantCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'name': 'Bean There Cafe', 'is_active': True}}}
    name: str
    is_active: bool = True


@app.post("/api/v1/tenants", tags=["Tenants"])
def create_tenant(payload: TenantCreate, db: Session = Depends(get_db)) -> dict:
    tenant = Tenant(
        name=payload.name,
        status="ACTIVE" if payload.is_active else "INACTIVE",
        created_at=utc_now(),
    )
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return {
        "data": {"tenant_id": tenant.id, "name": tenant.name, "is_active": payload.is_active},
        "meta": _meta(),
    }


@app.get("/api/v1/tenants/{tenant_id}", tags=["Tenants"])
def get_tenant(tenant_id: int, db: Session = Depends(get_db)) -> dict:
    tenant = db.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="tenant not found")
    return {
        "data": {
            "tenant_id": tenant.id,
            "name": tenant.name,
            "status": tenant.status,
            "created_at": _iso(tenant.created_at),
        },
        "meta": _meta(),
    }


def _branch_payload(branch: Branch) -> dict:
    return {
        "branch_id": branch.id,
        "tenant_id": branch.tenant_id,
        "name": branch.name,
        "location": branch.location,
        "is_active": branch.is_active,
        "has_token_system": branch.has_token_system,
        "max_token_number": branch.max_token_number,
        "current_token": branch.current_token,
        "last_token_reset": _iso(branch.last_token_reset),
        "created_at": _iso(branch.created_at),
    }


class BranchCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'name': 'Downtown', 'location': '12 Main St', 'has_token_system': True, 'max_token_number': 50}}}
    name: str = Field(min_length=1)
    location: str = Field(min_length=1)
    has_token_system: bool = False
    max_token_number: Optional[int] = Field(default=None, ge=1)


class BranchUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = Field(default=None, min_length=1)
    has_token_system: Optional[bool] = None
    max_token_number: Optional[int] = Field(default=None, ge=1)


@app.post("/api/v1/branches", tags=["Branches"])
def create_branch(
    payload: BranchCreate,
    actor: Actor = Depends(ADMIN_ONLY),
    db: Session = Depends(get_db),
) -> dict:
    if not db.get(Tenant, actor.tenant_id):
        raise HTTPException(status_code=404, detail="tenant not found")
    now = utc_now()
    branch = Branch(
        tenant_id=actor.tenant_id,
        name=payload.name,
        location=payload.location,
        is_active=True,
        has_token_system=payload.has_token_system,
        max_token_number=payload.max_token_number or settings.default_max_token_number,
        current_token=0,
        last_token_reset=now,
        created_at=now,
    )
    db.add(branch)
    db.commit()
    db.refresh(branch)
    logger.info("branch %s created for tenant %s", branch.id, branch.tenant_id)
    return {"data": _branch_payload(branch), "meta": _meta()}


@app.get("/api/v1/branches", tags=["Branches"])
def list_branches(
    limit: int = Query(default=50, ge=1, le=500),
    cursor: Optional[int] = Query(default=None),
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(Branch).filter(Branch.tenant_id == actor.tenant_id, Branch.is_active.is_(True))
    branches, next_cursor = _paginate_by_id(query, Branch, limit, cursor)
    data = [_branch_payload(branch) for branch in branches]
    return {"data": data, "meta": _list_meta(limit, cursor, next_cursor)}


@app.get("/api/v1/branches/{branch_id}", tags=["Branches"])
def get_branch(
    branch_id: int,
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    branch = _get_tenant_branch(db, branch_id, actor.tenant_id)
    return {"data": _branch_payload(branch), "meta": _meta()}


@app.patch("/api/v1/branches/{branch_id}", tags=["Branches"])
def update_branch(
    branch_id: int,
    payload: BranchUpdate,
    actor: Actor = Depends(ADMIN_ONLY),
    db: Session = Depends(get_db),
) -> dict:
    branch = _get_tenant_branch(db, branch_id, actor.tenant_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(branch, field, value)
    if branch.current_token > branch.max_token_number:
        branch.current_token = 0
    db.commit()
    db.refresh(branch)
    return {"data": _branch_payload(branch), "meta": _meta()}


@app.delete("/api/v1/branches/{branch_id}", tags=["Branches"])
def deactivate_branch(
    branch_id: int,
    actor: Actor = Depends(ADMIN_ONLY),
    db: Session = Depends(get_db),
) -> dict:
    branch = _get_tenant_branch(db, branch_id, actor.tenant_id)
    branch.is_active = False
    db.commit()
    logger.info("branch %s deactivated", branch.id)
    return {"data": {"branch_id": branch.id, "is_active": False}, "meta": _meta()}


def _menu_item_payload(menu_item: MenuItem, selling_branch_id: Optional[int] = None) -> dict:
    data = {
        "menu_item_id": menu_item.id,
        "tenant_id": menu_item.tenant_id,
        "owner_branch_id": menu_item.branch_id,
        "name": menu_item.name,
        "description": menu_item.description,
        "price": _money(menu_item.price),
        "category": menu_item.category,
        "is_available": menu_item.is_available,
        "is_transferable": menu_item.is_transferable,
        "borrowed_by_branch_ids": menu_item.borrowed_by_branch_ids,
        "created_at": _iso(menu_item.created_at),
    }
    if selling_branch_id is not None:
        data["selling_branch_id"] = selling_branch_id
        data["is_borrowed"] = source_branch_id(menu_item, selling_branch_id) is not None
    return data


class MenuItemCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'branch_id': 1, 'name': 'Flat White', 'price': 4.5, 'category': 'Coffee'}}}
    branch_id: int
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    category: Optional[str] = None
    is_available: bool = True


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    category: Optional[str] = None
    is_available: Optional[bool] = None


class MenuItemTransfer(BaseModel):
    model_config = {"json_schema_extra": {"example": {'is_transferable': True, 'borrowed_by_branch_ids': [2, 3]}}}
    is_transferable: bool
    borrowed_by_branch_ids: Optional[list[int]] = None


@app.post("/api/v1/menu-items", tags=["Menu Items"])
def create_menu_item(
    payload: MenuItemCreate,
    actor: Actor = Depends(ADMIN_OR_MANAGER),
    db: Session = Depends(get_db),
) -> dict:
    _branch_filter(actor, payload.branch_id)
    branch = _get_tenant_branch(db, payload.branch_id, actor.tenant_id)
    menu_item = MenuItem(
        tenant_id=branch.tenant_id,
        branch_id=branch.id,
        name=payload.name,
        description=payload.description,
        price=payload.price,
        category=payload.category,
        is_available=payload.is_available,
        is_transferable=False,
        created_at=utc_now(),
    )
    db.add(menu_item)
    db.commit()
    db.refresh(menu_item)
    return {"data": _menu_item_payload(menu_item), "meta": _meta()}


@app.get("/api/v1/menu-items", tags=["Menu Items"])
def list_menu_items(
    branch_id: Optional[int] = Query(default=None),
    category: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    cursor: Optional[int] = Query(default=None),
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(MenuItem).filter(MenuItem.tenant_id == actor.tenant_id)
    if branch_id is not None:
        query = query.filter(MenuItem.branch_id == branch_id)
    if category is not None:
        query = query.filter(MenuItem.category == category)
    menu_items, next_cursor = _paginate_by_id(query, MenuItem, limit, cursor)
    data = [_menu_item_payload(menu_item) for menu_item in menu_items]
    return {"data": data, "meta": _list_meta(limit, cursor, next_cursor)}


@app.get("/api/v1/menu-items/{menu_item_id}", tags=["Menu Items"])
def get_menu_item(
    menu_item_id: int,
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    menu_item = _get_tenant_menu_item(db, menu_item_id, actor.tenant_id)
    return {"data": _menu_item_payload(menu_item), "meta": _meta()}


@app.patch("/api/v1/menu-items/{menu_item_id}", tags=["Menu Items"])
def update_menu_item(
    menu_item_id: int,
    payload: MenuItemUpdate,
    actor: Actor = Depends(ADMIN_OR_MANAGER),
    db: Session = Depends(get_db),
) -> dict:
    menu_item = _get_tenant_menu_item(db, menu_item_id, actor.tenant_id)
    _branch_filter(actor, menu_item.branch_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in ("name", "price", "is_available") and value is None:
            continue
        setattr(menu_item, field, value)
    menu_item.updated_at = utc_now()
    db.commit()
    db.refresh(menu_item)
    return {"data": _menu_item_payload(menu_item), "meta": _meta()}


@app.put("/api/v1/menu-items/{menu_item_id}/transfer", tags=["Menu Items"])
def update_menu_item_transfer(
    menu_item_id: int,
    payload: MenuItemTransfer,
    actor: Actor = Depends(ADMIN_ONLY),
    db: Session = Depends(get_db),
) -> dict:
    menu_item = _get_tenant_menu_item(db, menu_item_id, actor.tenant_id)
    try:
        set_transferability(db, menu_item, payload.is_transferable, payload.borrowed_by_branch_ids)
        db.commit()
    except CafePosError:
        db.rollback()
        raise
    db.refresh(menu_item)
    return {"data": _menu_item_payload(menu_item), "meta": _meta()}


@app.delete("/api/v1/menu-items/{menu_item_id}", tags=["Menu Items"])
def delete_menu_item(
    menu_item_id: int,
    actor: Actor = Depends(ADMIN_OR_MANAGER),
    db: Session = Depends(get_db),
) -> dict:
    menu_item = _get_tenant_menu_item(db, menu_item_id, actor.tenant_id)
    _branch_filter(actor, menu_item.branch_id)
    referenced = db.scalar(
        select(func.count(OrderItem.id)).where(OrderItem.menu_item_id == menu_item.id)
    )
    if referenced:
        raise BusinessRuleError(
            "menu item is referenced by existing orders, mark it unavailable instead"
        )
    db.delete(menu_item)
    db.commit()
    return {"data": {"menu_item_id": menu_item_id, "deleted": True}, "meta": _meta()}


def _category_payload(category: Category) -> dict:
    return {
        "category_id": category.id,
        "tenant_id": category.tenant_id,
        "branch_id": category.branch_id,
        "branch_name": category.branch.name,
        "name": category.name,
        "shared_branch_ids": category.shared_branch_ids,
        "created_at": _iso(category.created_at),
        "updated_at": _iso(category.updated_at),
    }


class CategoryCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'name': 'Coffee', 'branch_id': 1, 'shared_branch_ids': [2]}}}
    name: str = Field(min_length=1)
    branch_id: int
    shared_branch_ids: list[int] = Field(default_factory=list)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    shared_branch_ids: Optional[list[int]] = None


@app.post("/api/v1/categories", tags=["Categories"])
def create_category(
    payload: CategoryCreate,
    actor: Actor = Depends(ADMIN_OR_MANAGER),
    db: Session = Depends(get_db),
) -> dict:
    _branch_filter(actor, payload.branch_id)
    category = categories.create_category(
        db,
        tenant_id=actor.tenant_id,
        branch_id=payload.branch_id,
        name=payload.name,
        shared_branch_ids=payload.shared_branch_ids,
    )
    return {"data": _category_payload(category), "meta": _meta()}


@app.get("/api/v1/categories", tags=["Categories"])
def list_categories(
    branch_id: Optional[int] = Query(default=None),
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    rows = categories.list_categories(
        db, tenant_id=actor.tenant_id, branch_id=_branch_filter(actor, branch_id)
    )
    return {"data": [_category_payload(category) for category in rows], "meta": _meta()}


@app.get("/api/v1/categories/{category_id}", tags=["Categories"])
def get_category(
    category_id: int,
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    category = categories.get_category(db, category_id, actor.tenant_id)
    return {"data": _category_payload(category), "meta": _meta()}


@app.patch("/api/v1/categories/{category_id}", tags=["Categories"])
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    actor: Actor = Depends(ADMIN_OR_MANAGER),
    db: Session = Depends(get_db),
) -> dict:
    _branch_filter(actor, categories.get_category(db, category_id, actor.tenant_id).branch_id)
    changes = payload.model_dump(exclude_unset=True)
    category = categories.update_category(
        db,
        category_id,
        actor.tenant_id,
        name=changes.get("name"),
        shared_branch_ids=changes.get("shared_branch_ids"),
    )
    return {"data": _category_payload(category), "meta": _meta()}


@app.delete("/api/v1/categories/{category_id}", tags=["Categories"])
def delete_category(
    category_id: int,
    actor: Actor = Depends(ADMIN_OR_MANAGER),
    db: Session = Depends(get_db),
) -> dict:
    _branch_filter(actor, categories.get_category(db, category_id, actor.tenant_id).branch_id)
    categories.delete_category(db, category_id, actor.tenant_id)
    return {"data": {"category_id": category_id, "deleted": True}, "meta": _meta()}


@app.get("/api/v1/branches/{branch_id}/menu", tags=["Customer Menu"])
def get_branch_menu(branch_id: int, db: Session = Depends(get_db)) -> dict:
    branch = db.get(Branch, branch_id)
    if not branch or not branch.is_active:
        raise HTTPException(status_code=404, detail="branch not found")
    menu_items = resolve_sellable(db, branch, available_only=True)
    return {
        "data": {
            "branch": {"branch_id": branch.id, "name": branch.name, "location": branch.location},
            "menu_items": [_menu_item_payload(item, selling_branch_id=branch.id) for item in menu_items],
        },
        "meta": _meta(),
    }


def _order_item_payload(item: OrderItem, selling_branch_id: int) -> dict:
    menu_item = item.menu_item
    source_id = source_branch_id(menu_item, selling_branch_id)
    return {
        "order_item_id": item.id,
        "menu_item_id": item.menu_item_id,
        "menu_item_name": menu_item.name,
        "quantity": item.quantity,
        "price": _money(item.price),
        "line_total": _money(item.line_total),
        "owner_branch_id": menu_item.branch_id,
        "source_branch_id": source_id,
        "source_branch_name": menu_item.branch.name if source_id is not None else None,
        "is_cross_branch": source_id is not None,
    }


def _order_payload(order: Order) -> dict:
    return {
        "order_id": order.id,
        "tenant_id": order.tenant_id,
        "branch_id": order.branch_id,
        "branch_name": order.branch.name,
        "status": order.status.value,
        "order_type": order.order_type.value,
        "token_number": order.token_number,
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "device_id": order.device_id,
        "total_amount": _money(order.total_amount),
        "created_at": _iso(order.created_at),
        "completed_at": _iso(order.completed_at),
        "completed_by": order.completed_by,
        "cancellation": {
            "requested_at": _iso(order.cancellation_requested_at),
            "requested_by": order.cancellation_requested_by,
            "expires_at": _iso(order.cancellation_expires_at),
            "previous_status": (
                order.cancellation_previous_status.value
                if order.cancellation_previous_status
                else None
            ),
            "finalized_at": _iso(order.cancellation_finalized_at),
        },
        "items": [_order_item_payload(item, order.branch_id) for item in order.items],
    }


class OrderItemInput(BaseModel):
    menu_item_id: int
    quantity: int = Field(ge=1)


class OrderCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'branch_id': 1, 'order_type': 'DINE_IN', 'customer_name': 'Sam', 'items': [{'menu_item_id': 10, 'quantity': 2}]}}}
    branch_id: int
    items: list[OrderItemInput] = Field(min_length=1)
    order_type: OrderType = OrderType.DINE_IN
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    device_id: Optional[str] = Field(default=None, min_length=6, max_length=128)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


@app.post("/api/v1/orders", tags=["Orders"])
def create_order(
    payload: OrderCreate,
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: Session = Depends(get_db),
) -> dict:
    order = orders.create_order(
        db,
        branch_id=payload.branch_id,
        lines=[orders.OrderLine(item.menu_item_id, item.quantity) for item in payload.items],
        order_type=payload.order_type,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        device_id=payload.device_id,
        tenant_id=actor.tenant_id if actor else None,
    )
    return {"data": _order_payload(order), "meta": _meta()}


@app.get("/api/v1/orders/device/{device_id}", tags=["Orders"])
def list_orders_by_device(device_id: str, db: Session = Depends(get_db)) -> dict:
    rows = orders.list_orders_by_device(db, device_id)
    return {"data": [_order_payload(order) for order in rows], "meta": _meta()}


@app.get("/api/v1/orders/{order_id}", tags=["Orders"])
def get_order(
    order_id: int,
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: Session = Depends(get_db),
) -> dict:
    order = orders.get_order(db, order_id, tenant_id=actor.tenant_id if actor else None)
    return {"data": _order_payload(order), "meta": _meta()}


@app.get("/api/v1/orders", tags=["Orders"])
def list_orders(
    branch_id: Optional[int] = Query(default=None),
    status: Optional[OrderStatus] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    cursor: Optional[int] = Query(default=None),
    actor: Actor = Depends(ADMIN_OR_MANAGER),
    db: Session = Depends(get_db),
) -> dict:
    rows, next_cursor = orders.list_orders(
        db,
        tenant_id=actor.tenant_id,
        branch_id=_branch_filter(actor, branch_id),
        status=status,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        cursor=cursor,
    )
    data = [_order_payload(order) for order in rows]
    return {"data": data, "meta": _list_meta(limit, cursor, next_cursor)}


@app.put("/api/v1/orders/{order_id}/status", tags=["Orders"])
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    actor: Actor = Depends(ADMIN_OR_MANAGER),
    db: Session = Depends(get_db),
) -> dict:
    if payload.status not in STATUS_UPDATE_TARGETS:
        raise HTTPException(status_code=400, detail="invalid status")
    order = lifecycle.update_order_status(
        db,
        order_id,
        payload.status,
        actor_id=actor.id,
        tenant_id=actor.tenant_id,
        branch_id=actor.branch_scope,
    )
    return {"data": _order_payload(orders.reload_order(db, order)), "meta": _meta()}


@app.get("/api/v1/staff/orders/active", tags=["Staff"])
def list_active_orders(
    branch_id: Optional[int] = Query(default=None),
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    rows = orders.list_active_orders(
        db, tenant_id=actor.tenant_id, branch_id=_branch_filter(actor, branch_id)
    )
    return {"data": [_order_payload(order) for order in rows], "meta": _meta()}


@app.get("/api/v1/staff/orders/status/{status}", tags=["Staff"])
def list_orders_by_status(
    status: OrderStatus,
    branch_id: Optional[int] = Query(default=None),
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    rows = orders.list_orders_by_status(
        db, status, tenant_id=actor.tenant_id, branch_id=_branch_filter(actor, branch_id)
    )
    return {"data": [_order_payload(order) for order in rows], "meta": _meta()}


@app.put("/api/v1/staff/orders/{order_id}/complete", tags=["Staff"])
def complete_order(
    order_id: int,
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    order = lifecycle.complete_order(
        db, order_id, actor_id=actor.id, tenant_id=actor.tenant_id, branch_id=actor.branch_scope
    )
    return {"data": _order_payload(orders.reload_order(db, order)), "meta": _meta()}


@app.put("/api/v1/staff/orders/{order_id}/undo-cancel", tags=["Staff"])
def undo_cancellation(
    order_id: int,
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    order = lifecycle.undo_cancellation(
        db, order_id, actor_id=actor.id, tenant_id=actor.tenant_id, branch_id=actor.branch_scope
    )
    return {"data": _order_payload(orders.reload_order(db, order)), "meta": _meta()}


@app.put("/api/v1/staff/orders/{order_id}/confirm-cancel", tags=["Staff"])
def confirm_cancellation(
    order_id: int,
    actor: Actor = Depends(ANY_STAFF),
    db: Session = Depends(get_db),
) -> dict:
    order = lifecycle.confirm_cancellation(
        db, order_id, actor_id=actor.id, tenant_id=actor.tenant_id, branch_id=actor.branch_scope
    )
    return {"data": _order_payload(orders.reload_order(db, order)), "meta": _meta()}

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.orm import Session

from cafepos.clock import utc_now
from cafepos.errors import InvalidRequestError
from cafepos.models import Branch, MenuItem, MenuItemBorrow

logger = logging.getLogger(__name__)


def sellable_filter(branch_id: int):
    granted = exists().where(
        MenuItemBorrow.menu_item_id == MenuItem.id,
        MenuItemBorrow.target_branch_id == branch_id,
    )
    return or_(
        MenuItem.branch_id == branch_id,
        granted,
        and_(MenuItem.is_transferable.is_(True), MenuItem.branch_id != branch_id),
    )


def sellable_query(branch: Branch, available_only: bool = False):
    query = select(MenuItem).where(
        MenuItem.tenant_id == branch.tenant_id,
        sellable_filter(branch.id),
    )
    if available_only:
        query = query.where(MenuItem.is_available.is_(True))
    return query


def resolve_sellable(db: Session, branch: Branch, available_only: bool = False) -> list[MenuItem]:
    query = sellable_query(branch, available_only).order_by(
        MenuItem.category, MenuItem.name, MenuItem.id
    )
    return list(db.execute(query).scalars())


def is_sellable(db: Session, menu_item_id: int, branch_id: int) -> bool:
    branch = db.get(Branch, branch_id)
    if branch is None:
        return False
    query = sellable_query(branch).where(MenuItem.id == menu_item_id)
    return db.execute(query).scalar_one_or_none() is not None


def source_branch_id(menu_item: MenuItem, selling_branch_id: int) -> Optional[int]:
    """The owning branch when the item is sold through a different one."""
    if menu_item.branch_id == selling_branch_id:
        return None
    return menu_item.branch_id


def set_transferability(
    db: Session,
    menu_item: MenuItem,
    is_transferable: bool,
    borrowed_by_branch_ids: Optional[Iterable[int]] = None,
    now: Optional[datetime] = None,
) -> MenuItem:
    """Turning the flag off drops every grant. The caller commits."""
    now = now or utc_now()
    requested = None if borrowed_by_branch_ids is None else set(borrowed_by_branch_ids)

    if not is_transferable:
        if requested:
            raise InvalidRequestError("borrow grants require the item to be transferable")
        menu_item.is_transferable = False
        menu_item.borrows.clear()
        menu_item.updated_at = now
        db.flush()
        return menu_item

    if requested is not None:
        _validate_grant_targets(db, menu_item, requested)
        menu_item.borrows.clear()
        # flush the deletes before re-inserting so the unique pair never collides
        db.flush()
        for target_branch_id in sorted(requested):
            menu_item.borrows.append(
                MenuItemBorrow(
                    target_branch_id=target_branch_id,
                    tenant_id=menu_item.tenant_id,
                    created_at=now,
                )
            )
    menu_item.is_transferable = True
    menu_item.updated_at = now
    db.flush()
    logger.info(
        "menu item %s transferable, grants=%s", menu_item.id, menu_item.borrowed_by_branch_ids
    )
    return menu_item


def tenant_branch_ids(db: Session, tenant_id: int, branch_ids: Iterable[int]) -> set[int]:
    """The subset of ``branch_ids`` that are active branches of ``tenant_id``."""
    branch_ids = set(branch_ids)
    if not branch_ids:
        return set()
    return set(
        db.execute(
            select(Branch.id).where(
                Branch.id.in_(branch_ids),
                Branch.tenant_id == tenant_id,
                Branch.is_active.is_(True),
            )
        ).scalars()
    )


def _validate_grant_targets(db: Session, menu_item: MenuItem, requested: set[int]) -> None:
    if menu_item.branch_id in requested:
        raise InvalidRequestError("a menu item cannot be granted to its owning branch")
    valid = tenant_branch_ids(db, menu_item.tenant_id, requested)
    rejected = sorted(requested - valid)
    if rejected:
        raise InvalidRequestError(
            f"invalid borrow targets (inactive or unknown branches): {rejected}"
        )

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from cafepos.clock import utc_now
from cafepos.errors import BusinessRuleError, InvalidRequestError, NotFoundError
from cafepos.menu_scope import tenant_branch_ids
from cafepos.models import Branch, Category, CategoryShare, MenuItem

logger = logging.getLogger(__name__)


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidRequestError("category name is required")
    return cleaned


def resolve_shared_branch_ids(
    db: Session, tenant_id: int, owner_branch_id: int, shared_branch_ids: Optional[Iterable[int]]
) -> list[int]:
    """Drops the owner and anything that is not an active branch of the tenant."""
    requested = set(shared_branch_ids or ()) - {owner_branch_id}
    return sorted(tenant_branch_ids(db, tenant_id, requested))


def _replace_shares(db: Session, category: Category, branch_ids: list[int], now: datetime) -> None:
    category.shares.clear()
    db.flush()
    for branch_id in branch_ids:
        category.shares.append(
            CategoryShare(branch_id=branch_id, tenant_id=category.tenant_id, created_at=now)
        )


def _ensure_unique_name(db: Session, tenant_id: int, branch_id: int, name: str) -> None:
    duplicate = db.execute(
        select(Category.id).where(
            Category.tenant_id == tenant_id,
            Category.branch_id == branch_id,
            Category.name == name,
        )
    ).first()
    if duplicate:
        raise BusinessRuleError(f"category {name!r} already exists for this branch")


def _commit(db: Session, category: Category, name: str) -> Category:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise BusinessRuleError(f"category {name!r} already exists for this branch")
    db.refresh(category)
    return category


def create_category(
    db: Session,
    tenant_id: int,
    branch_id: int,
    name: str,
    shared_branch_ids: Optional[Iterable[int]] = None,
    now: Optional[datetime] = None,
) -> Category:
    now = now or utc_now()
    name = _clean_name(name)
    branch = db.get(Branch, branch_id)
    if branch is None or branch.tenant_id != tenant_id or not branch.is_active:
        raise NotFoundError("branch not found")
    _ensure_unique_name(db, tenant_id, branch.id, name)

    category = Category(tenant_id=tenant_id, branch_id=branch.id, name=name, created_at=now)
    db.add(category)
    _replace_shares(
        db, category, resolve_shared_branch_ids(db, tenant_id, branch.id, shared_branch_ids), now
    )
    category = _commit(db, category, name)
    logger.info("category %s (%s) created for branch %s", category.id, name, branch.id)
    return category


def list_categories(db: Session, tenant_id: int, branch_id: Optional[int] = None) -> list[Category]:
    query = (
        select(Category)
        .options(selectinload(Category.shares))
        .where(Category.tenant_id == tenant_id)
    )
    if branch_id is not None:
        shared = exists().where(
            CategoryShare.category_id == Category.id,
            CategoryShare.branch_id == branch_id,
        )
        query = query.where(or_(Category.branch_id == branch_id, shared))
    return list(db.execute(query.order_by(Category.name, Category.id)).scalars())


def get_category(db: Session, category_id: int, tenant_id: int) -> Category:
    category = db.get(Category, category_id)
    if category is None or category.tenant_id != tenant_id:
        raise NotFoundError("category not found")
    return category


def update_category(
    db: Session,
    category_id: int,
    tenant_id: int,
    name: Optional[str] = None,
    shared_branch_ids: Optional[Iterable[int]] = None,
    now: Optional[datetime] = None,
) -> Category:
    """Renaming carries the new name over to menu items of the owner and every shared branch."""
    now = now or utc_now()
    category = get_category(db, category_id, tenant_id)
    previous_name = category.name
    prior_shares = set(category.shared_branch_ids)

    if shared_branch_ids is not None:
        resolved = resolve_shared_branch_ids(db, tenant_id, category.branch_id, shared_branch_ids)
        _replace_shares(db, category, resolved, now)
        prior_shares.update(resolved)

    new_name = previous_name
    if name is not None:
        new_name = _clean_name(name)
        if new_name != previous_name:
            _ensure_unique_name(db, tenant_id, category.branch_id, new_name)
            category.name = new_name
    category.updated_at = now

    if new_name != previous_name:
        affected = db.execute(
            update(MenuItem)
            .where(
                MenuItem.tenant_id == tenant_id,
                MenuItem.branch_id.in_(prior_shares | {category.branch_id}),
                MenuItem.category == previous_name,
            )
            .values(category=new_name, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        logger.info(
            "category %s renamed %r -> %r, %s menu item(s) updated",
            category.id,
            previous_name,
            new_name,
            affected,
        )
    return _commit(db, category, new_name)


def delete_category(db: Session, category_id: int, tenant_id: int) -> None:
    category = get_category(db, category_id, tenant_id)
    db.delete(category)
    db.commit()
    logger.info("category %s deleted", category_id)

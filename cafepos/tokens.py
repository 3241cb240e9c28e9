import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafepos.clock import day_start, local_date, utc_now
from cafepos.errors import TokensExhaustedError
from cafepos.models import Branch, Order, OrderStatus

logger = logging.getLogger(__name__)

TOKEN_HOLDING_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.CANCELLATION_PENDING,
)


def should_reset(last_reset: Optional[datetime], now: datetime) -> bool:
    if last_reset is None:
        return True
    return local_date(last_reset) < local_date(now)


def next_candidate(current_token: int, max_token: int, reset: bool) -> int:
    if reset:
        return 1
    return (current_token % max_token) + 1


def probe(candidate: int, max_token: int, used: set[int]) -> Optional[int]:
    """Walk forward from ``candidate`` around ``1..max_token``; None when all are used."""
    for attempt in range(max_token):
        token = (candidate - 1 + attempt) % max_token + 1
        if token not in used:
            return token
    return None


# orders created before the local midnight never hold a token
def used_tokens(db: Session, branch_id: int, now: datetime) -> set[int]:
    rows = db.execute(
        select(Order.token_number).where(
            Order.branch_id == branch_id,
            Order.status.in_(TOKEN_HOLDING_STATUSES),
            Order.token_number.is_not(None),
            Order.created_at >= day_start(now),
        )
    ).scalars()
    return set(rows)


def allocate_token(db: Session, branch_id: int, now: Optional[datetime] = None) -> Optional[int]:
    """None for branches without a token system. The caller commits."""
    now = now or utc_now()
    branch = db.execute(
        select(Branch).where(Branch.id == branch_id).with_for_update()
    ).scalar_one_or_none()
    if branch is None or not branch.has_token_system:
        return None

    max_token = branch.max_token_number
    reset = should_reset(branch.last_token_reset, now)
    candidate = next_candidate(branch.current_token, max_token, reset)
    token = probe(candidate, max_token, used_tokens(db, branch.id, now))
    if token is None:
        logger.warning("token pool exhausted for branch %s (max %s)", branch.id, max_token)
        raise TokensExhaustedError("no tokens available, all token numbers are in use")

    branch.current_token = token
    if reset:
        branch.last_token_reset = now
        logger.info("token counter reset for branch %s", branch.id)
    db.flush()
    return token

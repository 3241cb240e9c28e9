from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cafepos.config import settings
from cafepos.db import Base
from cafepos.models import Branch, MenuItem, Tenant

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(autouse=True)
def _utc_token_day(monkeypatch):
    monkeypatch.setattr(settings, "token_timezone", "UTC")


@pytest.fixture
def db():
    engine = make_engine()
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def tenant(db):
    tenant = Tenant(name="Bean There", status="ACTIVE", created_at=NOW)
    db.add(tenant)
    db.commit()
    return tenant


@pytest.fixture
def make_branch(db, tenant):
    def _make(**overrides) -> Branch:
        values = {
            "tenant_id": tenant.id,
            "name": "Main",
            "location": "1 High St",
            "is_active": True,
            "has_token_system": True,
            "max_token_number": 99,
            "current_token": 0,
            "last_token_reset": NOW,
            "created_at": NOW,
        }
        values.update(overrides)
        branch = Branch(**values)
        db.add(branch)
        db.commit()
        return branch

    return _make


@pytest.fixture
def make_menu_item(db):
    def _make(branch: Branch, **overrides) -> MenuItem:
        values = {
            "tenant_id": branch.tenant_id,
            "branch_id": branch.id,
            "name": "Espresso",
            "price": Decimal("10.00"),
            "category": "Coffee",
            "is_available": True,
            "is_transferable": False,
            "created_at": NOW,
        }
        values.update(overrides)
        menu_item = MenuItem(**values)
        db.add(menu_item)
        db.commit()
        return menu_item

    return _make

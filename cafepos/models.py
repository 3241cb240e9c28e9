import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafepos.db import Base

ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
MONEY_TYPE = Numeric(10, 2)


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    COMPLETED = "COMPLETED"
    CANCELLATION_PENDING = "CANCELLATION_PENDING"
    CANCELLED = "CANCELLED"


class OrderType(str, enum.Enum):
    DINE_IN = "DINE_IN"
    TAKEAWAY = "TAKEAWAY"


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


ORDER_STATUS_TYPE = Enum(OrderStatus, name="order_status", native_enum=False, length=32)


class Tenant(Base):
    __tablename__ = "tenant"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="ACTIVE")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Branch(Base):
    __tablename__ = "branch"
    __table_args__ = (
        CheckConstraint("max_token_number >= 1", name="branch_max_token_positive"),
        CheckConstraint(
            "current_token >= 0 AND current_token <= max_token_number",
            name="branch_current_token_range",
        ),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    has_token_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_token_number: Mapped[int] = mapped_column(Integer, nullable=False, default=99)
    current_token: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_token_reset: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class MenuItem(Base):
    __tablename__ = "menu_item"
    __table_args__ = (
        CheckConstraint("price >= 0", name="menu_item_price_non_negative"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    # owning branch; borrowing never changes it
    branch_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("branch.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
    category: Mapped[str | None] = mapped_column(Text, index=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_transferable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    branch: Mapped[Branch] = relationship(Branch)
    borrows: Mapped[list["MenuItemBorrow"]] = relationship(
        back_populates="menu_item", cascade="all, delete-orphan"
    )

    @property
    def borrowed_by_branch_ids(self) -> list[int]:
        return sorted(borrow.target_branch_id for borrow in self.borrows)


class MenuItemBorrow(Base):
    __tablename__ = "menu_item_borrow"
    __table_args__ = (
        UniqueConstraint("menu_item_id", "target_branch_id", name="menu_item_borrow_target"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_item.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_branch_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("branch.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    menu_item: Mapped[MenuItem] = relationship(back_populates="borrows")


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="order_total_non_negative"),
        Index("ix_orders_branch_status_created", "branch_id", "status", "created_at"),
        Index("ix_orders_status_cancellation_expires", "status", "cancellation_expires_at"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    # selling branch, which may differ from the owner of the items sold
    branch_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("branch.id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[OrderStatus] = mapped_column(
        ORDER_STATUS_TYPE, nullable=False, default=OrderStatus.PENDING
    )
    token_number: Mapped[int | None] = mapped_column(Integer)
    order_type: Mapped[OrderType] = mapped_column(
        Enum(OrderType, name="order_type", native_enum=False, length=16),
        nullable=False,
        default=OrderType.DINE_IN,
    )
    customer_name: Mapped[str | None] = mapped_column(Text)
    customer_phone: Mapped[str | None] = mapped_column(Text)
    device_id: Mapped[str | None] = mapped_column(Text, index=True)
    total_amount: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
    cancellation_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_requested_by: Mapped[str | None] = mapped_column(Text)
    cancellation_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_previous_status: Mapped[OrderStatus | None] = mapped_column(ORDER_STATUS_TYPE)
    cancellation_finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_by: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    branch: Mapped[Branch] = relationship(Branch)
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )


class OrderItem(Base):
    __tablename__ = "order_item"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="order_item_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_item.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # price at order time, never recomputed
    price: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")
    menu_item: Mapped[MenuItem] = relationship(MenuItem)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class Category(Base):
    __tablename__ = "category"
    __table_args__ = (
        UniqueConstraint("tenant_id", "branch_id", "name", name="category_tenant_branch_name"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True
    )
    branch_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("branch.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    branch: Mapped[Branch] = relationship(Branch)
    shares: Mapped[list["CategoryShare"]] = relationship(
        back_populates="category", cascade="all, delete-orphan"
    )

    @property
    def shared_branch_ids(self) -> list[int]:
        return sorted(share.branch_id for share in self.shares)


class CategoryShare(Base):
    __tablename__ = "category_share"
    __table_args__ = (
        UniqueConstraint("category_id", "branch_id", name="category_share_branch"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("category.id", ondelete="CASCADE"), nullable=False, index=True
    )
    branch_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("branch.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    category: Mapped[Category] = relationship(back_populates="shares")

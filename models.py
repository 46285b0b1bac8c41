"""
SQLAlchemy database models for the Sakura ordering core.
"""
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, ForeignKey, DateTime, Text,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    OWNER = "OWNER"


class BillStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    DELIVERING = "DELIVERING"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class User(Base):
    """User model for authentication and delivery defaults."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False, default="")  # empty for auto-provisioned users
    password_hash = Column(String(255), nullable=False)  # bcrypt hash (includes salt)
    full_name = Column(String(100), nullable=False, default="")
    address = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False, default="")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    role = Column(String(20), default=UserRole.CUSTOMER.value, nullable=False)

    # Relationships
    cart_items = relationship("CartItem", back_populates="user", cascade="all, delete-orphan")
    bills = relationship("Bill", back_populates="owner", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"


class FoodItem(Base):
    """Catalog entry. Prices here are live; bills keep their own copy."""
    __tablename__ = "food_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=False, default="")
    price = Column(Numeric(12, 2), nullable=False)
    category = Column(String(100), nullable=False)  # e.g. "Noodles", "Sushi", "Rice"
    image_ref = Column(String(255), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)

    # Relationships
    cart_items = relationship("CartItem", back_populates="food_item")

    def __repr__(self):
        return f"<FoodItem(id={self.id}, name='{self.name}')>"


class CartItem(Base):
    """One line of a user's active cart."""
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), ForeignKey("users.username", ondelete="CASCADE"), nullable=False)
    food_item_id = Column(Integer, ForeignKey("food_items.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False)

    # One cart line per user-food combination, never empty
    __table_args__ = (
        UniqueConstraint("username", "food_item_id", name="uq_cart_user_food"),
        CheckConstraint("quantity > 0", name="ck_cart_quantity_positive"),
        Index("ix_cart_items_username", "username"),
    )

    # Relationships
    user = relationship("User", back_populates="cart_items")
    food_item = relationship("FoodItem", back_populates="cart_items")

    def __repr__(self):
        return (
            f"<CartItem(username='{self.username}', food_item_id={self.food_item_id}, "
            f"quantity={self.quantity})>"
        )


class Bill(Base):
    """A placed order. Only status and last_updated change after creation."""
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, index=True)
    owner_username = Column(String(50), ForeignKey("users.username", ondelete="CASCADE"), nullable=False)
    bill_id = Column(Integer, nullable=False)  # sequence scoped to owner_username
    subtotal = Column(Numeric(12, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    delivery_address = Column(String(255), nullable=False, default="")
    phone = Column(String(20), nullable=False, default="")
    full_name = Column(String(100), nullable=False, default="")
    order_date = Column(DateTime, default=utcnow, nullable=False)
    last_updated = Column(DateTime, default=utcnow, nullable=False)
    status = Column(String(20), default=BillStatus.PENDING.value, nullable=False)
    notes = Column(Text, nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("owner_username", "bill_id", name="uq_bill_owner_bill_id"),
        Index("ix_bills_status", "status"),
    )

    # Relationships
    owner = relationship("User", back_populates="bills")
    items = relationship(
        "BillItem",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillItem.position",
    )

    def __repr__(self):
        return (
            f"<Bill(owner_username='{self.owner_username}', bill_id={self.bill_id}, "
            f"total_amount={self.total_amount}, status='{self.status}')>"
        )


class BillItem(Base):
    """Frozen copy of a cart line at checkout; not linked to the live catalog."""
    __tablename__ = "bill_items"

    id = Column(Integer, primary_key=True, index=True)
    bill_pk = Column(Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    food_id = Column(Integer, nullable=False)
    food_name = Column(String(200), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    # Relationships
    bill = relationship("Bill", back_populates="items")


class BillCounter(Base):
    """Last bill id handed out per user. Never decremented."""
    __tablename__ = "bill_counters"

    username = Column(String(50), ForeignKey("users.username", ondelete="CASCADE"), primary_key=True)
    last_bill_id = Column(Integer, nullable=False, default=0)


class DeviceSession(Base):
    """Single-row table holding the persisted login state of this device."""
    __tablename__ = "device_session"

    id = Column(Integer, primary_key=True)
    is_logged_in = Column(Boolean, default=False, nullable=False)
    current_username = Column(String(50), default="", nullable=False)

"""
Pydantic models exchanged between the stores and their callers.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from models import BillStatus, UserRole


class UserSession(BaseModel):
    """Who is acting. Passed explicitly into every cart and bill operation."""
    is_logged_in: bool = False
    username: str = ""

    @classmethod
    def for_user(cls, username: str) -> "UserSession":
        return cls(is_logged_in=True, username=username)

    @classmethod
    def anonymous(cls) -> "UserSession":
        return cls()

    @property
    def active(self) -> bool:
        return self.is_logged_in and bool(self.username)


class OperationResult(BaseModel):
    """Outcome of a user-facing operation with a message fit for display."""
    success: bool
    message: str

    @classmethod
    def ok(cls, message: str) -> "OperationResult":
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, message: str) -> "OperationResult":
        return cls(success=False, message=message)


class UserOut(BaseModel):
    username: str
    email: str
    full_name: str
    address: str
    phone: str
    created_at: datetime
    is_verified: bool
    role: UserRole

    class Config:
        from_attributes = True

    @property
    def created_at_ms(self) -> int:
        created_at = self.created_at
        if created_at.tzinfo is None:
            # Stored as naive UTC
            created_at = created_at.replace(tzinfo=timezone.utc)
        return int(created_at.timestamp() * 1000)


class FoodItemOut(BaseModel):
    id: int
    name: str
    description: str
    price: Decimal
    category: str
    image_ref: Optional[str] = None
    is_available: bool

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": 1,
                "name": "Ramen Tonkotsu",
                "description": "Pork bone broth ramen with chashu and a soft egg",
                "price": "85000.00",
                "category": "Noodles",
                "image_ref": "ramen",
                "is_available": True
            }
        }


class CartLine(BaseModel):
    """A cart line priced against the catalog at the time it was read."""
    food_item_id: int
    quantity: int
    food_name: str = ""
    unit_price: Decimal = Decimal("0")
    line_total: Decimal = Decimal("0")


class BillLineItem(BaseModel):
    food_id: int
    food_name: str
    unit_price: Decimal
    quantity: int

    class Config:
        from_attributes = True

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class BillOut(BaseModel):
    bill_id: int
    owner_username: str
    items: List[BillLineItem]
    subtotal: Decimal
    total_amount: Decimal
    delivery_address: str
    phone: str
    full_name: str
    order_date: datetime
    last_updated: datetime
    status: BillStatus
    notes: str = ""

    class Config:
        from_attributes = True

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


# ============================================================================
# API REQUEST BODIES
# ============================================================================

class SignupRequest(BaseModel):
    username: str
    email: str
    password: str
    full_name: str
    phone: str


class LoginRequest(BaseModel):
    username_or_email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str
    role: UserRole


class ProfileUpdate(BaseModel):
    full_name: str
    address: str
    phone: str


class CartAddRequest(BaseModel):
    food_item_id: int
    quantity: int = Field(default=1)


class CartQuantityUpdate(BaseModel):
    quantity: int


class MenuItemUpdate(BaseModel):
    price: Optional[Decimal] = Field(default=None, gt=0)
    is_available: Optional[bool] = None


class CartResponse(BaseModel):
    lines: List[CartLine]
    item_count: int
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal


class CheckoutRequest(BaseModel):
    notes: str = ""


class CheckoutResponse(BaseModel):
    success: bool
    message: str
    bill: Optional[BillOut] = None

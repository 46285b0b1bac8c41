"""
Sakura Ordering API - FastAPI surface over the user, cart and bill stores

SETUP INSTRUCTIONS:
==================

1. Create a virtual environment (optional but recommended):
   python -m venv venv
   source venv/bin/activate  # On Windows: venv\\Scripts\\activate

2. Install the project:
   pip install -e .

3. Run the server:
   uvicorn app:app --reload

   The API will be available at: http://localhost:8000
   API documentation (Swagger UI): http://localhost:8000/docs

4. Configuration comes from environment variables or a .env file:
   DATABASE_URL, JWT_SECRET_KEY, OWNER_USERNAME, OWNER_PASSWORD, CORS_ORIGINS

ARCHITECTURE:
=============
- Stores are plain objects built once per app and shared by the routes
- Every request carries its own session in a bearer token
- Stores never raise; routes translate False/None into HTTP errors
"""

import os
from decimal import Decimal
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Depends
from fastapi.middleware.cors import CORSMiddleware

from auth import create_access_token, session_dependency
from bill_store import BillStore, parse_status
from cart_store import CartStore
from catalog import Catalog
from checkout import CheckoutService
from database import SessionLocal, init_db
from logger import configure_logging
from models import utcnow
from pricing import calculate_delivery_fee, subtotal as cart_subtotal
from schemas import (
    BillOut, CartAddRequest, CartQuantityUpdate, CartResponse, CheckoutRequest,
    CheckoutResponse, FoodItemOut, LoginRequest, MenuItemUpdate, OperationResult, ProfileUpdate,
    SignupRequest, TokenResponse, UserOut, UserSession,
)
from user_store import UserStore
from validation import validate_quantity

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]


def create_app(session_factory=SessionLocal, clock=None) -> FastAPI:
    """Build the API around stores that share ``session_factory``."""
    catalog = Catalog(session_factory)
    users = UserStore(session_factory)
    carts = CartStore(session_factory)
    bills = BillStore(session_factory, clock=clock or utcnow)
    checkout_service = CheckoutService(users, carts, bills)
    current_session = session_dependency(users)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        init_db(bind=session_factory.kw["bind"], session_factory=session_factory)
        yield

    app = FastAPI(
        title="Sakura Ordering API",
        description="Menu, cart and order history for Sakura Restaurant",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    def require_owner(session: UserSession = Depends(current_session)) -> UserSession:
        if not users.is_owner(session):
            raise HTTPException(status_code=403, detail="Owner access required")
        return session

    def cart_response(session: UserSession) -> CartResponse:
        lines = carts.get_cart_lines(session)
        subtotal = cart_subtotal(lines)
        delivery_fee = calculate_delivery_fee(subtotal) if lines else Decimal("0")
        return CartResponse(
            lines=lines,
            item_count=sum(line.quantity for line in lines),
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            total=subtotal + delivery_fee,
        )

    # ========================================================================
    # AUTH / PROFILE
    # ========================================================================

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "message": "Welcome to Sakura Ordering API",
            "version": "1.0.0",
            "docs": "/docs",
        }

    @app.post("/api/auth/signup", response_model=OperationResult, status_code=201)
    def signup(body: SignupRequest):
        """
        Register a customer account.

        Raises:
        - 400 with the validation or duplicate message
        """
        result = users.register(body.username, body.email, body.password, body.full_name, body.phone)
        if not result.success:
            raise HTTPException(status_code=400, detail=result.message)
        return result

    @app.post("/api/auth/login", response_model=TokenResponse)
    def login(body: LoginRequest):
        """Exchange a username (or email) and password for a bearer token."""
        result, user = users.authenticate(body.username_or_email, body.password)
        if not result.success:
            raise HTTPException(status_code=401, detail=result.message)
        return TokenResponse(
            access_token=create_access_token(user.username, user.role.value),
            username=user.username,
            role=user.role,
        )

    @app.get("/api/me", response_model=UserOut)
    def me(session: UserSession = Depends(current_session)):
        user = users.get_user(session.username)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return user

    @app.put("/api/me", response_model=UserOut)
    def update_me(body: ProfileUpdate, session: UserSession = Depends(current_session)):
        if not users.update_user_info(body.full_name, body.address, body.phone, session=session):
            raise HTTPException(status_code=400, detail="Invalid full name or phone number")
        return users.get_user(session.username)

    # ========================================================================
    # MENU
    # ========================================================================

    @app.get("/api/menu", response_model=List[FoodItemOut])
    def get_menu(
        category: Optional[str] = Query(None, description="Filter by menu category"),
        available_only: bool = Query(False, description="Only return dishes that can be ordered"),
    ):
        return catalog.list_food_items(category=category, available_only=available_only)

    @app.get("/api/menu/categories", response_model=List[str])
    def get_categories():
        return catalog.list_categories()

    @app.get("/api/menu/{food_id}", response_model=FoodItemOut)
    def get_food_item(food_id: int):
        item = catalog.get_food_item(food_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Food item not found")
        return item

    # ========================================================================
    # CART
    # ========================================================================

    @app.get("/api/cart", response_model=CartResponse)
    def get_cart(session: UserSession = Depends(current_session)):
        return cart_response(session)

    @app.post("/api/cart", response_model=CartResponse)
    def add_to_cart(item: CartAddRequest, session: UserSession = Depends(current_session)):
        """
        Add a dish to the cart.

        Raises:
        - 400 if quantity is invalid
        - 404 if the dish does not exist
        - 400 if the dish is currently not available
        """
        check = validate_quantity(item.quantity)
        if not check.valid:
            raise HTTPException(status_code=400, detail=check.message)

        food = catalog.get_food_item(item.food_item_id)
        if food is None:
            raise HTTPException(status_code=404, detail="Food item not found")
        if not food.is_available:
            raise HTTPException(status_code=400, detail=f"'{food.name}' is currently not available")

        if not carts.add_to_cart(session, item.food_item_id, item.quantity):
            raise HTTPException(status_code=400, detail="Could not add item to cart")
        return cart_response(session)

    @app.put("/api/cart/{food_id}", response_model=CartResponse)
    def update_cart_line(food_id: int, body: CartQuantityUpdate,
                         session: UserSession = Depends(current_session)):
        if body.quantity > 0 and not carts.contains(session, food_id):
            raise HTTPException(status_code=404, detail="Item is not in the cart")
        if not carts.update_quantity(session, food_id, body.quantity):
            raise HTTPException(status_code=400, detail="Could not update cart")
        return cart_response(session)

    @app.delete("/api/cart/{food_id}", response_model=CartResponse)
    def remove_cart_line(food_id: int, session: UserSession = Depends(current_session)):
        carts.remove_from_cart(session, food_id)
        return cart_response(session)

    @app.delete("/api/cart", response_model=CartResponse)
    def clear_cart(session: UserSession = Depends(current_session)):
        carts.clear_cart(session)
        return cart_response(session)

    # ========================================================================
    # ORDERS
    # ========================================================================

    @app.post("/api/checkout", response_model=CheckoutResponse)
    def place_order(body: CheckoutRequest, session: UserSession = Depends(current_session)):
        result, bill = checkout_service.checkout(session, notes=body.notes)
        if not result.success:
            raise HTTPException(status_code=400, detail=result.message)
        return CheckoutResponse(success=True, message=result.message, bill=bill)

    @app.get("/api/bills", response_model=List[BillOut])
    def list_bills(session: UserSession = Depends(current_session)):
        return bills.get_bills_for_current_user(session)

    @app.get("/api/bills/{bill_id}", response_model=BillOut)
    def get_bill(bill_id: int, session: UserSession = Depends(current_session)):
        bill = bills.get_bill_by_id(session, bill_id)
        if bill is None:
            raise HTTPException(status_code=404, detail="Bill not found")
        return bill

    @app.post("/api/bills/{bill_id}/cancel", response_model=BillOut)
    def cancel_bill(bill_id: int, session: UserSession = Depends(current_session)):
        if bills.get_bill_by_id(session, bill_id) is None:
            raise HTTPException(status_code=404, detail="Bill not found")
        if not bills.cancel_bill(session, bill_id):
            raise HTTPException(status_code=400, detail="Only pending orders can be cancelled")
        return bills.get_bill_by_id(session, bill_id)

    # ========================================================================
    # OWNER
    # ========================================================================

    @app.get("/api/owner/orders", response_model=List[BillOut])
    def owner_orders(
        status: Optional[str] = Query(None, description="Filter by order status"),
        _: UserSession = Depends(require_owner),
    ):
        if status is None:
            return bills.get_all_bills_from_all_users()
        if parse_status(status) is None:
            raise HTTPException(status_code=400, detail=f"Unknown status '{status}'")
        return bills.get_all_orders_by_status(status)

    @app.post("/api/owner/orders/{username}/{bill_id}/advance", response_model=BillOut)
    def owner_advance_order(username: str, bill_id: int, _: UserSession = Depends(require_owner)):
        if bills.advance_bill_status(username, bill_id) is None:
            raise HTTPException(status_code=400, detail="Order cannot be advanced")
        return next(b for b in bills.get_bills_by_username(username) if b.bill_id == bill_id)

    @app.get("/api/owner/customers", response_model=List[UserOut])
    def owner_customers(_: UserSession = Depends(require_owner)):
        return users.list_customers()

    @app.put("/api/owner/menu/{food_id}", response_model=FoodItemOut)
    def owner_update_menu_item(food_id: int, body: MenuItemUpdate,
                               _: UserSession = Depends(require_owner)):
        """
        Change a dish's price and/or availability.

        Carts pick up the new price on their next read; placed bills keep theirs.
        """
        if catalog.get_food_item(food_id) is None:
            raise HTTPException(status_code=404, detail="Food item not found")
        if body.price is not None and not catalog.update_price(food_id, body.price):
            raise HTTPException(status_code=400, detail="Could not update price")
        if body.is_available is not None and not catalog.set_availability(food_id, body.is_available):
            raise HTTPException(status_code=400, detail="Could not update availability")
        return catalog.get_food_item(food_id)

    return app


app = create_app()


# ============================================================================
# RUN THE APPLICATION
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

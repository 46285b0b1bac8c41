"""
Checkout: price the cart, store it as a bill, then empty the cart.
"""
import logging
from typing import Optional, Tuple

from bill_store import BillStore
from cart_store import CartStore
from pricing import calculate_total, subtotal as cart_subtotal
from schemas import BillOut, OperationResult, UserSession
from user_store import UserStore
from validation import validate_address

logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(self, users: UserStore, carts: CartStore, bills: BillStore):
        self.users = users
        self.carts = carts
        self.bills = bills

    def checkout(self, session: UserSession, notes: str = "") -> Tuple[OperationResult, Optional[BillOut]]:
        if not session.active:
            return OperationResult.fail("Please log in to place an order"), None

        user = self.users.get_user(session.username)
        if user is None:
            return OperationResult.fail("Account not found"), None

        lines = self.carts.get_cart_lines(session)
        if not lines:
            return OperationResult.fail("Cart is empty"), None

        address_check = validate_address(user.address)
        if not address_check.valid:
            return OperationResult.fail(address_check.message), None

        subtotal = cart_subtotal(lines)
        total = calculate_total(subtotal)

        bill = self.bills.create_bill(
            session,
            user.username,
            lines,
            total,
            user.address,
            user.phone,
            user.full_name,
            notes=notes,
        )
        if bill is None:
            return OperationResult.fail("Could not place the order, please try again"), None

        if not self.carts.clear_cart(session):
            # Bill is already stored, so the order still counts as placed
            logger.error("Bill #%d created but cart of '%s' was not cleared", bill.bill_id, session.username)

        return OperationResult.ok(f"Order #{bill.bill_id} placed successfully!"), bill

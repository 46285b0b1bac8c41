"""
Cart Store: the in-progress selection of the acting user.

Every query is scoped by ``session.username``; nothing is cached between
calls, so switching users can never expose another user's lines.
"""
import logging
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError

from models import CartItem, FoodItem
from pricing import line_total
from schemas import CartLine, UserSession

logger = logging.getLogger(__name__)


class CartStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_to_cart(self, session: UserSession, food_item_id: int, quantity: int = 1) -> bool:
        """Add ``quantity`` of an item, merging into an existing line."""
        if not self._require_session(session, "add to cart"):
            return False
        if quantity <= 0:
            logger.warning("Ignoring add of non-positive quantity %s for item %s", quantity, food_item_id)
            return False

        with self._session_factory() as db:
            try:
                food = db.get(FoodItem, food_item_id)
                if food is None:
                    logger.warning("Food item %s not found, cannot add to cart", food_item_id)
                    return False
                if not food.is_available:
                    logger.warning("Food item %s is not available", food_item_id)
                    return False

                line = self._find_line(db, session.username, food_item_id)
                if line is None:
                    db.add(CartItem(username=session.username, food_item_id=food_item_id, quantity=quantity))
                else:
                    line.quantity += quantity
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error adding item %s to cart of '%s'", food_item_id, session.username)
                return False

        logger.debug("Added %d x item %s for '%s'", quantity, food_item_id, session.username)
        return True

    def remove_from_cart(self, session: UserSession, food_item_id: int) -> bool:
        """Drop the line for an item. Removing a missing line is not an error."""
        if not self._require_session(session, "remove from cart"):
            return False

        with self._session_factory() as db:
            try:
                (
                    db.query(CartItem)
                    .filter(CartItem.username == session.username, CartItem.food_item_id == food_item_id)
                    .delete(synchronize_session=False)
                )
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error removing item %s from cart of '%s'", food_item_id, session.username)
                return False
        return True

    def update_quantity(self, session: UserSession, food_item_id: int, new_quantity: int) -> bool:
        """Set a line's quantity outright; zero or less removes the line."""
        if new_quantity <= 0:
            return self.remove_from_cart(session, food_item_id)
        if not self._require_session(session, "update quantity"):
            return False

        with self._session_factory() as db:
            try:
                line = self._find_line(db, session.username, food_item_id)
                if line is None:
                    logger.warning("Item %s is not in the cart of '%s'", food_item_id, session.username)
                    return False
                line.quantity = new_quantity
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error updating quantity of item %s for '%s'", food_item_id, session.username)
                return False
        return True

    def clear_cart(self, session: UserSession) -> bool:
        if not self._require_session(session, "clear cart"):
            return False

        with self._session_factory() as db:
            try:
                db.query(CartItem).filter(CartItem.username == session.username).delete(
                    synchronize_session=False
                )
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error clearing cart of '%s'", session.username)
                return False

        logger.debug("Cleared cart for '%s'", session.username)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_cart_lines(self, session: UserSession) -> List[CartLine]:
        """Fresh copies of the user's lines, priced at current catalog prices."""
        if not self._require_session(session, "read cart"):
            return []

        with self._session_factory() as db:
            try:
                rows = (
                    db.query(CartItem, FoodItem)
                    .join(FoodItem, CartItem.food_item_id == FoodItem.id)
                    .filter(CartItem.username == session.username)
                    .order_by(CartItem.id)
                    .all()
                )
            except SQLAlchemyError:
                logger.exception("Error loading cart of '%s'", session.username)
                return []
            return [self._to_line(item, food) for item, food in rows]

    def get_line(self, session: UserSession, food_item_id: int) -> Optional[CartLine]:
        for line in self.get_cart_lines(session):
            if line.food_item_id == food_item_id:
                return line
        return None

    def contains(self, session: UserSession, food_item_id: int) -> bool:
        return self.get_line(session, food_item_id) is not None

    def get_item_count(self, session: UserSession) -> int:
        """Total number of portions, not the number of distinct lines."""
        return sum(line.quantity for line in self.get_cart_lines(session))

    def get_total_price(self, session: UserSession) -> Decimal:
        return sum((line.line_total for line in self.get_cart_lines(session)), Decimal("0"))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_session(session: Optional[UserSession], action: str) -> bool:
        if session is None or not session.active:
            logger.warning("No user logged in, cannot %s", action)
            return False
        return True

    @staticmethod
    def _find_line(db, username: str, food_item_id: int) -> Optional[CartItem]:
        return (
            db.query(CartItem)
            .filter(CartItem.username == username, CartItem.food_item_id == food_item_id)
            .first()
        )

    @staticmethod
    def _to_line(item: CartItem, food: FoodItem) -> CartLine:
        unit_price = Decimal(food.price)
        return CartLine(
            food_item_id=item.food_item_id,
            quantity=item.quantity,
            food_name=food.name,
            unit_price=unit_price,
            line_total=line_total(unit_price, item.quantity),
        )

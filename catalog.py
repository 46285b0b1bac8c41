"""
Menu catalog backed by the food_items table.

The cart and bill stores only ever read from it; price and availability
edits belong to the owner's menu screens.
"""
import logging
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError

from models import FoodItem
from schemas import FoodItemOut

logger = logging.getLogger(__name__)

DEFAULT_MENU = [
    dict(id=1, name="Ramen Tonkotsu",
         description="Traditional ramen in rich pork bone broth with chashu and a soft egg",
         price=Decimal("85000"), category="Noodles", image_ref="ramen", is_available=True),
    dict(id=2, name="Sushi Set",
         description="Fresh salmon, tuna, shrimp and tamago sushi",
         price=Decimal("120000"), category="Sushi", image_ref="sushi", is_available=True),
    dict(id=3, name="Udon Tempura",
         description="Udon noodles with crispy shrimp tempura in dashi broth",
         price=Decimal("75000"), category="Noodles", image_ref="udon", is_available=True),
    dict(id=4, name="Bento Box",
         description="Rice, grilled meat, tempura and pickles",
         price=Decimal("95000"), category="Rice", image_ref="bento", is_available=True),
    dict(id=5, name="Cơm Gà Teriyaki",
         description="Steamed rice with teriyaki chicken and vegetables",
         price=Decimal("68000"), category="Rice", image_ref="comga", is_available=True),
    dict(id=6, name="Cơm Lươn Nhật",
         description="Rice with kabayaki grilled eel and unagi sauce",
         price=Decimal("110000"), category="Rice", image_ref="comluon", is_available=False),
    dict(id=7, name="Mandu Gyoza",
         description="Pan-fried dumplings with pork and vegetables",
         price=Decimal("45000"), category="Appetizer", image_ref="mandu", is_available=True),
]


class Catalog:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def seed_defaults(self) -> int:
        """Insert the default menu into an empty catalog. Returns rows added."""
        with self._session_factory() as db:
            if db.query(FoodItem).count() > 0:
                return 0
            db.add_all(FoodItem(**row) for row in DEFAULT_MENU)
            db.commit()
            logger.info("Seeded %d default menu items", len(DEFAULT_MENU))
            return len(DEFAULT_MENU)

    def get_food_item(self, food_item_id: int) -> Optional[FoodItemOut]:
        with self._session_factory() as db:
            item = db.get(FoodItem, food_item_id)
            return FoodItemOut.model_validate(item) if item else None

    def list_food_items(self, category: Optional[str] = None,
                        available_only: bool = False) -> List[FoodItemOut]:
        with self._session_factory() as db:
            query = db.query(FoodItem)
            if category:
                query = query.filter(FoodItem.category == category)
            if available_only:
                query = query.filter(FoodItem.is_available.is_(True))
            return [FoodItemOut.model_validate(item) for item in query.order_by(FoodItem.id)]

    def list_categories(self) -> List[str]:
        with self._session_factory() as db:
            rows = db.query(FoodItem.category).distinct().order_by(FoodItem.category)
            return [category for (category,) in rows]

    def update_price(self, food_item_id: int, price: Decimal) -> bool:
        return self._update(food_item_id, price=Decimal(price))

    def set_availability(self, food_item_id: int, available: bool) -> bool:
        return self._update(food_item_id, is_available=available)

    def _update(self, food_item_id: int, **fields) -> bool:
        with self._session_factory() as db:
            try:
                item = db.get(FoodItem, food_item_id)
                if item is None:
                    logger.warning("Food item %s not found", food_item_id)
                    return False
                for name, value in fields.items():
                    setattr(item, name, value)
                db.commit()
                return True
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error updating food item %s", food_item_id)
                return False

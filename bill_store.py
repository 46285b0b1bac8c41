"""
Bill Store: turns a cart snapshot into a stored order and tracks its status.

Status chain::

    PENDING -> CONFIRMED -> PREPARING -> READY -> DELIVERING -> DELIVERED
    PENDING -> CANCELLED

An order that is still open 45 minutes after it was placed counts as
delivered. ``is_past_auto_delivery`` is the pure check; the store applies the
transition whenever it reads bills, and through ``get_current_status``.
"""
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, List, Optional, Sequence, Union
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import Bill, BillCounter, BillItem, BillStatus, FoodItem, utcnow
from pricing import line_total, to_money
from schemas import BillOut, CartLine, UserSession

logger = logging.getLogger(__name__)

AUTO_DELIVERY_DELAY = timedelta(minutes=45)

TERMINAL_STATUSES = frozenset({BillStatus.DELIVERED, BillStatus.CANCELLED})

_NEXT_STATUS = {
    BillStatus.PENDING: BillStatus.CONFIRMED,
    BillStatus.CONFIRMED: BillStatus.PREPARING,
    BillStatus.PREPARING: BillStatus.READY,
    BillStatus.READY: BillStatus.DELIVERING,
    BillStatus.DELIVERING: BillStatus.DELIVERED,
}

StatusLike = Union[BillStatus, str]


def parse_status(value: StatusLike) -> Optional[BillStatus]:
    try:
        return BillStatus(value)
    except ValueError:
        return None


def is_terminal(status: StatusLike) -> bool:
    return BillStatus(status) in TERMINAL_STATUSES


def next_status(status: StatusLike) -> Optional[BillStatus]:
    return _NEXT_STATUS.get(BillStatus(status))


def can_cancel(bill) -> bool:
    return BillStatus(bill.status) == BillStatus.PENDING


def is_past_auto_delivery(bill, now: datetime) -> bool:
    """True when an open order is old enough to be considered delivered."""
    if is_terminal(bill.status):
        return False
    return now - bill.order_date >= AUTO_DELIVERY_DELAY


class BillStore:
    def __init__(self, session_factory, clock: Callable[[], datetime] = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_bill(self, session: UserSession, customer_username: str,
                    cart_lines: Sequence[CartLine], total_amount,
                    delivery_address: str, phone: str, full_name: str,
                    notes: str = "") -> Optional[BillOut]:
        """
        Store a new PENDING bill for the acting user.

        Names and prices are copied from the catalog now and never looked up
        again. ``total_amount`` is stored as given (it may include the
        delivery fee) but may not be below the sum of the lines.
        """
        if not self._require_session(session, "create bill"):
            return None
        if customer_username != session.username:
            logger.warning(
                "Bill for '%s' requested while '%s' is logged in", customer_username, session.username
            )
            return None
        if not cart_lines:
            logger.warning("Cart is empty, cannot create bill for '%s'", session.username)
            return None

        try:
            total = to_money(total_amount)
            if not total.is_finite():
                raise InvalidOperation
        except (InvalidOperation, TypeError, ValueError):
            logger.warning("Invalid bill total %r for '%s'", total_amount, session.username)
            return None

        now = self._clock()
        with self._session_factory() as db:
            try:
                items = []
                for position, line in enumerate(cart_lines):
                    if line.quantity <= 0:
                        logger.warning("Skipping bill creation: non-positive quantity for item %s",
                                       line.food_item_id)
                        return None
                    food = db.get(FoodItem, line.food_item_id)
                    if food is None:
                        logger.warning("Food item %s not found, cannot create bill", line.food_item_id)
                        return None
                    items.append(BillItem(
                        position=position,
                        food_id=food.id,
                        food_name=food.name,
                        unit_price=Decimal(food.price),
                        quantity=line.quantity,
                    ))

                subtotal = sum((line_total(i.unit_price, i.quantity) for i in items), Decimal("0"))
                if total < subtotal:
                    logger.warning("Total %s is below the item subtotal %s", total, subtotal)
                    return None

                bill = Bill(
                    owner_username=session.username,
                    bill_id=self._next_bill_id(db, session.username),
                    subtotal=subtotal,
                    total_amount=total,
                    delivery_address=delivery_address or "",
                    phone=phone or "",
                    full_name=full_name or "",
                    order_date=now,
                    last_updated=now,
                    status=BillStatus.PENDING.value,
                    notes=notes or "",
                    items=items,
                )
                db.add(bill)
                db.commit()
                db.refresh(bill)
                logger.info("Created bill #%d for '%s' with %d items, total %s",
                            bill.bill_id, session.username, len(items), total)
                return BillOut.model_validate(bill)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error creating bill for '%s'", session.username)
                return None

    # ------------------------------------------------------------------
    # Current user's bills
    # ------------------------------------------------------------------

    def get_bills_for_current_user(self, session: UserSession) -> List[BillOut]:
        if not self._require_session(session, "read bills"):
            return []
        return self._load(Bill.owner_username == session.username)

    def get_bill_by_id(self, session: UserSession, bill_id: int) -> Optional[BillOut]:
        if not self._require_session(session, "read bill"):
            return None
        bills = self._load(Bill.owner_username == session.username, Bill.bill_id == bill_id)
        return bills[0] if bills else None

    def get_bills_by_status(self, session: UserSession, status: StatusLike) -> List[BillOut]:
        return [b for b in self.get_bills_for_current_user(session) if b.status == parse_status(status)]

    def get_current_status(self, session: UserSession, bill_id: int) -> Optional[BillStatus]:
        """Status after applying the auto-delivery rule."""
        bill = self.get_bill_by_id(session, bill_id)
        return bill.status if bill else None

    def get_total_order_count(self, session: UserSession) -> int:
        return len(self.get_bills_for_current_user(session))

    def get_total_spending(self, session: UserSession) -> Decimal:
        return _sum_totals(self.get_bills_for_current_user(session))

    def update_bill_status(self, session: UserSession, bill_id: int, new_status: StatusLike) -> bool:
        """Set the status of one of the acting user's bills."""
        if not self._require_session(session, "update bill status"):
            return False
        return self._set_status(session.username, bill_id, new_status)

    def cancel_bill(self, session: UserSession, bill_id: int) -> bool:
        """Cancel a bill of the acting user; only PENDING bills can be cancelled."""
        bill = self.get_bill_by_id(session, bill_id)
        if bill is None:
            logger.warning("Bill #%s not found for cancellation", bill_id)
            return False
        if not can_cancel(bill):
            logger.warning("Bill #%s is %s and can no longer be cancelled", bill_id, bill.status.value)
            return False
        return self._set_status(session.username, bill_id, BillStatus.CANCELLED)

    def clear_bills_for_current_user(self, session: UserSession) -> bool:
        """Debug helper. The bill id counter is left untouched."""
        if not self._require_session(session, "clear bills"):
            return False

        with self._session_factory() as db:
            try:
                for bill in db.query(Bill).filter(Bill.owner_username == session.username):
                    db.delete(bill)
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error clearing bills of '%s'", session.username)
                return False

        logger.info("Cleared bills for '%s'", session.username)
        return True

    # ------------------------------------------------------------------
    # Cross-user reads (owner views)
    # ------------------------------------------------------------------

    def get_bills_by_username(self, username: str) -> List[BillOut]:
        return self._load(Bill.owner_username == username)

    def get_bills_by_username_and_status(self, username: str, status: StatusLike) -> List[BillOut]:
        return [b for b in self.get_bills_by_username(username) if b.status == parse_status(status)]

    def get_bill_count_by_username(self, username: str) -> int:
        return len(self.get_bills_by_username(username))

    def get_total_spent_by_username(self, username: str) -> Decimal:
        return _sum_totals(self.get_bills_by_username(username))

    def get_all_bills_from_all_users(self) -> List[BillOut]:
        """Every bill in the store, newest first."""
        bills = self._load()
        bills.sort(key=lambda b: b.order_date, reverse=True)
        return bills

    def get_all_orders_by_status(self, status: StatusLike) -> List[BillOut]:
        return [b for b in self.get_all_bills_from_all_users() if b.status == parse_status(status)]

    def get_order_count_by_status(self, status: StatusLike) -> int:
        return len(self.get_all_orders_by_status(status))

    def get_total_revenue(self) -> Decimal:
        return _sum_totals(
            b for b in self.get_all_bills_from_all_users() if b.status != BillStatus.CANCELLED
        )

    def get_daily_revenue(self, day: Optional[date] = None) -> Decimal:
        day = day or self._clock().date()
        return _sum_totals(
            b for b in self.get_all_bills_from_all_users()
            if b.status != BillStatus.CANCELLED and b.order_date.date() == day
        )

    def update_bill_status_for_owner(self, username: str, bill_id: int, new_status: StatusLike) -> bool:
        """Owner-side status change on any user's bill."""
        return self._set_status(username, bill_id, new_status)

    def advance_bill_status(self, username: str, bill_id: int) -> Optional[BillStatus]:
        """Move a bill one step along the chain. Returns the new status."""
        bills = self._load(Bill.owner_username == username, Bill.bill_id == bill_id)
        if not bills:
            logger.warning("Bill #%s of '%s' not found", bill_id, username)
            return None
        target = next_status(bills[0].status)
        if target is None:
            logger.warning("Bill #%s of '%s' is already %s", bill_id, username, bills[0].status.value)
            return None
        return target if self._set_status(username, bill_id, target) else None

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
    def _next_bill_id(db, username: str) -> int:
        """
        Next id from the user's counter.

        Also stays above any id already stored, in case bills were written
        without going through the counter.
        """
        counter = db.get(BillCounter, username)
        if counter is None:
            counter = BillCounter(username=username, last_bill_id=0)
            db.add(counter)
        stored_max = (
            db.query(func.max(Bill.bill_id)).filter(Bill.owner_username == username).scalar() or 0
        )
        counter.last_bill_id = max(counter.last_bill_id, stored_max) + 1
        return counter.last_bill_id

    def _apply_auto_delivery(self, bills: Iterable[Bill], now: datetime) -> int:
        changed = 0
        for bill in bills:
            if is_past_auto_delivery(bill, now):
                bill.status = BillStatus.DELIVERED.value
                bill.last_updated = now
                changed += 1
        return changed

    def _load(self, *criteria) -> List[BillOut]:
        """Query bills, settle overdue ones, and return detached copies."""
        with self._session_factory() as db:
            try:
                bills = (
                    db.query(Bill)
                    .filter(*criteria)
                    .order_by(Bill.owner_username, Bill.bill_id)
                    .all()
                )
                changed = self._apply_auto_delivery(bills, self._clock())
                if changed:
                    db.commit()
                    logger.info("Marked %d overdue bill(s) as delivered", changed)
                return [BillOut.model_validate(bill) for bill in bills]
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error loading bills")
                return []

    def _set_status(self, username: str, bill_id: int, new_status: StatusLike) -> bool:
        status = parse_status(new_status)
        if status is None:
            logger.warning("Unknown bill status %r", new_status)
            return False

        now = self._clock()
        with self._session_factory() as db:
            try:
                bill = (
                    db.query(Bill)
                    .filter(Bill.owner_username == username, Bill.bill_id == bill_id)
                    .first()
                )
                if bill is None:
                    logger.warning("Bill #%s not found for status update", bill_id)
                    return False
                self._apply_auto_delivery([bill], now)
                if is_terminal(bill.status):
                    # Settle any auto-delivery before refusing
                    db.commit()
                    logger.warning("Bill #%s is already %s", bill_id, bill.status)
                    return False
                bill.status = status.value
                bill.last_updated = now
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error updating status of bill #%s", bill_id)
                return False

        logger.info("Bill #%s of '%s' is now %s", bill_id, username, status.value)
        return True


def _sum_totals(bills: Iterable[BillOut]) -> Decimal:
    return sum((b.total_amount for b in bills), Decimal("0"))

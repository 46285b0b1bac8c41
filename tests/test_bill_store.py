"""
Tests for the bill store: creation, price snapshots, ids and status rules.
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from bill_store import (
    AUTO_DELIVERY_DELAY, can_cancel, is_past_auto_delivery, next_status,
)
from models import Base, BillStatus
from schemas import UserSession


@pytest.fixture
def alice(login, carts):
    session = login("alice")
    carts.add_to_cart(session, 1, 2)
    carts.add_to_cart(session, 3, 1)
    return session


def place_bill(bills, carts, session, total="260000"):
    return bills.create_bill(
        session,
        session.username,
        carts.get_cart_lines(session),
        Decimal(total),
        "12 Le Loi, District 1",
        "0901234567",
        "Alice Nguyen",
    )


def test_create_bill_snapshots_cart(bills, carts, alice, clock):
    bill = place_bill(bills, carts, alice)

    assert bill is not None
    assert len(bill.items) == 2
    assert bill.total_amount == Decimal("260000")
    assert bill.subtotal == Decimal("245000")
    assert bill.status == BillStatus.PENDING
    assert bill.order_date == clock.now
    assert bill.last_updated == clock.now
    assert [(i.food_id, i.food_name, i.quantity) for i in bill.items] == [
        (1, "Ramen Tonkotsu", 2),
        (3, "Udon Tempura", 1),
    ]
    assert bill.item_count == 3


def test_price_change_does_not_touch_existing_bill(bills, carts, catalog, alice):
    bill = place_bill(bills, carts, alice)

    catalog.update_price(1, Decimal("99000"))

    stored = bills.get_bill_by_id(alice, bill.bill_id)
    assert stored.total_amount == Decimal("260000")
    assert stored.items[0].unit_price == Decimal("85000")
    assert stored.items[0].line_total == Decimal("170000")


def test_bill_ids_increase_per_user_and_survive_clearing(bills, carts, alice, login):
    first = place_bill(bills, carts, alice)
    second = place_bill(bills, carts, alice)
    assert bills.clear_bills_for_current_user(alice)
    third = place_bill(bills, carts, alice)

    assert [first.bill_id, second.bill_id, third.bill_id] == [1, 2, 3]
    assert [b.bill_id for b in bills.get_bills_for_current_user(alice)] == [3]

    bob = login("bob")
    carts.add_to_cart(bob, 2, 1)
    assert place_bill(bills, carts, bob, total="135000").bill_id == 1


def test_pending_bill_is_delivered_after_delay(bills, carts, alice, clock):
    bill = place_bill(bills, carts, alice)

    clock.advance(minutes=46)

    assert bills.get_current_status(alice, bill.bill_id) == BillStatus.DELIVERED
    stored = bills.get_bill_by_id(alice, bill.bill_id)
    assert stored.status == BillStatus.DELIVERED
    assert stored.last_updated == clock.now
    assert stored.order_date == clock.now - timedelta(minutes=46)


def test_recent_bill_stays_pending(bills, carts, alice, clock):
    bill = place_bill(bills, carts, alice)

    clock.advance(minutes=44)

    assert bills.get_current_status(alice, bill.bill_id) == BillStatus.PENDING


def test_auto_delivery_predicate_is_pure(bills, carts, alice, clock):
    bill = place_bill(bills, carts, alice)
    later = clock.now + AUTO_DELIVERY_DELAY

    assert is_past_auto_delivery(bill, later)
    assert not is_past_auto_delivery(bill, clock.now)
    assert bill.status == BillStatus.PENDING


def test_status_chain():
    assert next_status(BillStatus.PENDING) == BillStatus.CONFIRMED
    assert next_status("DELIVERING") == BillStatus.DELIVERED
    assert next_status(BillStatus.DELIVERED) is None
    assert next_status(BillStatus.CANCELLED) is None


def test_update_bill_status(bills, carts, alice, clock):
    bill = place_bill(bills, carts, alice)
    clock.advance(minutes=5)

    assert bills.update_bill_status(alice, bill.bill_id, BillStatus.PREPARING)

    stored = bills.get_bill_by_id(alice, bill.bill_id)
    assert stored.status == BillStatus.PREPARING
    assert stored.last_updated == clock.now
    assert not can_cancel(stored)


def test_update_bill_status_rejects_unknown_bill_and_status(bills, carts, alice):
    bill = place_bill(bills, carts, alice)

    assert not bills.update_bill_status(alice, 999, BillStatus.CONFIRMED)
    assert not bills.update_bill_status(alice, bill.bill_id, "LOST")
    assert bills.get_bill_by_id(alice, bill.bill_id).status == BillStatus.PENDING


def test_terminal_status_cannot_change(bills, carts, alice):
    bill = place_bill(bills, carts, alice)
    assert bills.update_bill_status(alice, bill.bill_id, BillStatus.DELIVERED)

    assert not bills.update_bill_status(alice, bill.bill_id, BillStatus.PENDING)


def test_cancel_only_while_pending(bills, carts, alice):
    first = place_bill(bills, carts, alice)
    second = place_bill(bills, carts, alice)
    bills.update_bill_status(alice, second.bill_id, BillStatus.CONFIRMED)

    assert bills.cancel_bill(alice, first.bill_id)
    assert not bills.cancel_bill(alice, second.bill_id)
    assert bills.get_bill_by_id(alice, first.bill_id).status == BillStatus.CANCELLED


def test_bills_are_scoped_to_current_user(bills, carts, alice, login):
    bill = place_bill(bills, carts, alice)
    bob = login("bob")

    assert bills.get_bills_for_current_user(bob) == []
    assert bills.get_bill_by_id(bob, bill.bill_id) is None
    assert not bills.update_bill_status(bob, bill.bill_id, BillStatus.CONFIRMED)


def test_create_bill_preconditions(bills, carts, alice):
    lines = carts.get_cart_lines(alice)

    assert bills.create_bill(UserSession.anonymous(), "alice", lines, 260000, "addr", "", "") is None
    assert bills.create_bill(alice, "bob", lines, 260000, "addr", "", "") is None
    assert bills.create_bill(alice, "alice", [], 0, "addr", "", "") is None
    assert bills.create_bill(alice, "alice", lines, 1000, "addr", "", "") is None
    assert bills.get_bills_for_current_user(alice) == []


def test_user_aggregates(bills, carts, alice):
    place_bill(bills, carts, alice)
    place_bill(bills, carts, alice, total="245000")

    assert bills.get_total_order_count(alice) == 2
    assert bills.get_total_spending(alice) == Decimal("505000")
    assert bills.get_bill_count_by_username("alice") == 2
    assert bills.get_total_spent_by_username("alice") == Decimal("505000")
    assert len(bills.get_bills_by_status(alice, BillStatus.PENDING)) == 2
    assert bills.get_bills_by_username_and_status("alice", "DELIVERED") == []


def test_owner_aggregates(bills, carts, alice, login, clock):
    place_bill(bills, carts, alice)
    clock.advance(minutes=1)
    bob = login("bob")
    carts.add_to_cart(bob, 2, 1)
    bob_bill = place_bill(bills, carts, bob, total="135000")
    bills.cancel_bill(bob, bob_bill.bill_id)

    everything = bills.get_all_bills_from_all_users()
    assert [b.owner_username for b in everything] == ["bob", "alice"]
    assert bills.get_order_count_by_status(BillStatus.CANCELLED) == 1
    assert [b.owner_username for b in bills.get_all_orders_by_status("PENDING")] == ["alice"]
    assert bills.get_total_revenue() == Decimal("260000")
    assert bills.get_daily_revenue() == Decimal("260000")
    assert bills.get_daily_revenue(clock.now.date() - timedelta(days=1)) == Decimal("0")


def test_owner_can_advance_any_users_bill(bills, carts, alice):
    bill = place_bill(bills, carts, alice)

    assert bills.advance_bill_status("alice", bill.bill_id) == BillStatus.CONFIRMED
    assert bills.update_bill_status_for_owner("alice", bill.bill_id, BillStatus.DELIVERING)
    assert bills.advance_bill_status("alice", bill.bill_id) == BillStatus.DELIVERED
    assert bills.advance_bill_status("alice", bill.bill_id) is None
    assert bills.advance_bill_status("alice", 42) is None


def test_storage_failure_is_reported_not_raised(bills, carts, alice, engine):
    lines = carts.get_cart_lines(alice)
    Base.metadata.drop_all(engine)

    assert place_bill(bills, carts, alice) is None
    assert bills.create_bill(alice, "alice", lines, 260000, "addr", "", "") is None
    assert bills.get_bills_for_current_user(alice) == []
    assert not bills.update_bill_status(alice, 1, BillStatus.CONFIRMED)


@pytest.mark.parametrize("total", ["abc", None, "NaN"])
def test_create_bill_rejects_non_numeric_total(bills, carts, alice, total):
    lines = carts.get_cart_lines(alice)

    assert bills.create_bill(alice, "alice", lines, total, "addr", "", "") is None
    assert bills.get_bills_for_current_user(alice) == []


def test_order_in_preparation_is_delivered_after_delay(bills, carts, alice, clock):
    bill = place_bill(bills, carts, alice)
    bills.update_bill_status(alice, bill.bill_id, BillStatus.PREPARING)

    clock.advance(minutes=44)
    assert bills.get_current_status(alice, bill.bill_id) == BillStatus.PREPARING

    clock.advance(minutes=2)
    assert bills.get_current_status(alice, bill.bill_id) == BillStatus.DELIVERED

"""Token intake, reservations and status changes through the service layer."""

from datetime import date, datetime

import pytest

from queuepos.errors import (
    CapacityConflict,
    IllegalTransition,
    NotFoundError,
    QueueDisabledError,
    ValidationError,
)
from queuepos.extensions import db
from queuepos.models import LedgerEvent, QueueToken, QueueTokenSequence
from queuepos.services import queue_token_service as tokens
from queuepos.services import shop_service
from queuepos.services.ledger_service import list_ledger_events
from queuepos.services.reservation_service import get_queue_product_options, reserved_quantities
from queuepos.signals import queue_board_changed

# 12:00 in Asia/Dhaka, business date 2026-03-02
NOON = datetime(2026, 3, 2, 6, 0, 0)


def _create(shop, *items, **kwargs):
    kwargs.setdefault("now", NOON)
    return tokens.create_token(
        shop.id,
        [{"product_id": p.id, "quantity": q} for p, q in items],
        **kwargs,
    )


def test_create_token_snapshots_items_and_total(shop, tea, burger, cashier):
    token = _create(
        shop, (tea, 2), (burger, 1),
        order_type="Take Away",
        customer_name="  Rahim  ",
        customer_phone="+880 1711-000000",
        actor_user_id=cashier.id,
    )

    assert token.token_no == 1
    assert token.token_label == "DB-0001"
    assert token.business_date == date(2026, 3, 2)
    assert token.status == "WAITING"
    assert token.order_type == "takeaway"
    assert token.customer_name == "Rahim"
    assert token.customer_phone == "+8801711000000"
    assert token.total_cents == 2 * 2500 + 15000
    assert [(i.product_name_snapshot, i.quantity) for i in token.items] == [
        ("Milk Tea", 2),
        ("Beef Burger", 1),
    ]

    events = list_ledger_events(shop.id, token_id=token.id)
    assert [e.event_type for e in events] == ["queue_token.created"]


def test_duplicate_items_are_merged(shop, tea):
    token = _create(shop, (tea, 1), (tea, 2))
    assert len(token.items) == 1
    assert token.items[0].quantity == 3


@pytest.mark.parametrize("items", [[], None, [{"product_id": 1, "quantity": 0}], [{"product_id": 1, "quantity": 1.5}]])
def test_invalid_items_rejected_before_any_write(shop, items):
    with pytest.raises(ValidationError):
        tokens.create_token(shop.id, items, now=NOON)
    assert db.session.query(QueueToken).count() == 0
    assert db.session.query(QueueTokenSequence).count() == 0


def test_unknown_product_is_not_found(shop, tea):
    with pytest.raises(NotFoundError) as exc:
        tokens.create_token(shop.id, [{"product_id": 9999, "quantity": 1}], now=NOON)
    assert exc.value.details["product_ids"] == [9999]


def test_product_from_other_shop_is_not_found(shop, other_shop):
    foreign = shop_service.create_product(other_shop.id, sku="X", name="Foreign", price_cents=100)
    with pytest.raises(NotFoundError):
        tokens.create_token(shop.id, [{"product_id": foreign.id, "quantity": 1}], now=NOON)


def test_disabled_queue_rejects_creation(shop, tea):
    shop_service.update_queue_settings(shop.id, queue_token_enabled=False)
    with pytest.raises(QueueDisabledError):
        _create(shop, (tea, 1))


def test_shop_outside_scope_is_not_found(shop, other_shop, tea):
    with pytest.raises(NotFoundError):
        _create(shop, (tea, 1), scope_shop_id=other_shop.id)


def test_reservations_block_overselling(shop, tea):
    _create(shop, (tea, 3))

    with pytest.raises(CapacityConflict) as exc:
        _create(shop, (tea, 4))

    details = exc.value.details
    assert details["product_name"] == "Milk Tea"
    assert details["available_quantity"] == 2
    assert details["requested_quantity"] == 4
    assert "Milk Tea" in str(exc.value)

    # Nothing from the rejected attempt survives, not even its number
    assert db.session.query(QueueToken).count() == 1
    assert _create(shop, (tea, 2)).token_no == 2


def test_untracked_products_are_unlimited(shop, burger):
    token = _create(shop, (burger, 500))
    assert token.total_cents == 500 * 15000
    options = {o["id"]: o for o in get_queue_product_options(shop.id)}
    assert options[burger.id]["available_stock"] is None
    assert options[burger.id]["reserved_qty"] == 500


def test_cancelling_releases_reservation(shop, tea):
    token = _create(shop, (tea, 5))
    assert reserved_quantities(shop.id) == {tea.id: 5}

    tokens.update_status(token.id, "CANCELLED", now=NOON)

    assert reserved_quantities(shop.id) == {}
    assert _create(shop, (tea, 5)).token_no == 2


def test_status_walks_restaurant_path_and_stamps_once(shop, tea):
    token = _create(shop, (tea, 1))
    t1 = datetime(2026, 3, 2, 6, 5)
    t2 = datetime(2026, 3, 2, 6, 10)

    token = tokens.update_status(token.id, "CALLED", now=t1)
    assert token.called_at == t1
    token = tokens.update_status(token.id, "IN_KITCHEN", now=t2)
    assert token.status == "IN_PROGRESS"
    assert token.in_kitchen_at == t2
    assert token.called_at == t1
    token = tokens.update_status(token.id, "READY", now=t2)
    token = tokens.update_status(token.id, "SERVED", now=t2)
    assert token.status == "DONE"
    assert token.served_at == t2

    with pytest.raises(IllegalTransition):
        tokens.update_status(token.id, "CANCELLED", now=t2)

    changes = db.session.query(LedgerEvent).filter_by(event_type="queue_token.status_changed").count()
    assert changes == 4


def test_illegal_skip_reports_current_status(shop, tea):
    token = _create(shop, (tea, 1))
    with pytest.raises(IllegalTransition) as exc:
        tokens.update_status(token.id, "READY", now=NOON)
    assert exc.value.details["current_status"] == "WAITING"
    assert exc.value.details["requested_status"] == "READY"
    assert db.session.get(QueueToken, token.id).status == "WAITING"


def test_quick_service_skips_kitchen(db_session):
    shop = shop_service.create_shop("Juice Bar", business_type="Juice Kiosk")
    product = shop_service.create_product(shop.id, sku="J", name="Juice", price_cents=800)
    token = _create(shop, (product, 1))

    tokens.update_status(token.id, "CALLED", now=NOON)
    with pytest.raises(IllegalTransition):
        tokens.update_status(token.id, "IN_PROGRESS", now=NOON)
    assert tokens.update_status(token.id, "READY", now=NOON).status == "READY"


def test_call_next_takes_lowest_waiting_number(shop, tea):
    first = _create(shop, (tea, 1))
    second = _create(shop, (tea, 1))

    called = tokens.call_next(shop.id, now=NOON)
    assert called.id == first.id
    assert called.status == "CALLED"
    assert called.called_at == NOON

    assert tokens.call_next(shop.id, now=NOON).id == second.id
    assert tokens.call_next(shop.id, now=NOON) is None


def test_call_next_rejected_for_counter_workflow(db_session):
    shop = shop_service.create_shop("Pharmacy", business_type="Pharmacy", queue_workflow="counter")
    with pytest.raises(IllegalTransition):
        tokens.call_next(shop.id, now=NOON)


def test_board_orders_active_first_and_uses_profile_labels(shop, tea):
    a = _create(shop, (tea, 1))
    b = _create(shop, (tea, 1))
    c = _create(shop, (tea, 1))
    tokens.update_status(a.id, "CANCELLED", now=NOON)
    tokens.update_status(c.id, "CALLED", now=NOON)

    board = tokens.get_board_snapshot(shop.id, "2026-03-02")
    assert board["business_date"] == "2026-03-02"
    assert board["workflow"]["name"] == "restaurant"
    assert [t["id"] for t in board["tokens"]] == [b.id, c.id, a.id]
    assert board["tokens"][1]["next_action"] == {"status": "IN_PROGRESS", "label": "Send to kitchen"}
    assert board["tokens"][2]["next_action"] is None

    assert tokens.get_board_snapshot(shop.id, "2026-03-03")["tokens"] == []


def test_board_rejects_malformed_date(shop):
    with pytest.raises(ValidationError):
        tokens.get_board_snapshot(shop.id, "02/03/2026")


def test_print_data_includes_shop_header(shop, tea):
    token = _create(shop, (tea, 2))
    data = tokens.get_print_data(token.id)
    assert data["shop"]["name"] == "Dhaka Bites"
    assert data["token_label"] == "DB-0001"
    assert data["items"][0]["product_name"] == "Milk Tea"
    assert data["order_type_label"] == "Dine-in"


def test_board_changed_signal_sent_after_commit(shop, tea):
    received = []

    def listener(sender, **extra):
        received.append((sender, extra["reason"]))

    with queue_board_changed.connected_to(listener):
        token = _create(shop, (tea, 1))
        tokens.update_status(token.id, "CALLED", now=NOON)

    assert received == [(shop.id, "token.created"), (shop.id, "token.status")]

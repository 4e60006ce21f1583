from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from order_lifecycle.data.models.order_modification import OrderModificationModel
from order_lifecycle.domain.errors import (
    CancellationNotAllowedError,
    CancellationWindowExpiredError,
    InvalidTransitionError,
    ModificationNotAllowedError,
    ModificationWindowExpiredError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from order_lifecycle.domain.schemas import LineItemIn
from order_lifecycle.domain.status import OrderStatus
from order_lifecycle.services.refund_service import RefundService
from order_lifecycle.utils.clock import ensure_utc

S = OrderStatus


def advance_to(service, order_id, target, actor="rest-owner"):
    path = [S.CONFIRMED, S.PREPARING, S.READY, S.PICKED, S.NEARBY, S.DELIVERED]
    order = None
    for status in path[: path.index(target) + 1]:
        order = service.advance_status(order_id, status, actor)
    return order


# create

def test_create_order_prices_items_and_opens_windows(service, order_payload, clock, notifier):
    order = service.create_order(order_payload())

    assert order.subtotal == Decimal("360")
    assert order.tax == Decimal("36.00")
    assert order.total == Decimal("421.00")
    assert order.status == S.PLACED
    assert order.can_cancel is True
    assert order.can_modify is True
    assert ensure_utc(order.cancellation_deadline) == clock.now + timedelta(minutes=10)
    assert ensure_utc(order.modification_deadline) == clock.now + timedelta(minutes=15)
    assert order.order_number.startswith("#") and len(order.order_number) == 5
    assert [i.product_id for i in order.items] == ["doro-wat", "shiro"]

    assert len(order.status_history) == 1
    assert order.status_history[0].status == "placed"
    assert order.status_history[0].note == "Order placed successfully"

    assert [o.id for o in notifier.new_orders] == [order.id]


@pytest.mark.parametrize(
    "overrides",
    [
        {"items": []},
        {"delivery_address": "   "},
        {"phone": ""},
    ],
)
def test_create_order_rejects_missing_fields(service, order_payload, overrides):
    with pytest.raises(ValidationError):
        service.create_order(order_payload(**overrides))

    assert service.list_by_customer("cust-1") == []


# advance

def test_advance_walks_the_forward_path(service, order_payload):
    order = service.create_order(order_payload())

    delivered = advance_to(service, order.id, S.DELIVERED)

    assert delivered.status == S.DELIVERED
    assert [h.status for h in delivered.status_history] == [
        "placed", "confirmed", "preparing", "ready", "picked", "nearby", "delivered",
    ]
    assert delivered.status_history[2].note == "Order status updated to preparing"
    assert delivered.status_history[2].updated_by == "rest-owner"


@pytest.mark.parametrize("target", [S.CONFIRMED, S.PREPARING, S.READY, S.PICKED, S.NEARBY, S.DELIVERED])
def test_flags_hold_after_every_advance(service, order_payload, target):
    order = service.create_order(order_payload())

    result = advance_to(service, order.id, target)

    if target in (S.PREPARING, S.READY, S.PICKED, S.NEARBY, S.DELIVERED):
        assert result.can_cancel is False
    if target in (S.READY, S.PICKED, S.NEARBY, S.DELIVERED):
        assert result.can_modify is False
    if target == S.CONFIRMED:
        assert result.can_cancel and result.can_modify
    if target == S.PREPARING:
        assert result.can_modify is True


def test_advance_rejects_skipping_states(service, order_payload):
    order = service.create_order(order_payload())

    with pytest.raises(InvalidTransitionError):
        service.advance_status(order.id, S.READY, "rest-owner")

    stored = service.get_order(order.id)
    assert stored.status == S.PLACED
    assert len(stored.status_history) == 1


def test_advance_to_unknown_status_is_a_typed_rejection(service, order_payload):
    order = service.create_order(order_payload())

    with pytest.raises(InvalidTransitionError) as exc:
        service.advance_status(order.id, "shipped", "rest-owner")

    assert exc.value.current == "placed"
    assert exc.value.requested == "shipped"
    assert [h.status for h in service.get_history(order.id)] == ["placed"]


def test_advance_never_cancels(service, order_payload):
    order = service.create_order(order_payload())

    with pytest.raises(InvalidTransitionError):
        service.advance_status(order.id, "cancelled", "rest-owner")


def test_advance_from_terminal_state_is_rejected(service, order_payload):
    order = service.create_order(order_payload())
    advance_to(service, order.id, S.DELIVERED)

    with pytest.raises(InvalidTransitionError):
        service.advance_status(order.id, S.DELIVERED, "driver-1")


def test_advance_unknown_order(service):
    with pytest.raises(NotFoundError):
        service.advance_status(999, S.CONFIRMED, "rest-owner")


def test_advance_custom_note_and_notification(service, order_payload, notifier):
    order = service.create_order(order_payload())

    service.advance_status(order.id, S.CONFIRMED, "rest-owner", note="Accepted by kitchen")

    assert service.get_history(order.id)[-1].note == "Accepted by kitchen"
    assert [(e.kind, e.status) for e in notifier.status_events] == [("status_changed", S.CONFIRMED)]
    assert notifier.status_events[0].previous_status == S.PLACED


def test_orders_do_not_interfere(service, order_payload):
    first = service.create_order(order_payload())
    second = service.create_order(order_payload(customer_id="cust-2"))

    advance_to(service, first.id, S.READY)

    untouched = service.get_order(second.id)
    assert untouched.status == S.PLACED
    assert untouched.can_cancel and untouched.can_modify
    assert len(untouched.status_history) == 1


def test_audit_trail_grows_by_one_per_operation(service, order_payload):
    order = service.create_order(order_payload())
    lengths = [len(service.get_history(order.id))]

    service.advance_status(order.id, S.CONFIRMED, "rest-owner")
    lengths.append(len(service.get_history(order.id)))

    service.modify_order(order.id, [LineItemIn(product_id="kitfo", name="Kitfo", price=Decimal("220"), quantity=1)], "cust-1")
    lengths.append(len(service.get_history(order.id)))

    service.cancel_order(order.id, "Changed my mind", "cust-1")
    lengths.append(len(service.get_history(order.id)))

    assert lengths == [1, 2, 3, 4]


# cancel

def test_cancel_while_placed_ignores_deadline(service, order_payload, clock):
    order = service.create_order(order_payload())
    clock.advance(hours=2)

    cancelled = service.cancel_order(order.id, "Too slow", "cust-1")

    assert cancelled.status == S.CANCELLED
    assert cancelled.can_cancel is False
    assert cancelled.can_modify is False
    assert cancelled.cancellation_reason == "Too slow"
    assert cancelled.cancelled_by == "cust-1"
    assert cancelled.status_history[-1].note == "Order cancelled: Too slow"


def test_cancel_after_preparing_is_not_allowed(service, order_payload):
    order = service.create_order(order_payload())
    service.advance_status(order.id, S.CONFIRMED, "rest-owner")
    service.advance_status(order.id, S.PREPARING, "rest-owner")

    with pytest.raises(CancellationNotAllowedError):
        service.cancel_order(order.id, "Changed my mind", "cust-1")

    assert service.get_order(order.id).status == S.PREPARING


def test_cancel_confirmed_within_window(service, order_payload, clock):
    order = service.create_order(order_payload())
    service.advance_status(order.id, S.CONFIRMED, "rest-owner")
    clock.advance(minutes=9)

    assert service.cancel_order(order.id, "Wrong address", "cust-1").status == S.CANCELLED


def test_cancel_confirmed_after_deadline(service, order_payload, clock):
    order = service.create_order(order_payload())
    service.advance_status(order.id, S.CONFIRMED, "rest-owner")
    clock.advance(minutes=10, seconds=1)

    with pytest.raises(CancellationWindowExpiredError):
        service.cancel_order(order.id, "Wrong address", "cust-1")

    stored = service.get_order(order.id)
    assert stored.status == S.CONFIRMED
    assert len(stored.status_history) == 2


def test_cancel_terminal_orders(service, order_payload):
    cancelled = service.create_order(order_payload())
    service.cancel_order(cancelled.id, "First", "cust-1")
    delivered = service.create_order(order_payload())
    advance_to(service, delivered.id, S.DELIVERED)

    with pytest.raises(CancellationNotAllowedError):
        service.cancel_order(cancelled.id, "Again", "cust-1")
    with pytest.raises(CancellationNotAllowedError):
        service.cancel_order(delivered.id, "Late", "cust-1")


def test_cancel_requires_reason(service, order_payload):
    order = service.create_order(order_payload())

    with pytest.raises(ValidationError):
        service.cancel_order(order.id, "  ", "cust-1")

    assert service.get_order(order.id).status == S.PLACED


def test_cancel_paid_order_initiates_refund(service, order_payload, db, clock):
    order = service.create_order(order_payload(payment_method="card"))

    service.cancel_order(order.id, "Restaurant closed", "cust-1")

    refunds = RefundService(db, clock=clock).list_by_order(order.id)
    assert len(refunds) == 1
    assert refunds[0].amount == order.total
    assert refunds[0].reason == "Restaurant closed"
    assert refunds[0].status.value == "pending"
    assert refunds[0].initiated_by == "cust-1"


def test_cancel_cash_order_has_no_refund(service, order_payload, db):
    order = service.create_order(order_payload(payment_method="cash"))

    service.cancel_order(order.id, "Changed my mind", "cust-1")

    assert RefundService(db).list_by_order(order.id) == []


def test_cancel_notifies_and_publishes(service, order_payload, notifier, events):
    order = service.create_order(order_payload())
    seen = []
    events.subscribe(order.id, seen.append)

    service.cancel_order(order.id, "Changed my mind", "cust-1")

    assert [e.kind for e in seen] == ["cancelled"]
    assert seen[0].order.status == S.CANCELLED
    assert notifier.status_events[-1].status == S.CANCELLED


# modify

NEW_ITEMS = [LineItemIn(product_id="kitfo", name="Kitfo", price=Decimal("220"), quantity=2)]


def test_modify_while_placed_ignores_deadline(service, order_payload, clock, db):
    order = service.create_order(order_payload())
    clock.advance(minutes=30)

    modified = service.modify_order(order.id, NEW_ITEMS, "cust-1", reason="Bigger appetite")

    assert [(i.product_id, i.quantity) for i in modified.items] == [("kitfo", 2)]
    assert modified.subtotal == Decimal("440")
    assert modified.tax == Decimal("44.00")
    assert modified.total == Decimal("509.00")
    assert modified.status == S.PLACED
    assert modified.can_cancel and modified.can_modify
    assert modified.status_history[-1].note == "Order modified: Bigger appetite"
    assert modified.status_history[-1].status == "placed"

    record = db.execute(
        select(OrderModificationModel).where(OrderModificationModel.order_id == order.id)
    ).scalar_one()
    assert record.original["subtotal"] == "360.00"
    assert [i["product_id"] for i in record.original["items"]] == ["doro-wat", "shiro"]
    assert record.modified["total"] == "509.00"
    assert record.modified_by == "cust-1"


def test_modify_uses_given_totals(service, order_payload):
    order = service.create_order(order_payload())

    modified = service.modify_order(
        order.id, NEW_ITEMS, "cust-1", subtotal=Decimal("400"), total=Decimal("450")
    )

    assert modified.subtotal == Decimal("400")
    assert modified.total == Decimal("450")


def test_modify_preparing_within_window(service, order_payload, clock):
    order = service.create_order(order_payload())
    service.advance_status(order.id, S.CONFIRMED, "rest-owner")
    service.advance_status(order.id, S.PREPARING, "rest-owner")
    clock.advance(minutes=14)

    modified = service.modify_order(order.id, NEW_ITEMS, "cust-1")

    assert modified.status == S.PREPARING
    assert modified.can_cancel is False
    assert modified.can_modify is True


def test_modify_confirmed_after_deadline(service, order_payload, clock):
    order = service.create_order(order_payload())
    service.advance_status(order.id, S.CONFIRMED, "rest-owner")
    clock.advance(minutes=16)

    with pytest.raises(ModificationWindowExpiredError):
        service.modify_order(order.id, NEW_ITEMS, "cust-1")

    assert service.get_order(order.id).subtotal == Decimal("360")


def test_modify_ready_is_not_allowed(service, order_payload):
    order = service.create_order(order_payload())
    advance_to(service, order.id, S.READY)

    with pytest.raises(ModificationNotAllowedError):
        service.modify_order(order.id, NEW_ITEMS, "cust-1")


def test_modify_requires_items(service, order_payload):
    order = service.create_order(order_payload())

    with pytest.raises(ValidationError):
        service.modify_order(order.id, [], "cust-1")


# delivery

def test_delivery_flow(service, order_payload):
    order = service.create_order(order_payload())
    advance_to(service, order.id, S.READY)
    assert [o.id for o in service.list_available_for_delivery()] == [order.id]

    picked = service.accept_delivery(order.id, "driver-1", "Abebe")
    assert picked.status == S.PICKED
    assert picked.driver_id == "driver-1"
    assert picked.status_history[-1].note == "Order picked up by Abebe"
    assert service.list_available_for_delivery() == []

    with pytest.raises(PreconditionError):
        service.mark_nearby(order.id, "driver-2")

    service.mark_nearby(order.id, "driver-1")
    delivered = service.complete_delivery(order.id, "driver-1")
    assert delivered.status == S.DELIVERED
    assert delivered.status_history[-1].note == "Order delivered successfully"


def test_accept_delivery_requires_ready(service, order_payload):
    order = service.create_order(order_payload())

    with pytest.raises(InvalidTransitionError):
        service.accept_delivery(order.id, "driver-1", "Abebe")


def test_active_deliveries_of_a_driver(service, order_payload, clock):
    first, second, third, other = (service.create_order(order_payload()) for _ in range(4))
    for order in (first, second, third, other):
        advance_to(service, order.id, S.READY)

    service.accept_delivery(first.id, "driver-1", "Abebe")
    clock.advance(minutes=1)
    service.accept_delivery(second.id, "driver-1", "Abebe")
    service.mark_nearby(second.id, "driver-1")
    service.accept_delivery(third.id, "driver-1", "Abebe")
    service.mark_nearby(third.id, "driver-1")
    service.complete_delivery(third.id, "driver-1")
    service.accept_delivery(other.id, "driver-2", "Kebede")

    active = service.list_active_deliveries("driver-1")
    assert [(o.id, o.status) for o in active] == [(second.id, S.NEARBY), (first.id, S.PICKED)]
    assert [o.id for o in service.list_active_deliveries("driver-2")] == [other.id]
    assert service.list_active_deliveries("driver-3") == []


# queries

def test_lists_are_newest_first(service, order_payload, clock):
    first = service.create_order(order_payload())
    clock.advance(minutes=1)
    second = service.create_order(order_payload())
    clock.advance(minutes=1)
    service.create_order(order_payload(customer_id="cust-2", restaurant_id="rest-2"))

    assert [o.id for o in service.list_by_customer("cust-1")] == [second.id, first.id]
    assert [o.id for o in service.list_by_restaurant("rest-1")] == [second.id, first.id]


def test_get_unknown_order(service):
    with pytest.raises(NotFoundError):
        service.get_order(42)
    with pytest.raises(NotFoundError):
        service.get_history(42)


# menu

class FakeMenu:
    def __init__(self, items):
        self.items = items

    def fetch_item(self, item_id):
        return self.items.get(item_id)


def test_menu_prices_win_over_client_prices(db, make_service, order_payload):
    menu = FakeMenu({
        "doro-wat": {"id": "doro-wat", "name": "Doro Wat", "price": 155.0, "available": True},
        "shiro": {"id": "shiro", "name": "Shiro", "price": 65.0, "available": True},
    })
    service = make_service(db, menu=menu)

    order = service.create_order(order_payload())

    assert order.subtotal == Decimal("375")


def test_menu_rejects_unavailable_and_unknown_items(db, make_service, order_payload):
    menu = FakeMenu({
        "doro-wat": {"id": "doro-wat", "name": "Doro Wat", "price": 150.0, "available": False},
    })
    service = make_service(db, menu=menu)

    with pytest.raises(ValidationError):
        service.create_order(order_payload())
    with pytest.raises(ValidationError):
        service.create_order(order_payload(items=[LineItemIn(product_id="pizza", price=Decimal("1"), quantity=1)]))

# order_lifecycle/domain/status.py
"""
Order status model.

Forward path: placed -> confirmed -> preparing -> ready -> picked -> nearby -> delivered.
'cancelled' is a terminal override reachable only through cancellation.
"""
from enum import Enum


class OrderStatus(str, Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    PICKED = "picked"
    NEARBY = "nearby"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class RefundStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


FORWARD_SEQUENCE = (
    OrderStatus.PLACED,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.PICKED,
    OrderStatus.NEARBY,
    OrderStatus.DELIVERED,
)

TERMINAL = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# statuses in which the flag is forced off; nearby only follows picked
CANCEL_LOCKED = frozenset({
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.PICKED,
    OrderStatus.NEARBY,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
})
MODIFY_LOCKED = frozenset({
    OrderStatus.READY,
    OrderStatus.PICKED,
    OrderStatus.NEARBY,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
})

REFUND_TRANSITIONS = {
    RefundStatus.PENDING: frozenset({RefundStatus.APPROVED, RefundStatus.REJECTED, RefundStatus.COMPLETED}),
    RefundStatus.APPROVED: frozenset({RefundStatus.COMPLETED}),
    RefundStatus.REJECTED: frozenset(),
    RefundStatus.COMPLETED: frozenset(),
}


def next_status(current: OrderStatus) -> OrderStatus | None:
    if current not in FORWARD_SEQUENCE or current == OrderStatus.DELIVERED:
        return None
    return FORWARD_SEQUENCE[FORWARD_SEQUENCE.index(current) + 1]


def can_advance(current: OrderStatus, target: OrderStatus) -> bool:
    return next_status(current) == target


def permissions_after(status: OrderStatus, can_cancel: bool, can_modify: bool) -> tuple[bool, bool]:
    """Flags never turn back on once a status has forced them off."""
    return (
        can_cancel and status not in CANCEL_LOCKED,
        can_modify and status not in MODIFY_LOCKED,
    )


# customer facing copy, one entry per status
STATUS_MESSAGES: dict[OrderStatus, dict[str, str]] = {
    OrderStatus.PLACED: {
        "title": "Order Placed!",
        "sms": "We received your order {number}. The restaurant will confirm it shortly.",
    },
    OrderStatus.CONFIRMED: {
        "title": "Order Confirmed!",
        "sms": "Your order {number} has been confirmed!",
    },
    OrderStatus.PREPARING: {
        "title": "Order Being Prepared!",
        "sms": "Great news! Your order {number} is now being prepared. We'll notify you when it's ready!",
    },
    OrderStatus.READY: {
        "title": "Order Ready!",
        "sms": "Your order {number} is ready! Our delivery partner will pick it up shortly.",
    },
    OrderStatus.PICKED: {
        "title": "Order On The Way!",
        "sms": "Your order {number} is on the way! Track your delivery in the app.",
    },
    OrderStatus.NEARBY: {
        "title": "Driver Nearby!",
        "sms": "Your order {number} is almost there. Please be ready to receive it.",
    },
    OrderStatus.DELIVERED: {
        "title": "Order Delivered!",
        "sms": "Your order {number} has been delivered! Enjoy your meal and thank you for choosing us!",
    },
    OrderStatus.CANCELLED: {
        "title": "Order Cancelled",
        "sms": "Your order {number} has been cancelled.",
    },
}

_missing = set(OrderStatus) - set(STATUS_MESSAGES)
if _missing:
    raise RuntimeError(f"No customer message for statuses: {sorted(s.value for s in _missing)}")


def status_message(status: OrderStatus, order_number: str) -> dict[str, str]:
    copy = STATUS_MESSAGES[status]
    return {
        "title": copy["title"],
        "body": copy["sms"].format(number=order_number),
    }

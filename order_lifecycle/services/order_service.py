# order_lifecycle/services/order_service.py
import secrets
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from order_lifecycle.data.models.order import OrderModel
from order_lifecycle.data.models.order_item import OrderItemModel
from order_lifecycle.data.models.order_modification import OrderModificationModel
from order_lifecycle.data.models.status_history import StatusHistoryModel
from order_lifecycle.domain.errors import (
    CancellationNotAllowedError,
    CancellationWindowExpiredError,
    ConcurrencyConflictError,
    InvalidTransitionError,
    ModificationNotAllowedError,
    ModificationWindowExpiredError,
    NotFoundError,
    PreconditionError,
    RefundInitiationError,
    ValidationError,
)
from order_lifecycle.domain.schemas import (
    LineItemIn,
    OrderCreate,
    OrderEvent,
    OrderOut,
    StatusHistoryOut,
)
from order_lifecycle.domain.status import (
    MODIFY_LOCKED,
    TERMINAL,
    OrderStatus,
    can_advance,
    permissions_after,
)
from order_lifecycle.repos.order_repo import OrderRepo
from order_lifecycle.services.menu_client import MenuClient
from order_lifecycle.services.notification_service import NotificationService
from order_lifecycle.services.order_events import InMemoryOrderEvents
from order_lifecycle.services.refund_service import RefundService
from order_lifecycle.utils.clock import Clock, ensure_utc, utcnow
from order_lifecycle.utils.settings import (
    CANCELLATION_WINDOW_SECONDS,
    MODIFICATION_WINDOW_SECONDS,
    TAX_RATE,
)
from order_lifecycle.utils.logging import get_logger

logger = get_logger(__name__)

CENTS = Decimal("0.01")
ACTIVE_DELIVERY = (OrderStatus.PICKED.value, OrderStatus.NEARBY.value)


def generate_order_number() -> str:
    return f"#{secrets.randbelow(10000):04d}"


def compute_subtotal(items: Sequence[LineItemIn]) -> Decimal:
    return sum((Decimal(i.price) * i.quantity for i in items), Decimal("0.00")).quantize(CENTS)


class OrderService:
    """
    Order lifecycle manager.

    Owns the status field, the cancel/modify permission flags with their
    deadlines, and the append-only status history. Every command is a
    read-check-write on one order row guarded by its version column; a lost
    race rolls back and raises ConcurrencyConflictError.
    """

    def __init__(
        self,
        db: Session,
        notifier: NotificationService | None = None,
        events: Any = None,
        refunds: RefundService | None = None,
        menu: MenuClient | None = None,
        clock: Clock = utcnow,
        tax_rate: Decimal = TAX_RATE,
        cancellation_window: timedelta = timedelta(seconds=CANCELLATION_WINDOW_SECONDS),
        modification_window: timedelta = timedelta(seconds=MODIFICATION_WINDOW_SECONDS),
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.notifier = notifier or NotificationService()
        self.events = events if events is not None else InMemoryOrderEvents()
        self.refunds = refunds or RefundService(db, clock=clock)
        self.menu = menu
        self.clock = clock
        self.tax_rate = Decimal(tax_rate)
        self.cancellation_window = cancellation_window
        self.modification_window = modification_window

    # query
    def get_order(self, order_id: int) -> OrderOut:
        return OrderOut.model_validate(self._load(order_id))

    def get_history(self, order_id: int) -> List[StatusHistoryOut]:
        self._load(order_id)
        return [StatusHistoryOut.model_validate(h) for h in self.repo.get_history(order_id)]

    def list_by_customer(self, customer_id: str) -> List[OrderOut]:
        return [OrderOut.model_validate(o) for o in self.repo.list_by_customer(customer_id)]

    def list_by_restaurant(self, restaurant_id: str) -> List[OrderOut]:
        return [OrderOut.model_validate(o) for o in self.repo.list_by_restaurant(restaurant_id)]

    def list_available_for_delivery(self) -> List[OrderOut]:
        return [OrderOut.model_validate(o) for o in self.repo.list_by_status(OrderStatus.READY.value)]

    def list_active_deliveries(self, driver_id: str) -> List[OrderOut]:
        """Orders the driver has picked up and not yet delivered."""
        return [OrderOut.model_validate(o) for o in self.repo.list_active_for_driver(driver_id, ACTIVE_DELIVERY)]

    # commands
    def create_order(self, payload: OrderCreate) -> OrderOut:
        """
        Use case: placing an order.

        1. validates items and contact fields
        2. prices the items (menu prices when a menu client is wired)
        3. stores the order as 'placed' with both permission windows open
        4. notifies the restaurant
        """
        if not payload.items:
            raise ValidationError("Order must contain at least one item")
        if not payload.delivery_address or not payload.delivery_address.strip():
            raise ValidationError("Delivery address is required")
        if not payload.phone or not payload.phone.strip():
            raise ValidationError("Contact phone is required")

        items = self._resolve_items(payload.items)
        subtotal = compute_subtotal(items)
        delivery_fee = Decimal(payload.delivery_fee).quantize(CENTS)
        tax = self._tax(subtotal)

        now = self.clock()
        order = OrderModel(
            order_number=generate_order_number(),
            customer_id=payload.customer_id,
            restaurant_id=payload.restaurant_id,
            restaurant_name=payload.restaurant_name,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            tax=tax,
            total=subtotal + delivery_fee + tax,
            delivery_address=payload.delivery_address.strip(),
            phone=payload.phone.strip(),
            customer_email=payload.customer_email,
            payment_method=payload.payment_method,
            payment_status=payload.payment_status,
            special_instructions=payload.special_instructions,
            is_scheduled=payload.is_scheduled,
            scheduled_time=payload.scheduled_time,
            status=OrderStatus.PLACED.value,
            can_cancel=True,
            can_modify=True,
            cancellation_deadline=now + self.cancellation_window,
            modification_deadline=now + self.modification_window,
            updated_by=payload.customer_id,
            created_at=now,
            updated_at=now,
            version=1,
            items=self._item_models(items),
            status_history=[
                StatusHistoryModel(
                    status=OrderStatus.PLACED.value,
                    timestamp=now,
                    note="Order placed successfully",
                    updated_by=payload.customer_id,
                )
            ],
        )
        try:
            created = self.repo.create_order(order)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store order for customer {payload.customer_id}: {e}")
            self.repo.rollback()
            raise

        snapshot = OrderOut.model_validate(created)
        logger.info(
            f"Order {snapshot.id} ({snapshot.order_number}) placed by {snapshot.customer_id} "
            f"at restaurant {snapshot.restaurant_id}, total {snapshot.total}"
        )

        self._emit("created", snapshot, previous=None)
        self._after_commit("new order notification", snapshot.id, self.notifier.notify_new_order, snapshot)
        return snapshot

    def advance_status(
        self,
        order_id: int,
        new_status: OrderStatus | str,
        actor_id: str,
        note: str | None = None,
        extra: Dict[str, Any] | None = None,
    ) -> OrderOut:
        """
        Use case: restaurant / driver moves the order one step forward.
        Only the next status of the forward path is accepted; 'cancelled'
        goes through cancel_order.
        """
        order = self._load(order_id)
        current = OrderStatus(order.status)
        try:
            target = OrderStatus(new_status)
        except ValueError:
            logger.warning(f"Order {order_id}: unknown status {new_status!r}")
            raise InvalidTransitionError(current.value, str(new_status))

        if not can_advance(current, target):
            logger.warning(f"Order {order_id}: rejected transition {current.value} -> {target.value}")
            raise InvalidTransitionError(current.value, target.value)

        can_cancel, can_modify = permissions_after(target, order.can_cancel, order.can_modify)
        changes = {
            "status": target.value,
            "can_cancel": can_cancel,
            "can_modify": can_modify,
        }
        if extra:
            changes.update(extra)

        self._commit_change(
            order,
            changes,
            actor_id=actor_id,
            history_status=target.value,
            note=note or f"Order status updated to {target.value}",
        )

        snapshot = OrderOut.model_validate(order)
        logger.info(f"Order {order_id}: {current.value} -> {target.value} by {actor_id}")

        self._announce("status_changed", snapshot, previous=current)
        return snapshot

    def cancel_order(self, order_id: int, reason: str, actor_id: str) -> OrderOut:
        """
        Use case: cancellation.

        Allowed while can_cancel is set and the order is not terminal. The
        deadline is only enforced once the order has left 'placed'.
        Non-cash orders get a refund of the full total.
        """
        if not reason or not reason.strip():
            raise ValidationError("Cancellation reason is required")
        reason = reason.strip()

        order = self._load(order_id)
        current = OrderStatus(order.status)
        now = self.clock()

        if not order.can_cancel or current in TERMINAL:
            logger.warning(f"Order {order_id}: cancellation refused in status {current.value}")
            raise CancellationNotAllowedError()
        if current != OrderStatus.PLACED and now > ensure_utc(order.cancellation_deadline):
            logger.warning(f"Order {order_id}: cancellation deadline passed")
            raise CancellationWindowExpiredError()

        self._commit_change(
            order,
            {
                "status": OrderStatus.CANCELLED.value,
                "can_cancel": False,
                "can_modify": False,
                "cancellation_reason": reason,
                "cancelled_by": actor_id,
                "cancelled_at": now,
            },
            actor_id=actor_id,
            history_status=OrderStatus.CANCELLED.value,
            note=f"Order cancelled: {reason}",
            now=now,
        )

        snapshot = OrderOut.model_validate(order)
        logger.info(f"Order {order_id} cancelled by {actor_id}: {reason}")

        try:
            if snapshot.payment_method != "cash":
                self._initiate_refund(snapshot, reason, actor_id)
        finally:
            # the cancellation is stored, watchers hear about it whatever happened to the refund
            self._announce("cancelled", snapshot, previous=current)
        return snapshot

    def modify_order(
        self,
        order_id: int,
        items: Sequence[LineItemIn],
        actor_id: str,
        subtotal: Decimal | None = None,
        total: Decimal | None = None,
        reason: str | None = None,
    ) -> OrderOut:
        """
        Use case: customer changes the items.
        Status and permission flags stay as they are.
        """
        if not items:
            raise ValidationError("Modified order must contain at least one item")

        order = self._load(order_id)
        current = OrderStatus(order.status)
        now = self.clock()

        if not order.can_modify or current in MODIFY_LOCKED:
            logger.warning(f"Order {order_id}: modification refused in status {current.value}")
            raise ModificationNotAllowedError()
        if current != OrderStatus.PLACED and now > ensure_utc(order.modification_deadline):
            logger.warning(f"Order {order_id}: modification deadline passed")
            raise ModificationWindowExpiredError()

        resolved = self._resolve_items(items)
        new_subtotal = Decimal(subtotal).quantize(CENTS) if subtotal is not None else compute_subtotal(resolved)
        new_tax = self._tax(new_subtotal)
        delivery_fee = Decimal(order.delivery_fee or 0)
        new_total = Decimal(total).quantize(CENTS) if total is not None else new_subtotal + delivery_fee + new_tax

        modification = OrderModificationModel(
            id=str(uuid.uuid4()),
            order_id=order.id,
            original=self._pricing_snapshot(
                [LineItemIn.model_validate(i, from_attributes=True) for i in order.items],
                order.subtotal,
                order.total,
            ),
            modified=self._pricing_snapshot(resolved, new_subtotal, new_total),
            reason=reason,
            modified_by=actor_id,
            created_at=now,
        )

        def stage() -> None:
            self.repo.replace_items(order.id, self._item_models(resolved))
            self.repo.add_modification(modification)

        self._commit_change(
            order,
            {
                "subtotal": new_subtotal,
                "tax": new_tax,
                "total": new_total,
                "modified_at": now,
            },
            actor_id=actor_id,
            history_status=current.value,
            note=f"Order modified: {reason or 'Items updated'}",
            now=now,
            stage=stage,
        )

        snapshot = OrderOut.model_validate(order)
        logger.info(f"Order {order_id} modified by {actor_id}, new total {snapshot.total}")

        self._emit("modified", snapshot, previous=current)
        return snapshot

    # delivery
    def accept_delivery(self, order_id: int, driver_id: str, driver_name: str) -> OrderOut:
        return self.advance_status(
            order_id,
            OrderStatus.PICKED,
            driver_id,
            note=f"Order picked up by {driver_name}",
            extra={"driver_id": driver_id, "driver_name": driver_name},
        )

    def mark_nearby(self, order_id: int, driver_id: str) -> OrderOut:
        self._check_driver(order_id, driver_id)
        return self.advance_status(order_id, OrderStatus.NEARBY, driver_id, note="Driver is nearby")

    def complete_delivery(self, order_id: int, driver_id: str) -> OrderOut:
        self._check_driver(order_id, driver_id)
        return self.advance_status(
            order_id,
            OrderStatus.DELIVERED,
            driver_id,
            note="Order delivered successfully",
        )

    # helpers
    def _load(self, order_id: int) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def _check_driver(self, order_id: int, driver_id: str) -> None:
        order = self._load(order_id)
        if order.driver_id and order.driver_id != driver_id:
            raise PreconditionError(f"Order {order_id} is assigned to another driver")

    def _tax(self, subtotal: Decimal) -> Decimal:
        return (subtotal * self.tax_rate).quantize(CENTS)

    def _resolve_items(self, items: Sequence[LineItemIn]) -> List[LineItemIn]:
        if self.menu is None:
            return list(items)

        resolved = []
        for item in items:
            data = self.menu.fetch_item(item.product_id)
            if data is None:
                raise ValidationError(f"Unknown menu item {item.product_id}")
            if not data.get("available", True):
                raise ValidationError(f"Menu item {data.get('name', item.product_id)} is not available")
            resolved.append(
                LineItemIn(
                    product_id=item.product_id,
                    name=data.get("name", item.name),
                    price=Decimal(str(data["price"])),
                    quantity=item.quantity,
                )
            )
        return resolved

    @staticmethod
    def _item_models(items: Sequence[LineItemIn]) -> List[OrderItemModel]:
        return [
            OrderItemModel(
                position=position,
                product_id=i.product_id,
                name=i.name,
                price=Decimal(i.price),
                quantity=i.quantity,
            )
            for position, i in enumerate(items)
        ]

    @staticmethod
    def _pricing_snapshot(items: Sequence[LineItemIn], subtotal: Decimal, total: Decimal) -> Dict[str, Any]:
        return {
            "items": [i.model_dump(mode="json") for i in items],
            "subtotal": str(subtotal),
            "total": str(total),
        }

    def _commit_change(
        self,
        order: OrderModel,
        changes: Dict[str, Any],
        actor_id: str,
        history_status: str,
        note: str,
        now: datetime | None = None,
        stage: Callable[[], None] | None = None,
    ) -> None:
        """Version-guarded UPDATE plus history row (and staged writes) in one transaction."""
        now = now or self.clock()
        try:
            rowcount = self.repo.update_order_version(
                order_id=order.id,
                old_version=order.version,
                new_data={
                    **changes,
                    "updated_by": actor_id,
                    "updated_at": now,
                    "version": order.version + 1,
                },
            )
            if rowcount == 0:
                self.repo.rollback()
                logger.warning(f"Order {order.id}: version {order.version} is stale, concurrent update won")
                raise ConcurrencyConflictError(order.id)

            self.repo.add_history(order.id, history_status, note, actor_id, now)
            if stage is not None:
                stage()
            self.repo.commit(order)
        except SQLAlchemyError as e:
            logger.error(f"Order {order.id}: store failure, rolling back: {e}")
            self.repo.rollback()
            raise

    def _emit(self, kind: str, snapshot: OrderOut, previous: OrderStatus | None) -> OrderEvent:
        event = OrderEvent(
            kind=kind,
            order_id=snapshot.id,
            status=snapshot.status,
            previous_status=previous,
            occurred_at=self.clock(),
            order=snapshot,
        )
        self._after_commit(f"{kind} event", snapshot.id, self.events.publish, event)
        return event

    def _announce(self, kind: str, snapshot: OrderOut, previous: OrderStatus) -> None:
        event = self._emit(kind, snapshot, previous=previous)
        self._after_commit("status notification", snapshot.id, self.notifier.notify_status_change, event)

    def _after_commit(self, step: str, order_id: int, fn: Callable[..., Any], *args: Any) -> None:
        """
        Runs a side effect of an already committed change. A failure is logged
        with its traceback and does not turn the stored change into an error.
        """
        try:
            fn(*args)
        except Exception:
            logger.exception(f"Order {order_id}: {step} failed after commit")

    def _initiate_refund(self, snapshot: OrderOut, reason: str, actor_id: str) -> None:
        try:
            self.refunds.initiate(snapshot.id, snapshot.total, reason, actor_id)
        except Exception as e:
            logger.exception(f"Order {snapshot.id}: refund of {snapshot.total} could not be initiated")
            self.repo.rollback()
            raise RefundInitiationError(snapshot) from e

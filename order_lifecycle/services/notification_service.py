# order_lifecycle/services/notification_service.py
from typing import Any, Dict

from order_lifecycle.celery_worker import celery_app
from order_lifecycle.domain.schemas import OrderEvent, OrderOut
from order_lifecycle.domain.status import OrderStatus, status_message
from order_lifecycle.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Customer / restaurant notifications.
    Dispatch goes through Celery so the lifecycle call never waits on SMS or e-mail.
    """

    def notify_status_change(self, event: OrderEvent) -> None:
        order = event.order
        send_status_notification_task.delay(
            order.id,
            order.order_number,
            event.status.value,
            order.customer_id,
            order.phone,
            order.customer_email,
        )

    def notify_new_order(self, order: OrderOut) -> None:
        send_new_order_notification_task.delay(
            order.id,
            order.order_number,
            order.restaurant_id,
            len(order.items),
            str(order.total),
        )


@celery_app.task(name="order_lifecycle.services.notification_service.send_status_notification_task")
def send_status_notification_task(
    order_id: int,
    order_number: str,
    status: str,
    customer_id: str | None = None,
    phone: str | None = None,
    email: str | None = None,
) -> Dict[str, Any]:
    """
    Renders the per-status message and hands it to the channels the customer has.
    The SMS / e-mail / push gateways are outside this service, here they are logged.
    """
    message = status_message(OrderStatus(status), order_number)
    channels = []

    if phone:
        logger.info(f"[SMS] {phone}: {message['body']}")
        channels.append("sms")
    if email:
        logger.info(f"[EMAIL] {email}: {message['title']} - {order_number}")
        channels.append("email")
    if customer_id:
        logger.info(f"[PUSH] user {customer_id}: {message['title']} {message['body']}")
        channels.append("push")

    return {
        "order_id": order_id,
        "status": status,
        "channels": channels,
        "result": "sent",
    }


@celery_app.task(name="order_lifecycle.services.notification_service.send_new_order_notification_task")
def send_new_order_notification_task(
    order_id: int,
    order_number: str,
    restaurant_id: str,
    item_count: int,
    total: str,
) -> Dict[str, Any]:
    body = f"New order received! Order {order_number} - {item_count} items - {total}"
    logger.info(f"[PUSH] restaurant {restaurant_id}: {body}")
    return {
        "order_id": order_id,
        "restaurant_id": restaurant_id,
        "body": body,
        "result": "sent",
    }

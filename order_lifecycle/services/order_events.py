# order_lifecycle/services/order_events.py
"""
Watch channel for order changes.

subscribe(order_id, callback) returns a Subscription handle; there is no
module level registry, every channel instance owns its own subscribers.
Events are only published after the write has been committed, so watchers
always receive a complete snapshot.
"""
import itertools
import threading
import time
from typing import Callable, Dict

import redis
from redis.exceptions import RedisError

from order_lifecycle.domain.schemas import OrderEvent
from order_lifecycle.utils.settings import REDIS_URL
from order_lifecycle.utils.retry import redis_retry
from order_lifecycle.utils.logging import get_logger

logger = get_logger(__name__)

Callback = Callable[[OrderEvent], None]


class Subscription:
    def __init__(self, order_id: int, cancel: Callable[[], None]):
        self.order_id = order_id
        self._cancel = cancel
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._cancel()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


class InMemoryOrderEvents:
    """In-process fan-out, used by tests and single-process deployments."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._subscribers: Dict[int, Dict[int, Callback]] = {}

    def subscribe(self, order_id: int, callback: Callback) -> Subscription:
        token = next(self._tokens)
        with self._lock:
            self._subscribers.setdefault(order_id, {})[token] = callback

        def cancel() -> None:
            with self._lock:
                callbacks = self._subscribers.get(order_id)
                if callbacks is None:
                    return
                callbacks.pop(token, None)
                if not callbacks:
                    del self._subscribers[order_id]

        return Subscription(order_id, cancel)

    def subscriber_count(self, order_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(order_id, {}))

    def publish(self, event: OrderEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event.order_id, {}).values())

        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                # the change is already committed, a broken watcher must not undo the caller's result
                logger.exception(f"Order watcher failed for order {event.order_id}")


class RedisOrderEvents:
    """
    -publish: JSON snapshot on channel order:<id>:events
    -subscribe: pubsub listener thread per subscription
    """

    JOIN_TIMEOUT = 2.0
    RECONNECT_DELAY = 0.5

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def channel(order_id: int) -> str:
        return f"order:{order_id}:events"

    @redis_retry()
    def publish(self, event: OrderEvent) -> int:
        channel = self.channel(event.order_id)
        logger.info(f"Publish {event.kind} ({event.status.value}) on {channel}")
        return self.redis.publish(channel, event.model_dump_json())

    def subscribe(self, order_id: int, callback: Callback) -> Subscription:
        pubsub = self.redis.pubsub(ignore_subscribe_messages=True)

        def handler(message) -> None:
            try:
                callback(OrderEvent.model_validate_json(message["data"]))
            except Exception:
                logger.exception(f"Order watcher failed for order {order_id}")

        def on_error(error, _pubsub, _thread) -> None:
            # keeps the listener thread alive, the next poll reconnects
            logger.error(f"Pubsub listener for order {order_id} failed: {error}")
            time.sleep(self.RECONNECT_DELAY)

        pubsub.subscribe(**{self.channel(order_id): handler})
        worker = pubsub.run_in_thread(sleep_time=0.1, daemon=True, exception_handler=on_error)

        def cancel() -> None:
            worker.stop()
            worker.join(timeout=self.JOIN_TIMEOUT)
            try:
                pubsub.close()
            except RedisError as e:
                logger.warning(f"Failed to close pubsub for order {order_id}: {e}")

        return Subscription(order_id, cancel)

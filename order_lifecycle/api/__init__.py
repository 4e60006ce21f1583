# order_lifecycle/api/__init__.py
from fastapi import FastAPI

from order_lifecycle.api.routers import deliveries, health, orders, refunds
from order_lifecycle.services.menu_client import MenuClient
from order_lifecycle.services.notification_service import NotificationService
from order_lifecycle.services.order_events import RedisOrderEvents
from order_lifecycle.utils.settings import MENU_SERVICE_URL


def create_app(events=None, notifier=None, menu=None) -> FastAPI:
    app = FastAPI(
        title="Order Lifecycle Service",
        version="1.0.0",
    )

    # collaborators live on the app, not in module globals
    app.state.events = events if events is not None else RedisOrderEvents()
    app.state.notifier = notifier or NotificationService()
    app.state.menu = menu if menu is not None else (MenuClient() if MENU_SERVICE_URL else None)

    app.include_router(health.router)
    app.include_router(orders.router)
    app.include_router(deliveries.router)
    app.include_router(refunds.router)

    return app

# order_lifecycle/services/menu_client.py
import requests

from order_lifecycle.utils.settings import MENU_SERVICE_URL
from order_lifecycle.utils.retry import http_retry
from order_lifecycle.utils.logging import get_logger

logger = get_logger(__name__)


class MenuClient:
    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or MENU_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def fetch_item(self, item_id: str) -> dict | None:
        """Menu item as {id, name, price, available}; None when the menu does not know it."""
        url = f"{self.base_url}/menu-items/{item_id}"
        logger.info(f"MenuClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

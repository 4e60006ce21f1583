# order_lifecycle/menu_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Menu Service (dev mock)")


MENU_ITEMS = {
    "doro-wat": {"id": "doro-wat", "name": "Doro Wat", "price": 150.00, "available": True},
    "shiro": {"id": "shiro", "name": "Shiro", "price": 60.00, "available": True},
    "kitfo": {"id": "kitfo", "name": "Kitfo", "price": 220.00, "available": True},
    "tibs": {"id": "tibs", "name": "Tibs", "price": 180.00, "available": False},
}


@app.get("/menu-items/{item_id}")
def get_menu_item(item_id: str):
    item = MENU_ITEMS.get(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Menu item not found")
    return item

# sdk/storeclient.py
import requests
import httpx
from typing import Any, Dict, List, Optional


class StoreClient:
    def __init__(self, base_url: str = "http://localhost:8000", timeout: int = 10, session=None):
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url, *parts])

    def _send(self, method: str, *parts: str, **kwargs):
        r = self.session.request(method, self._url(*parts), timeout=self.timeout, **kwargs)
        r.raise_for_status()
        return r.json()

    def _lookup(self, *parts: str):
        # a missing record is an answer, not an error
        r = self.session.get(self._url(*parts), timeout=self.timeout)
        if r.status_code == 404:
            return None
        r.raise_for_status()
        return r.json()

    # Products
    def create_product(self, name: str, about: str, price: float, category_ids: Optional[List[str]] = None):
        payload: Dict[str, Any] = {"name": name, "about": about, "price": price}
        if category_ids:
            payload["categoryIds"] = list(category_ids)
        return self._send("POST", "products", json=payload)

    def list_products(self, name: Optional[str] = None, about: Optional[str] = None,
                      max_price: Optional[float] = None):
        params: Dict[str, Any] = {}
        if name:
            params["name"] = name
        if about:
            params["about"] = about
        if max_price is not None:
            params["price"] = max_price
        return self._send("GET", "products", params=params)

    def get_product(self, product_id: str):
        return self._lookup("products", product_id)

    def update_product(self, product_id: str, partial: bool = True, **fields):
        return self._send("PATCH" if partial else "PUT", "products", product_id, json=fields)

    def delete_product(self, product_id: str):
        return self._send("DELETE", "products", product_id)

    # Users
    def create_user(self, username: str, password: str, email: str):
        return self._send("POST", "users", json={"username": username, "password": password, "email": email})

    def list_users(self):
        return self._send("GET", "users")

    def get_user(self, user_id: str):
        return self._lookup("users", user_id)

    def update_user(self, user_id: str, partial: bool = True, **fields):
        return self._send("PATCH" if partial else "PUT", "users", user_id, json=fields)

    def delete_user(self, user_id: str):
        return self._send("DELETE", "users", user_id)

    # Orders
    def create_order(self, user_id: str, product_ids: List[str], payment: bool = False):
        return self._send("POST", "orders", json={"userId": user_id, "productIds": list(product_ids), "payment": payment})

    def list_orders(self):
        return self._send("GET", "orders")

    def get_order(self, order_id: str):
        return self._lookup("orders", order_id)

    def update_order(self, order_id: str, partial: bool = True, **fields):
        return self._send("PATCH" if partial else "PUT", "orders", order_id, json=fields)

    def delete_order(self, order_id: str):
        return self._send("DELETE", "orders", order_id)

    # Async order creation (example)
    async def create_order_async(self, user_id: str, product_ids: List[str], payment: bool = False):
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.post(self._url("orders"), json={"userId": user_id, "productIds": list(product_ids), "payment": payment})
            return r

    # Categories
    def create_category(self, name: str):
        return self._send("POST", "categories", json={"name": name})

    def list_categories(self):
        return self._send("GET", "categories")

    # Games catalog
    def list_games(self):
        return self._send("GET", "f2p-games")

    def get_game(self, game_id: str):
        return self._lookup("f2p-games", str(game_id))

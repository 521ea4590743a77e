"""
Storefront API client used by the shop and admin screens.

Wraps the REST API with httpx and keeps the shopper's cart locally until
checkout. Pass an existing httpx.Client (e.g. FastAPI's TestClient) to reuse
its transport.
"""
from typing import Dict, List, Optional

import httpx

from schemas import ORDER_TRANSITIONS, OrderStatus, effective_price

DEFAULT_BASE_URL = "http://localhost:8000"


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


def next_statuses(status: str) -> List[str]:
    """Status changes the admin console offers for an order."""
    return [s.value for s in ORDER_TRANSITIONS[OrderStatus(status)]]


class Cart:
    """Shopper's cart: product snapshots keyed by id with quantities."""

    def __init__(self):
        self._lines: Dict[str, dict] = {}

    def add(self, product: dict, quantity: int = 1):
        line = self._lines.get(product["id"])
        if line:
            line["quantity"] += quantity
        else:
            self._lines[product["id"]] = {"product": product, "quantity": quantity}

    def set_quantity(self, product_id: str, quantity: int):
        if quantity <= 0:
            self.remove(product_id)
        elif product_id in self._lines:
            self._lines[product_id]["quantity"] = quantity

    def remove(self, product_id: str):
        self._lines.pop(product_id, None)

    def clear(self):
        self._lines.clear()

    @property
    def lines(self) -> List[dict]:
        return list(self._lines.values())

    @property
    def count(self) -> int:
        return sum(line["quantity"] for line in self._lines.values())

    @property
    def subtotal(self) -> float:
        return round(sum(
            effective_price(line["product"]["price"], line["product"].get("discount")) * line["quantity"]
            for line in self._lines.values()
        ), 2)

    @property
    def shipping_total(self) -> float:
        return round(sum(line["product"].get("shippingCost", 0) * line["quantity"] for line in self._lines.values()), 2)

    def to_order_payload(self, special_request: Optional[str] = None, shipping_address: Optional[str] = None) -> dict:
        payload = {"items": [{"productId": pid, "quantity": line["quantity"]} for pid, line in self._lines.items()]}
        if special_request:
            payload["specialRequest"] = special_request
        if shipping_address:
            payload["shippingAddress"] = shipping_address
        return payload


class StorefrontClient:
    def __init__(self, base_url: str = DEFAULT_BASE_URL, http: Optional[httpx.Client] = None, timeout: float = 10.0):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self.token: Optional[str] = None
        self.user: Optional[dict] = None

    def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        resp = self.http.request(method, path, headers=headers, **kwargs)
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            raise ApiError(resp.status_code, data.get("message", resp.text))
        return data

    def _store_session(self, data: dict) -> dict:
        self.token = data["token"]
        self.user = data["user"]
        return self.user

    # Auth
    def register(self, email: str, password: str, name: str, **profile) -> dict:
        return self._store_session(self._request("POST", "/api/auth/register", json={"email": email, "password": password, "name": name, **profile}))

    def login(self, email: str, password: str) -> dict:
        return self._store_session(self._request("POST", "/api/auth/login", json={"email": email, "password": password}))

    def admin_login(self, email: str, password: str) -> dict:
        return self._store_session(self._request("POST", "/api/auth/admin/login", json={"email": email, "password": password}))

    def logout(self):
        self._request("POST", "/api/auth/logout")
        self.token = None
        self.user = None

    def me(self) -> dict:
        return self._request("GET", "/api/auth/me")["user"]

    def update_profile(self, **fields) -> dict:
        self.user = self._request("PUT", "/api/auth/profile", json=fields)["user"]
        return self.user

    def change_password(self, current_password: str, new_password: str):
        self._request("PUT", "/api/auth/change-password", json={"currentPassword": current_password, "newPassword": new_password})

    def delete_account(self):
        self._request("DELETE", "/api/auth/account")
        self.token = None
        self.user = None

    def request_password_reset(self, email: str) -> str:
        return self._request("POST", "/api/auth/reset-password-request", json={"email": email})["message"]

    # Catalog
    def products(self, **filters) -> List[dict]:
        return self._request("GET", "/api/products", params=filters)["products"]

    def product(self, product_id: str) -> dict:
        return self._request("GET", f"/api/products/{product_id}")["product"]

    def save_product(self, product: dict) -> dict:
        data = {k: v for k, v in product.items() if k not in ("id", "createdAt", "updatedAt", "effectivePrice")}
        if product.get("id"):
            return self._request("PUT", f"/api/products/{product['id']}", json=data)["product"]
        return self._request("POST", "/api/products", json=data)["product"]

    def delete_product(self, product_id: str):
        self._request("DELETE", f"/api/products/{product_id}")

    # Orders
    def place_order(self, cart: Cart, special_request: Optional[str] = None, shipping_address: Optional[str] = None) -> dict:
        order = self._request("POST", "/api/orders", json=cart.to_order_payload(special_request, shipping_address))["order"]
        cart.clear()
        return order

    def my_orders(self) -> List[dict]:
        return self._request("GET", "/api/orders/my-orders")["orders"]

    def orders(self, status: Optional[str] = None) -> List[dict]:
        params = {"status": status} if status else None
        return self._request("GET", "/api/orders", params=params)["orders"]

    def order(self, order_id: str) -> dict:
        return self._request("GET", f"/api/orders/{order_id}")["order"]

    def update_order_status(self, order_id: str, status: str) -> dict:
        return self._request("PUT", f"/api/orders/{order_id}/status", json={"status": status})["order"]

    # Reviews
    def reviews(self, product_id: str) -> List[dict]:
        return self._request("GET", f"/api/reviews/product/{product_id}")["reviews"]

    def add_review(self, product_id: str, rating: int, comment: str) -> dict:
        return self._request("POST", "/api/reviews", json={"productId": product_id, "rating": rating, "comment": comment})["review"]

    def update_review(self, review_id: str, **fields) -> dict:
        return self._request("PUT", f"/api/reviews/{review_id}", json=fields)["review"]

    def delete_review(self, review_id: str):
        self._request("DELETE", f"/api/reviews/{review_id}")

    # Settings
    def settings(self) -> dict:
        return self._request("GET", "/api/settings")["settings"]

    def update_settings(self, settings: dict) -> dict:
        data = {k: v for k, v in settings.items() if k not in ("id", "createdAt", "updatedAt")}
        return self._request("PUT", "/api/settings", json=data)["settings"]

    # Journey
    def journey(self, category: Optional[str] = None) -> List[dict]:
        params = {"category": category} if category else None
        return self._request("GET", "/api/journey", params=params)["data"]

    def journey_grouped(self) -> dict:
        return self._request("GET", "/api/journey/grouped")["data"]

    def save_journey_resource(self, resource: dict) -> dict:
        data = {k: v for k, v in resource.items() if k not in ("id", "createdAt", "updatedAt")}
        if resource.get("id"):
            return self._request("PUT", f"/api/journey/{resource['id']}", json=data)["data"]
        return self._request("POST", "/api/journey", json=data)["data"]

    def delete_journey_resource(self, resource_id: str):
        self._request("DELETE", f"/api/journey/{resource_id}")

    # Notifications
    def notifications(self, unread: bool = False) -> dict:
        params = {"unread": "true"} if unread else None
        return self._request("GET", "/api/notifications", params=params)

    def mark_notification_read(self, notification_id: str) -> dict:
        return self._request("PUT", f"/api/notifications/{notification_id}/read")["notification"]

    def mark_all_notifications_read(self) -> int:
        return self._request("PUT", "/api/notifications/read-all")["updated"]

    def close(self):
        self.http.close()

# marketplace/client.py
"""
Bearer-token client for the marketplace API.

The client keeps only the auth token; products, profile and everything else
are fetched from the server on demand.

    client = MarketplaceClient("http://localhost:3001")
    client.login("user@example.com", "Passw0rd!")
    page = client.list_products(category="books", sort="price_low")
"""
import logging
from typing import Any, Dict, List, Optional, Union

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised for every non-2xx response."""

    def __init__(self, status_code: int, message: str, errors: Optional[List[Dict[str, str]]] = None):
        self.status_code = status_code
        self.message = message
        self.errors = errors or []
        super().__init__(f"{status_code}: {message}")


class MarketplaceClient:
    def __init__(
        self,
        base_url: Union[str, httpx.Client],
        token: Optional[str] = None,
        api_prefix: str = "/api",
        timeout: float = 10.0,
    ) -> None:
        if isinstance(base_url, httpx.Client):
            # An already configured client (e.g. a TestClient)
            self._http = base_url
        else:
            self._http = httpx.Client(base_url=base_url, timeout=timeout)
        self.api_prefix = api_prefix.rstrip("/")
        self.token = token

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "MarketplaceClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ─────────────────────────────────────────────────────────────
    # Transport
    # ─────────────────────────────────────────────────────────────
    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        headers = self._headers()
        headers.update(kwargs.pop("headers", None) or {})
        response = self._http.request(
            method, f"{self.api_prefix}{path}", headers=headers, **kwargs
        )

        if response.status_code == 204:
            return {}

        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text or response.reason_phrase}

        if not response.is_success:
            logger.debug("%s %s failed with %s", method, path, response.status_code)
            raise ApiError(
                response.status_code,
                payload.get("message") or response.reason_phrase,
                payload.get("errors"),
            )
        return payload

    # ─────────────────────────────────────────────────────────────
    # Auth
    # ─────────────────────────────────────────────────────────────
    def register(self, email: str, username: str, password: str, **profile: Any) -> Dict[str, Any]:
        body = {"email": email, "username": username, "password": password, **profile}
        return self.request("POST", "/auth/register", json=body)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        payload = self.request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = payload["data"]["token"]
        return payload

    def logout(self) -> Dict[str, Any]:
        try:
            return self.request("POST", "/auth/logout")
        finally:
            self.token = None

    def me(self) -> Dict[str, Any]:
        return self.request("GET", "/auth/me")

    def change_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        payload = self.request("PUT", "/auth/password", json={
            "current_password": current_password,
            "new_password": new_password,
            "confirm_password": new_password,
        })
        # Every session was revoked server-side
        self.token = None
        return payload

    # ─────────────────────────────────────────────────────────────
    # Products
    # ─────────────────────────────────────────────────────────────
    @staticmethod
    def _query(filters: Dict[str, Any]) -> Dict[str, Any]:
        return {key: value for key, value in filters.items() if value is not None}

    def list_products(self, **filters: Any) -> Dict[str, Any]:
        """Filters: category, minPrice, maxPrice, location, page, limit, sort."""
        return self.request("GET", "/products", params=self._query(filters))

    def search_products(self, q: str, **filters: Any) -> Dict[str, Any]:
        return self.request("GET", "/products/search", params=self._query({"q": q, **filters}))

    def get_product(self, product_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/products/{product_id}")

    def create_product(self, **fields: Any) -> Dict[str, Any]:
        return self.request("POST", "/products", json=fields)

    def update_product(self, product_id: str, **fields: Any) -> Dict[str, Any]:
        return self.request("PUT", f"/products/{product_id}", json=fields)

    def delete_product(self, product_id: str) -> Dict[str, Any]:
        return self.request("DELETE", f"/products/{product_id}")

"""REST adapter for the storefront data API.

Implements every gateway contract over one ``httpx.AsyncClient``. Errors,
non-2xx responses and malformed payloads surface as ``GatewayError`` so
callers can decide how to degrade.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from bundlerec.recommender.exceptions import GatewayError
from bundlerec.recommender.models import ManualBundle, OrderSample, Product, UserProfile

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 1.2


def product_from_dict(data: Dict[str, Any]) -> Product:
    """Map an upstream product payload to a Product snapshot."""
    price = data.get("calculated_price") or data.get("price") or 0
    return Product(
        id=str(data["id"]),
        title=str(data.get("title") or data.get("name") or ""),
        vendor=str(data.get("vendor") or ""),
        type=str(data.get("product_type") or data.get("type") or ""),
        price=float(price),
        variant_id=str(data.get("variant_id") or ""),
    )


def profile_from_dict(data: Dict[str, Any]) -> UserProfile:
    return UserProfile(
        viewed_products=tuple(str(p) for p in data.get("viewed_products") or ()),
        carted_products=tuple(str(p) for p in data.get("carted_products") or ()),
        purchased_products=tuple(str(p) for p in data.get("purchased_products") or ()),
        preferred_hours=tuple(int(h) for h in data.get("preferred_hours") or ()),
        recency_score=float(data.get("recency_score") or 0),
    )


class StorefrontDataClient:
    """Adapter for the storefront catalog, order and signal endpoints."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["X-Auth-Token"] = self.token
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        client = await self._get_client()
        try:
            resp = await client.request(method, path, params=params, json=json)
            if allow_not_found and resp.status_code == 404:
                return None
            resp.raise_for_status()
            if resp.status_code == 204 or not resp.content:
                return None
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Storefront API error",
                extra={"operation": operation, "status_code": e.response.status_code},
            )
            raise GatewayError(operation, e) from e
        except (httpx.RequestError, ValueError) as e:
            raise GatewayError(operation, e) from e

    @staticmethod
    def _data(operation: str, payload: Any) -> List[Dict[str, Any]]:
        data = payload.get("data") if isinstance(payload, dict) else payload
        if not isinstance(data, list):
            raise GatewayError(operation, ValueError("expected a list payload"))
        return data

    async def fetch_product(self, product_id: str) -> Optional[Product]:
        payload = await self._request(
            "fetch_product", "GET", f"/products/{product_id}", allow_not_found=True
        )
        if payload is None:
            return None
        try:
            return product_from_dict(payload.get("data", payload))
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError("fetch_product", e) from e

    async def fetch_products_batch(self, product_ids: Sequence[str]) -> List[Product]:
        if not product_ids:
            return []
        payload = await self._request(
            "fetch_products_batch", "GET", "/products", params={"ids": ",".join(product_ids)}
        )
        products = []
        for item in self._data("fetch_products_batch", payload):
            try:
                products.append(product_from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed product", extra={"item": str(item)[:200]})
        return products

    async def fetch_top_products(self, limit: int) -> List[Product]:
        payload = await self._request(
            "fetch_top_products",
            "GET",
            "/products",
            params={"sort": "total_sold", "direction": "desc", "limit": limit},
        )
        try:
            return [product_from_dict(item) for item in self._data("fetch_top_products", payload)]
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError("fetch_top_products", e) from e

    async def fetch_recent_orders(self, anchor_product_id: str, limit: int) -> List[OrderSample]:
        payload = await self._request(
            "fetch_recent_orders",
            "GET",
            "/orders/recent",
            params={"product_id": anchor_product_id, "limit": limit},
        )
        try:
            return [
                OrderSample(
                    order_id=str(item["order_id"]),
                    line_item_product_ids=tuple(
                        str(pid) for pid in item.get("line_item_product_ids") or ()
                    ),
                )
                for item in self._data("fetch_recent_orders", payload)
            ]
        except (KeyError, TypeError) as e:
            raise GatewayError("fetch_recent_orders", e) from e

    async def fetch_user_profile(self, session_id: str) -> Optional[UserProfile]:
        payload = await self._request(
            "fetch_user_profile", "GET", f"/profiles/{session_id}", allow_not_found=True
        )
        if payload is None:
            return None
        try:
            return profile_from_dict(payload.get("data", payload))
        except (AttributeError, TypeError, ValueError) as e:
            raise GatewayError("fetch_user_profile", e) from e

    async def record_interaction(
        self, session_id: str, event: str, product_ids: Sequence[str]
    ) -> None:
        await self._request(
            "record_interaction",
            "POST",
            f"/profiles/{session_id}/events",
            json={"event": event, "product_ids": list(product_ids)},
        )

    async def fetch_manual_bundles(self, anchor_product_id: str) -> List[ManualBundle]:
        payload = await self._request(
            "fetch_manual_bundles",
            "GET",
            "/bundles",
            params={"product_id": anchor_product_id, "active": "true"},
        )
        try:
            return [
                ManualBundle(
                    bundle_id=str(item["id"]),
                    name=str(item.get("name") or ""),
                    product_ids=tuple(str(pid) for pid in item.get("product_ids") or ()),
                )
                for item in self._data("fetch_manual_bundles", payload)
            ]
        except (KeyError, TypeError) as e:
            raise GatewayError("fetch_manual_bundles", e) from e

    async def fetch_platform_recommendations(self, anchor_product_id: str) -> List[str]:
        payload = await self._request(
            "fetch_platform_recommendations",
            "GET",
            f"/products/{anchor_product_id}/recommendations",
        )
        return [
            str(item.get("id") if isinstance(item, dict) else item)
            for item in self._data("fetch_platform_recommendations", payload)
        ]

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

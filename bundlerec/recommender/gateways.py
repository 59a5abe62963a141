"""Contracts for the external data sources the engine reads from.

The engine only consumes these interfaces. Adapters live in
``bundlerec.recommender.clients`` (REST) and ``bundlerec.recommender.local``
(CSV files).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from bundlerec.recommender.models import ManualBundle, OrderSample, Product, UserProfile


class ProductCatalogGateway(Protocol):
    async def fetch_product(self, product_id: str) -> Optional[Product]: ...

    async def fetch_products_batch(self, product_ids: Sequence[str]) -> List[Product]: ...

    async def fetch_top_products(self, limit: int) -> List[Product]: ...


class OrderHistoryGateway(Protocol):
    async def fetch_recent_orders(
        self, anchor_product_id: str, limit: int
    ) -> List[OrderSample]: ...


class UserSignalStore(Protocol):
    async def fetch_user_profile(self, session_id: str) -> Optional[UserProfile]: ...

    async def record_interaction(
        self, session_id: str, event: str, product_ids: Sequence[str]
    ) -> None: ...


class MerchandisingGateway(Protocol):
    async def fetch_manual_bundles(self, anchor_product_id: str) -> List[ManualBundle]: ...


class PlatformRecommendationGateway(Protocol):
    async def fetch_platform_recommendations(self, anchor_product_id: str) -> List[str]: ...


class StorefrontGateway(
    ProductCatalogGateway,
    OrderHistoryGateway,
    UserSignalStore,
    MerchandisingGateway,
    PlatformRecommendationGateway,
    Protocol,
):
    """All data sources served by one backend."""


@dataclass
class InMemoryGateway:
    """Storefront data held in process memory.

    Backs the local CSV adapter and the test suite. Products in
    ``products`` are kept in best-seller order.
    """

    products: Dict[str, Product] = field(default_factory=dict)
    orders: List[OrderSample] = field(default_factory=list)
    profiles: Dict[str, UserProfile] = field(default_factory=dict)
    manual_bundles: List[ManualBundle] = field(default_factory=list)
    platform_recommendations: Dict[str, List[str]] = field(default_factory=dict)
    interactions: List[Tuple[str, str, Tuple[str, ...]]] = field(default_factory=list)

    async def fetch_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    async def fetch_products_batch(self, product_ids: Sequence[str]) -> List[Product]:
        return [self.products[pid] for pid in product_ids if pid in self.products]

    async def fetch_top_products(self, limit: int) -> List[Product]:
        return list(self.products.values())[:limit]

    async def fetch_recent_orders(self, anchor_product_id: str, limit: int) -> List[OrderSample]:
        matching = [o for o in self.orders if anchor_product_id in o.line_item_product_ids]
        return matching[:limit]

    async def fetch_user_profile(self, session_id: str) -> Optional[UserProfile]:
        return self.profiles.get(session_id)

    async def record_interaction(
        self, session_id: str, event: str, product_ids: Sequence[str]
    ) -> None:
        self.interactions.append((session_id, event, tuple(product_ids)))

    async def fetch_manual_bundles(self, anchor_product_id: str) -> List[ManualBundle]:
        return [b for b in self.manual_bundles if anchor_product_id in b.product_ids]

    async def fetch_platform_recommendations(self, anchor_product_id: str) -> List[str]:
        return list(self.platform_recommendations.get(anchor_product_id, []))

    async def aclose(self) -> None:
        return None

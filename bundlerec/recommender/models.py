"""Data types shared by the recommendation engine.

All types are immutable snapshots built per request. Nothing here is
persisted by the engine itself.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Reason(str, Enum):
    """Why a candidate was suggested."""

    POPULAR = "popular"
    SIMILAR_ITEMS = "similar_items"
    SIMILAR_USERS = "similar_users"
    CATEGORY = "category"
    CONTENT = "content"


class Source(str, Enum):
    """Which kind of signal produced a candidate or bundle."""

    MANUAL = "manual"
    ML = "ml"
    RULES = "rules"


class ResolveMode(str, Enum):
    BUNDLES = "bundles"
    PRODUCTS = "products"


@dataclass(frozen=True)
class Product:
    """Catalog snapshot of a product."""

    id: str
    title: str = ""
    vendor: str = ""
    type: str = ""
    price: float = 0.0
    variant_id: str = ""


@dataclass(frozen=True)
class CandidateScore:
    product_id: str
    score: float
    reason: Reason
    source: Source


@dataclass(frozen=True)
class BundleProduct:
    """A priced line inside a bundle."""

    id: str
    variant_id: str
    title: str
    price: float

    @classmethod
    def from_product(cls, product: Product) -> "BundleProduct":
        return cls(
            id=product.id,
            variant_id=product.variant_id,
            title=product.title or "Product",
            price=product.price,
        )


@dataclass(frozen=True)
class Bundle:
    """Anchor plus companions with computed pricing.

    Attributes:
        id: Deterministic identifier derived from source tag and product ids.
        name: Display name of the bundle.
        products: Ordered bundle lines, anchor first for generated bundles.
        regular_total: Sum of undiscounted prices.
        bundle_price: Discounted total, never negative.
        savings_amount: regular_total - bundle_price, never negative.
        discount_percent: Percentage applied, in [0, 100].
        status: Lifecycle status, always "active" for generated bundles.
        source: Signal source of the bundle.
    """

    id: str
    name: str
    products: Tuple[BundleProduct, ...]
    regular_total: float
    bundle_price: float
    savings_amount: float
    discount_percent: float
    status: str = "active"
    source: Source = Source.ML

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["products"] = [asdict(p) for p in self.products]
        data["source"] = self.source.value
        return data


@dataclass(frozen=True)
class UserProfile:
    """Visitor signal history (read-only input)."""

    viewed_products: Tuple[str, ...] = ()
    carted_products: Tuple[str, ...] = ()
    purchased_products: Tuple[str, ...] = ()
    preferred_hours: Tuple[int, ...] = ()
    recency_score: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not (
            self.viewed_products or self.carted_products or self.purchased_products
        )


@dataclass(frozen=True)
class OrderSample:
    order_id: str
    line_item_product_ids: Tuple[str, ...]


@dataclass(frozen=True)
class ManualBundle:
    """Merchant-curated bundle definition."""

    bundle_id: str
    name: str
    product_ids: Tuple[str, ...]


@dataclass(frozen=True)
class RequestContext:
    """Per-request context supplied by the storefront caller.

    Attributes:
        session_id: Visitor session used for personalization and tracking.
        cart_product_ids: Products already in the cart; never recommended.
        shop_aov: Shop-wide average order value, 0 when unknown.
        customer_aov: Customer average order value, 0 when unknown.
        page: Page context, e.g. "product" or "cart".
    """

    session_id: Optional[str] = None
    cart_product_ids: Tuple[str, ...] = ()
    shop_aov: float = 0.0
    customer_aov: float = 0.0
    page: str = "product"


@dataclass(frozen=True)
class ResolveOptions:
    mode: ResolveMode = ResolveMode.BUNDLES
    enable_co_purchase: bool = True
    enable_platform_recommendations: bool = True
    bundle_title: Optional[str] = None


@dataclass(frozen=True)
class RecommendationItem:
    """Entry of a flat recommendation list."""

    product_id: str
    title: str
    price: float
    variant_id: str
    score: float
    reason: Reason
    source: Source
    strategies: List[str] = field(default_factory=list)
    explanation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["reason"] = self.reason.value
        data["source"] = self.source.value
        return data

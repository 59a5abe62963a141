"""Recommendation endpoints for the BundleRec API.

Storefront widgets post the anchor product, cart contents and pricing
context and receive priced bundles or a ranked product list.
"""

import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from bundlerec.api.metrics import MetricsService
from bundlerec.config import Settings
from bundlerec.recommender.exceptions import InvalidAnchorError
from bundlerec.recommender.models import RequestContext, ResolveMode, ResolveOptions
from bundlerec.recommender.resolver import RecommendationResolver

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/recommend",
    tags=["recommendations"],
)

REASON_NO_CONTEXT = "no_context"
REASON_NO_RESULTS = "no_results"
REASON_HYBRID = "hybrid"


class ContextModel(BaseModel):
    session_id: Optional[str] = Field(default=None, description="Visitor session id")
    shop_aov: float = Field(default=0.0, description="Shop average order value")
    customer_aov: float = Field(default=0.0, description="Visitor average order value")
    page: str = Field(default="product", description="Page the widget renders on")


class RecommendRequest(BaseModel):
    """Request body shared by the bundle and product endpoints.

    Attributes:
        anchor_product_id: Product the widget is anchored on.
        cart_product_ids: Products already in the cart; the first one is
            used as anchor when ``anchor_product_id`` is missing.
        limit: Requested number of results, clamped server side.
        context: Session and pricing context.
        bundle_title: Optional display name for generated bundles.
    """

    anchor_product_id: Optional[str] = None
    cart_product_ids: List[str] = Field(default_factory=list)
    limit: Optional[int] = None
    context: ContextModel = Field(default_factory=ContextModel)
    bundle_title: Optional[str] = None

    def request_context(self) -> RequestContext:
        return RequestContext(
            session_id=self.context.session_id,
            cart_product_ids=tuple(pid for pid in self.cart_product_ids if pid),
            shop_aov=self.context.shop_aov,
            customer_aov=self.context.customer_aov,
            page=self.context.page,
        )


class BundleProductModel(BaseModel):
    id: str
    variant_id: str
    title: str
    price: float


class BundleModel(BaseModel):
    id: str
    name: str
    products: List[BundleProductModel]
    regular_total: float
    bundle_price: float
    savings_amount: float
    discount_percent: float
    status: str
    source: str


class BundleResponse(BaseModel):
    anchor_product_id: Optional[str] = None
    bundles: List[BundleModel] = Field(default_factory=list)
    reason: Optional[str] = Field(
        default=None, description="Tier that produced the bundles, or why none were returned"
    )


class RecommendationModel(BaseModel):
    product_id: str
    title: str
    price: float
    variant_id: str
    score: float
    reason: str
    source: str
    strategies: List[str]
    explanation: str


class RecommendationResponse(BaseModel):
    anchor_product_id: Optional[str] = None
    recommendations: List[RecommendationModel] = Field(default_factory=list)
    reason: Optional[str] = None


def get_resolver(request: Request) -> RecommendationResolver:
    return request.app.state.resolver


def get_metrics(request: Request) -> MetricsService:
    return request.app.state.metrics


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _options(body: RecommendRequest, settings: Settings, mode: ResolveMode) -> ResolveOptions:
    return ResolveOptions(
        mode=mode,
        enable_co_purchase=settings.enable_co_purchase,
        enable_platform_recommendations=settings.enable_platform_recommendations,
        bundle_title=body.bundle_title,
    )


@router.post("/bundles", response_model=BundleResponse)
async def recommend_bundles(
    body: RecommendRequest,
    resolver: RecommendationResolver = Depends(get_resolver),
    metrics: MetricsService = Depends(get_metrics),
    settings: Settings = Depends(get_app_settings),
) -> BundleResponse:
    """Resolve priced bundles for an anchor product.

    A request without an anchor or cart is answered with an empty list and
    ``reason="no_context"`` rather than an error, so widgets can render
    nothing without special casing.
    """
    context = body.request_context()
    try:
        anchor_id = resolver.anchor_for(body.anchor_product_id, context)
    except InvalidAnchorError:
        logger.info("Bundle request without anchor or cart")
        return BundleResponse(anchor_product_id=None, reason=REASON_NO_CONTEXT)

    start_time = time.time()
    resolution = await resolver.resolve_bundles_detailed(
        anchor_id, body.limit, context, _options(body, settings, ResolveMode.BUNDLES)
    )
    metrics.record_resolution((time.time() - start_time) * 1000, resolution.tier)

    return BundleResponse(
        anchor_product_id=anchor_id,
        bundles=[BundleModel(**bundle.to_dict()) for bundle in resolution.bundles],
        reason=resolution.tier or REASON_NO_RESULTS,
    )


@router.post("/products", response_model=RecommendationResponse)
async def recommend_products(
    body: RecommendRequest,
    resolver: RecommendationResolver = Depends(get_resolver),
    metrics: MetricsService = Depends(get_metrics),
    settings: Settings = Depends(get_app_settings),
) -> RecommendationResponse:
    """Return a hybrid-ranked flat recommendation list."""
    context = body.request_context()
    try:
        anchor_id = resolver.anchor_for(body.anchor_product_id, context)
    except InvalidAnchorError:
        logger.info("Product recommendation request without anchor or cart")
        return RecommendationResponse(anchor_product_id=None, reason=REASON_NO_CONTEXT)

    start_time = time.time()
    items = await resolver.recommend_products(
        anchor_id, body.limit, context, _options(body, settings, ResolveMode.PRODUCTS)
    )
    metrics.record_resolution(
        (time.time() - start_time) * 1000, REASON_HYBRID if items else None
    )

    return RecommendationResponse(
        anchor_product_id=anchor_id,
        recommendations=[RecommendationModel(**item.to_dict()) for item in items],
        reason=REASON_HYBRID if items else REASON_NO_RESULTS,
    )

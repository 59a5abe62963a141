"""Tiered recommendation resolver.

Tries increasingly generic signal sources for an anchor product and
returns the first tier that yields a usable bundle:

1. merchant-curated bundles
2. co-purchase statistics from recent orders
3. platform "also bought" recommendations
4. content similarity over best-sellers

Every tier recovers from its own data-source failures by returning an
empty list. Only a request without any anchor is rejected.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Sequence, Set, Union

from bundlerec.recommender.cache import CatalogService, call_with_timeout
from bundlerec.recommender.composer import (
    CONTENT_BUNDLE_NAME,
    DEFAULT_BUNDLE_NAME,
    MANUAL_BUNDLE_NAME,
    TAG_CO_PURCHASE,
    TAG_CONTENT,
    TAG_MANUAL,
    TAG_PLATFORM,
    BundleComposer,
)
from bundlerec.recommender.copurchase import DEFAULT_ORDER_SAMPLE_LIMIT, CoPurchaseAnalyzer
from bundlerec.recommender.exceptions import InvalidAnchorError
from bundlerec.recommender.filters import PriceBandFilter
from bundlerec.recommender.gateways import StorefrontGateway
from bundlerec.recommender.hybrid import COLLABORATIVE, CONTENT, POPULARITY, HybridRanker
from bundlerec.recommender.models import (
    Bundle,
    BundleProduct,
    OrderSample,
    Product,
    RecommendationItem,
    RequestContext,
    ResolveMode,
    ResolveOptions,
    Source,
    UserProfile,
)
from bundlerec.recommender.similarity import ContentSimilarityScorer

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 4
MAX_LIMIT = 12
DEFAULT_CANDIDATE_POOL_LIMIT = 75
DEFAULT_GATEWAY_TIMEOUT = 1.2
MIN_COMPANION_TAKE = 3

SERVED_EVENT = "recommendation_served"


class RequestState:
    """Per-request data shared between tiers.

    Each lookup runs at most once per request; concurrent awaiters share
    the same task.
    """

    def __init__(
        self,
        resolver: "RecommendationResolver",
        anchor_product_id: str,
        limit: int,
        context: RequestContext,
        options: ResolveOptions,
    ):
        self.resolver = resolver
        self.anchor_product_id = anchor_product_id
        self.limit = limit
        self.context = context
        self.options = options
        self.cart_ids: FrozenSet[str] = frozenset(context.cart_product_ids)
        self.exclude_ids: FrozenSet[str] = self.cart_ids | {anchor_product_id}
        self._tasks: Dict[str, "asyncio.Future[Any]"] = {}

    @property
    def take(self) -> int:
        return max(MIN_COMPANION_TAKE, self.limit)

    def _once(self, name: str, factory: Callable[[], Awaitable[Any]]) -> "asyncio.Future[Any]":
        task = self._tasks.get(name)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[name] = task
        return task

    async def anchor(self) -> Optional[Product]:
        return await self._once(
            "anchor", lambda: self.resolver.catalog.get_product(self.anchor_product_id)
        )

    async def orders(self) -> List[OrderSample]:
        return await self._once("orders", self.resolver._fetch_orders_for(self.anchor_product_id))

    async def profile(self) -> Optional[UserProfile]:
        return await self._once("profile", self.resolver._fetch_profile_for(self.context.session_id))


class BundleTier:
    """One step of the fallback chain."""

    name = "tier"

    def __init__(self, resolver: "RecommendationResolver"):
        self.resolver = resolver

    async def attempt(self, state: RequestState) -> List[Bundle]:
        raise NotImplementedError

    def enabled(self, state: RequestState) -> bool:
        return True

    async def run(self, state: RequestState) -> List[Bundle]:
        """Run the tier, treating any data-source failure as no result."""
        if not self.enabled(state):
            return []
        try:
            return await self.attempt(state)
        except Exception as e:
            logger.warning(
                "Recommendation tier failed",
                extra={
                    "tier": self.name,
                    "anchor_product_id": state.anchor_product_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return []


class ManualBundleTier(BundleTier):
    """Merchant-curated bundles, priced but otherwise returned verbatim."""

    name = "manual"

    async def attempt(self, state: RequestState) -> List[Bundle]:
        r = self.resolver
        definitions = await call_with_timeout(
            "fetch_manual_bundles",
            r.gateway.fetch_manual_bundles(state.anchor_product_id),
            r.timeout,
        )

        bundles = []
        for definition in definitions[: state.limit]:
            try:
                products = await r.catalog.get_products_batch(definition.product_ids)
            except Exception as e:
                logger.warning(
                    "Skipping manual bundle, product lookup failed",
                    extra={"bundle_id": definition.bundle_id, "error": str(e)},
                )
                continue

            bundle = r.composer.price(
                [BundleProduct.from_product(p) for p in products],
                tag=TAG_MANUAL,
                anchor_id=state.anchor_product_id,
                name=definition.name or MANUAL_BUNDLE_NAME,
                source=Source.MANUAL,
                context=state.context,
            )
            if bundle is not None:
                bundles.append(bundle)
        return bundles


class CoPurchaseTier(BundleTier):
    """Companions that historically appear in the same orders."""

    name = "co_purchase"

    def enabled(self, state: RequestState) -> bool:
        return state.options.enable_co_purchase

    async def attempt(self, state: RequestState) -> List[Bundle]:
        r = self.resolver
        anchor, orders, profile = await asyncio.gather(
            state.anchor(), state.orders(), state.profile()
        )
        if anchor is None or not orders:
            return []

        result = r.analyzer.rank(anchor.id, orders, profile, exclude_ids=state.cart_ids)
        if not result.ranked:
            return []

        candidates = await r.catalog.get_products(result.product_ids[: state.take * 2])
        companions = r.price_filter.filter(anchor.price, candidates)[: state.take]
        bundle = r.composer.compose(
            anchor,
            companions,
            tag=TAG_CO_PURCHASE,
            context=state.context,
            name=state.options.bundle_title or DEFAULT_BUNDLE_NAME,
            source=Source.ML,
        )
        return [bundle] if bundle else []


class PlatformTier(BundleTier):
    """Opaque external ranking from the commerce platform."""

    name = "platform"

    def enabled(self, state: RequestState) -> bool:
        return state.options.enable_platform_recommendations

    async def attempt(self, state: RequestState) -> List[Bundle]:
        r = self.resolver
        anchor, ranked_ids = await asyncio.gather(
            state.anchor(),
            call_with_timeout(
                "fetch_platform_recommendations",
                r.gateway.fetch_platform_recommendations(state.anchor_product_id),
                r.timeout,
            ),
        )
        if anchor is None:
            return []

        ids = [pid for pid in ranked_ids if pid and pid not in state.exclude_ids]
        if not ids:
            return []

        candidates = await r.catalog.get_products(ids[: state.take * 2])
        companions = r.price_filter.filter(anchor.price, candidates)[: state.take]
        bundle = r.composer.compose(
            anchor,
            companions,
            tag=TAG_PLATFORM,
            context=state.context,
            name=state.options.bundle_title or DEFAULT_BUNDLE_NAME,
            source=Source.ML,
        )
        return [bundle] if bundle else []


class ContentTier(BundleTier):
    """Similarity over best-sellers; succeeds whenever the pool is non-empty."""

    name = "content"

    async def attempt(self, state: RequestState) -> List[Bundle]:
        r = self.resolver
        anchor, pool = await asyncio.gather(
            state.anchor(), r.catalog.get_top_products(r.candidate_pool_limit)
        )
        if anchor is None:
            return []

        ranked = r.scorer.rank(anchor, pool, state.limit, exclude_ids=state.exclude_ids)
        bundle = r.composer.compose(
            anchor,
            [product for product, _ in ranked],
            tag=TAG_CONTENT,
            context=state.context,
            name=state.options.bundle_title or CONTENT_BUNDLE_NAME,
            source=Source.ML,
        )
        return [bundle] if bundle else []


@dataclass
class BundleResolution:
    bundles: List[Bundle] = field(default_factory=list)
    tier: Optional[str] = None


class RecommendationResolver:
    """Top-level entry point for bundles and flat recommendation lists.

    Args:
        gateway: Storefront data source implementing every gateway contract.
        catalog: Cached, bounded catalog access built on the same gateway.
        analyzer: Co-purchase analyzer.
        scorer: Content similarity scorer.
        price_filter: Price band filter for companions.
        composer: Bundle composer.
        ranker: Hybrid ranker for flat lists.
        timeout: Timeout in seconds applied to each gateway call.
        order_sample_limit: Maximum orders analyzed per request.
        candidate_pool_limit: Best-sellers loaded for content scoring.
        default_limit: Limit used when the caller gives none.
        max_limit: Upper bound for the requested limit.
    """

    def __init__(
        self,
        gateway: StorefrontGateway,
        catalog: CatalogService,
        analyzer: Optional[CoPurchaseAnalyzer] = None,
        scorer: Optional[ContentSimilarityScorer] = None,
        price_filter: Optional[PriceBandFilter] = None,
        composer: Optional[BundleComposer] = None,
        ranker: Optional[HybridRanker] = None,
        timeout: float = DEFAULT_GATEWAY_TIMEOUT,
        order_sample_limit: int = DEFAULT_ORDER_SAMPLE_LIMIT,
        candidate_pool_limit: int = DEFAULT_CANDIDATE_POOL_LIMIT,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ):
        self.gateway = gateway
        self.catalog = catalog
        self.analyzer = analyzer or CoPurchaseAnalyzer(sample_limit=order_sample_limit)
        self.scorer = scorer or ContentSimilarityScorer()
        self.price_filter = price_filter or PriceBandFilter()
        self.composer = composer or BundleComposer()
        self.ranker = ranker or HybridRanker()
        self.timeout = timeout
        self.order_sample_limit = order_sample_limit
        self.candidate_pool_limit = candidate_pool_limit
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.tiers: List[BundleTier] = [
            ManualBundleTier(self),
            CoPurchaseTier(self),
            PlatformTier(self),
            ContentTier(self),
        ]
        self._background: Set["asyncio.Task[Any]"] = set()

    # ----- request preparation -----

    def clamp_limit(self, limit: Optional[int]) -> int:
        if not limit:
            limit = self.default_limit
        return max(1, min(self.max_limit, int(limit)))

    @staticmethod
    def anchor_for(anchor_product_id: Optional[str], context: RequestContext) -> str:
        """Pick the anchor id, falling back to the first cart product.

        Raises:
            InvalidAnchorError: If neither is available.
        """
        anchor = (anchor_product_id or "").strip()
        if not anchor:
            anchor = next((pid.strip() for pid in context.cart_product_ids if pid.strip()), "")
        if not anchor:
            raise InvalidAnchorError(anchor_product_id)
        return anchor

    def _state(
        self,
        anchor_product_id: Optional[str],
        limit: Optional[int],
        context: Optional[RequestContext],
        options: Optional[ResolveOptions],
    ) -> RequestState:
        context = context or RequestContext()
        return RequestState(
            self,
            self.anchor_for(anchor_product_id, context),
            self.clamp_limit(limit),
            context,
            options or ResolveOptions(),
        )

    def _fetch_orders_for(self, anchor_product_id: str) -> Callable[[], Awaitable[List[OrderSample]]]:
        async def fetch() -> List[OrderSample]:
            orders = await call_with_timeout(
                "fetch_recent_orders",
                self.gateway.fetch_recent_orders(anchor_product_id, self.order_sample_limit),
                self.timeout,
            )
            return list(orders)

        return fetch

    def _fetch_profile_for(
        self, session_id: Optional[str]
    ) -> Callable[[], Awaitable[Optional[UserProfile]]]:
        async def fetch() -> Optional[UserProfile]:
            if not session_id:
                return None
            try:
                return await call_with_timeout(
                    "fetch_user_profile",
                    self.gateway.fetch_user_profile(session_id),
                    self.timeout,
                )
            except Exception as e:
                logger.warning(
                    "Could not fetch user profile for personalization",
                    extra={"session_id": session_id, "error": str(e)},
                )
                return None

        return fetch

    # ----- public API -----

    async def resolve(
        self,
        anchor_product_id: Optional[str],
        limit: Optional[int] = None,
        context: Optional[RequestContext] = None,
        options: Optional[ResolveOptions] = None,
    ) -> Union[List[Bundle], List[RecommendationItem]]:
        """Resolve bundles or a flat list depending on ``options.mode``."""
        options = options or ResolveOptions()
        if options.mode == ResolveMode.PRODUCTS:
            return await self.recommend_products(anchor_product_id, limit, context, options)
        return await self.resolve_bundles(anchor_product_id, limit, context, options)

    async def resolve_bundles(
        self,
        anchor_product_id: Optional[str],
        limit: Optional[int] = None,
        context: Optional[RequestContext] = None,
        options: Optional[ResolveOptions] = None,
    ) -> List[Bundle]:
        resolution = await self.resolve_bundles_detailed(anchor_product_id, limit, context, options)
        return resolution.bundles

    async def resolve_bundles_detailed(
        self,
        anchor_product_id: Optional[str],
        limit: Optional[int] = None,
        context: Optional[RequestContext] = None,
        options: Optional[ResolveOptions] = None,
    ) -> BundleResolution:
        """Walk the tiers in order and return the first non-empty result.

        Raises:
            InvalidAnchorError: If no anchor can be determined.
        """
        state = self._state(anchor_product_id, limit, context, options)
        start_time = time.time()

        logger.info(
            "Resolving bundles",
            extra={
                "anchor_product_id": state.anchor_product_id,
                "limit": state.limit,
                "cart_size": len(state.cart_ids),
            },
        )

        for tier in self.tiers:
            bundles = await tier.run(state)
            if bundles:
                logger.info(
                    "Bundles resolved",
                    extra={
                        "anchor_product_id": state.anchor_product_id,
                        "tier": tier.name,
                        "num_bundles": len(bundles),
                        "total_time_ms": round((time.time() - start_time) * 1000, 2),
                    },
                )
                self._track_served(state, [p.id for b in bundles for p in b.products])
                return BundleResolution(bundles=bundles, tier=tier.name)
            logger.debug(
                "Tier produced no bundles, falling back",
                extra={"anchor_product_id": state.anchor_product_id, "tier": tier.name},
            )

        logger.info(
            "No bundles available",
            extra={
                "anchor_product_id": state.anchor_product_id,
                "total_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return BundleResolution()

    async def recommend_products(
        self,
        anchor_product_id: Optional[str],
        limit: Optional[int] = None,
        context: Optional[RequestContext] = None,
        options: Optional[ResolveOptions] = None,
    ) -> List[RecommendationItem]:
        """Build a flat, hybrid-ranked recommendation list.

        Raises:
            InvalidAnchorError: If no anchor can be determined.
        """
        state = self._state(anchor_product_id, limit, context, options)

        anchor, orders, profile, pool = await asyncio.gather(
            self._quietly("anchor", state.anchor(), None),
            self._quietly("orders", state.orders(), []),
            state.profile(),
            self._quietly(
                "top_products", self.catalog.get_top_products(self.candidate_pool_limit), []
            ),
        )

        pool = [p for p in pool if p.id not in state.exclude_ids]
        strategy_scores: Dict[str, Dict[str, float]] = {}

        if state.options.enable_co_purchase and orders:
            result = self.analyzer.rank(
                state.anchor_product_id, orders, profile, exclude_ids=state.cart_ids
            )
            strategy_scores[COLLABORATIVE] = {pid: float(c) for pid, c in result.ranked}
        if anchor is not None and pool:
            ranked = self.scorer.rank(anchor, pool, len(pool), exclude_ids=state.exclude_ids)
            strategy_scores[CONTENT] = {p.id: score for p, score in ranked}
        if pool:
            n = len(pool)
            strategy_scores[POPULARITY] = {p.id: (n - i) / n for i, p in enumerate(pool)}

        ranked_candidates = self.ranker.rank(strategy_scores, profile, state.context.page)
        if not ranked_candidates:
            return []

        known = {p.id: p for p in pool}
        anchor_price = anchor.price if anchor is not None else 0.0
        items = []
        for index, candidate in enumerate(ranked_candidates):
            if candidate.product_id not in known:
                # Fetch unknown products a chunk at a time as the walk reaches them
                chunk = ranked_candidates[index : index + state.limit * 2]
                missing = [c.product_id for c in chunk if c.product_id not in known]
                for product in await self.catalog.get_products(missing):
                    known[product.id] = product
                for product_id in missing:
                    known.setdefault(product_id, None)

            product = known.get(candidate.product_id)
            if product is None or not self.price_filter.accepts(anchor_price, product.price):
                continue
            scored = candidate.to_candidate_score()
            items.append(
                RecommendationItem(
                    product_id=product.id,
                    title=product.title,
                    price=product.price,
                    variant_id=product.variant_id,
                    score=round(scored.score, 6),
                    reason=scored.reason,
                    source=scored.source,
                    strategies=list(candidate.strategies),
                    explanation=candidate.explanation,
                )
            )
            if len(items) >= state.limit:
                break

        self._track_served(state, [item.product_id for item in items])
        return items

    async def _quietly(self, operation: str, awaitable: Awaitable[Any], default: Any) -> Any:
        try:
            return await awaitable
        except Exception as e:
            logger.warning(
                "Signal source unavailable",
                extra={"operation": operation, "error": str(e), "error_type": type(e).__name__},
            )
            return default

    # ----- fire-and-forget tracking -----

    def _track_served(self, state: RequestState, product_ids: Sequence[str]) -> None:
        if not state.context.session_id or not product_ids:
            return
        task = asyncio.ensure_future(
            self._record(state.context.session_id, SERVED_EVENT, list(dict.fromkeys(product_ids)))
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _record(self, session_id: str, event: str, product_ids: List[str]) -> None:
        try:
            await call_with_timeout(
                "record_interaction",
                self.gateway.record_interaction(session_id, event, product_ids),
                self.timeout,
            )
        except Exception as e:
            logger.warning(
                "Interaction tracking failed",
                extra={"session_id": session_id, "event": event, "error": str(e)},
            )

    async def drain(self) -> None:
        """Wait for pending background tracking tasks."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

"""Tests for the tiered recommendation resolver.

Each scenario builds its own gateway and resolver inside ``asyncio.run`` so
semaphores and tasks belong to a single event loop.
"""

import asyncio

import pytest

from bundlerec.recommender.cache import AsyncTTLCache, CatalogService
from bundlerec.recommender.exceptions import GatewayError, InvalidAnchorError
from bundlerec.recommender.gateways import InMemoryGateway
from bundlerec.recommender.models import (
    ManualBundle,
    OrderSample,
    Product,
    RequestContext,
    ResolveMode,
    ResolveOptions,
    Source,
    UserProfile,
)
from bundlerec.recommender.resolver import SERVED_EVENT, RecommendationResolver


def _products():
    products = [
        Product(id="1", title="Trail Running Shoe", vendor="Acme", type="Shoes", price=100.0, variant_id="v1"),
        Product(id="2", title="Running Socks", vendor="Acme", type="Apparel", price=60.0, variant_id="v2"),
        Product(id="3", title="Trail Gaiters", vendor="Acme", type="Accessories", price=80.0, variant_id="v3"),
        Product(id="4", title="Keychain", vendor="Other", type="Misc", price=5.0, variant_id="v4"),
        Product(id="5", title="Hydration Vest", vendor="Acme", type="Apparel", price=120.0, variant_id="v5"),
        Product(id="6", title="Luxury Watch", vendor="Other", type="Watches", price=900.0, variant_id="v6"),
    ]
    return {p.id: p for p in products}


def _orders():
    return [
        OrderSample("o1", ("1", "2", "3")),
        OrderSample("o2", ("1", "2")),
        OrderSample("o3", ("1", "3", "4")),
        OrderSample("o4", ("1", "4")),
        OrderSample("o5", ("2", "5")),
    ]


def _gateway(**overrides):
    data = {"products": _products(), "orders": _orders()}
    data.update(overrides)
    return InMemoryGateway(**data)


class FailingGateway:
    """Every data source is down."""

    async def _fail(self, *args, **kwargs):
        raise GatewayError("test", RuntimeError("unavailable"))

    fetch_product = _fail
    fetch_products_batch = _fail
    fetch_top_products = _fail
    fetch_recent_orders = _fail
    fetch_user_profile = _fail
    record_interaction = _fail
    fetch_manual_bundles = _fail
    fetch_platform_recommendations = _fail


def _resolve(gateway, anchor="1", limit=None, context=None, options=None, drain=True, **resolver_kwargs):
    async def scenario():
        resolver = RecommendationResolver(
            gateway, CatalogService(gateway, AsyncTTLCache()), **resolver_kwargs
        )
        result = await resolver.resolve_bundles_detailed(anchor, limit, context, options)
        if drain:
            await resolver.drain()
        return result

    return asyncio.run(scenario())


def test_co_purchase_tier():
    """Test companions ranked by co-occurrence and price filtered."""
    resolution = _resolve(_gateway())

    assert resolution.tier == "co_purchase"
    bundle = resolution.bundles[0]
    # 4 co-occurs twice but is priced outside the band
    assert bundle.id == "CO_3P_1_1_2_3"
    assert [p.id for p in bundle.products] == ["1", "2", "3"]
    assert bundle.name == "Frequently Bought Together"
    assert bundle.source == Source.ML
    assert bundle.regular_total == pytest.approx(240.0)
    assert bundle.discount_percent == 22.0
    assert bundle.bundle_price == pytest.approx(187.2)


def test_manual_bundle_wins_and_skips_missing_products():
    gateway = _gateway(manual_bundles=[ManualBundle("b1", "Run Kit", ("5", "1", "missing"))])

    resolution = _resolve(gateway)

    assert resolution.tier == "manual"
    bundle = resolution.bundles[0]
    assert bundle.id == "MANUAL_2P_1_5_1"
    assert [p.id for p in bundle.products] == ["5", "1"]
    assert bundle.name == "Run Kit"
    assert bundle.source == Source.MANUAL


def test_manual_bundle_with_one_product_is_dropped():
    gateway = _gateway(manual_bundles=[ManualBundle("b1", "", ("1", "missing"))])

    resolution = _resolve(gateway)

    assert resolution.tier == "co_purchase"


def test_manual_bundles_limited_and_named():
    gateway = _gateway(
        manual_bundles=[
            ManualBundle("b1", "", ("1", "2")),
            ManualBundle("b2", "Second", ("1", "3")),
            ManualBundle("b3", "Third", ("1", "5")),
        ]
    )

    resolution = _resolve(gateway, limit=2)

    assert [b.name for b in resolution.bundles] == ["Bundle", "Second"]


def test_platform_tier_when_no_orders():
    gateway = _gateway(orders=[], platform_recommendations={"1": ["6", "5", "2", "1"]})

    resolution = _resolve(gateway)

    assert resolution.tier == "platform"
    assert resolution.bundles[0].id == "PR_3P_1_1_5_2"


def test_content_tier_as_last_resort():
    resolution = _resolve(_gateway(orders=[]))

    assert resolution.tier == "content"
    bundle = resolution.bundles[0]
    assert bundle.id.startswith("CB_3P_1_1_")
    assert bundle.name == "Complete your setup"
    assert "1" not in [p.id for p in bundle.products[1:]]


def test_feature_flags_skip_tiers():
    gateway = _gateway(platform_recommendations={"1": ["5", "2"]})
    options = ResolveOptions(enable_co_purchase=False, enable_platform_recommendations=False)

    resolution = _resolve(gateway, options=options)

    assert resolution.tier == "content"


def test_bundle_title_override():
    resolution = _resolve(_gateway(), options=ResolveOptions(bundle_title="Complete the look"))
    assert resolution.bundles[0].name == "Complete the look"


def test_cart_anchor_fallback_and_exclusion():
    """Test that the first cart item anchors and cart items are not suggested."""
    context = RequestContext(cart_product_ids=("1", "2"))

    resolution = _resolve(_gateway(), anchor=None, context=context)

    assert resolution.bundles[0].id == "CO_2P_1_1_3"


def test_same_inputs_same_bundle_id():
    first = _resolve(_gateway())
    second = _resolve(_gateway())
    assert first.bundles[0].id == second.bundles[0].id


def test_aov_context_changes_discount():
    context = RequestContext(customer_aov=100.0)
    resolution = _resolve(_gateway(), context=context)
    assert resolution.bundles[0].discount_percent == 20.0


def test_personalization_boost_changes_ranking():
    gateway = _gateway(
        orders=[
            OrderSample("o1", ("1", "2")),
            OrderSample("o2", ("1", "2")),
            OrderSample("o3", ("1", "3")),
            OrderSample("o4", ("1", "3")),
            OrderSample("o5", ("1", "3")),
            OrderSample("o6", ("1", "5")),
            OrderSample("o7", ("1", "5")),
        ],
        profiles={"s1": UserProfile(carted_products=("5",))},
    )

    plain = _resolve(gateway)
    boosted = _resolve(gateway, context=RequestContext(session_id="s1"))

    # 2 and 5 tie at two orders; 2 was seen first
    assert plain.bundles[0].id == "CO_3P_1_1_3_2"
    # carted 5: round(2 * 1.8) == 4 moves it to the top
    assert boosted.bundles[0].id == "CO_3P_1_1_5_3"


def test_all_gateways_failing_returns_empty():
    """Test that upstream failures degrade to no result, never an exception."""
    resolution = _resolve(FailingGateway(), context=RequestContext(session_id="s1"))

    assert resolution.bundles == []
    assert resolution.tier is None


def test_all_gateways_failing_flat_list_is_empty():
    gateway = FailingGateway()

    async def scenario():
        resolver = RecommendationResolver(gateway, CatalogService(gateway, AsyncTTLCache()))
        return await resolver.recommend_products("1", 4, RequestContext(session_id="s1"))

    assert asyncio.run(scenario()) == []


def test_slow_order_history_falls_back():
    class SlowOrders(InMemoryGateway):
        async def fetch_recent_orders(self, anchor_product_id, limit):
            await asyncio.sleep(1)
            return self.orders

    gateway = SlowOrders(products=_products(), orders=_orders(), platform_recommendations={"1": ["2", "3"]})

    resolution = _resolve(gateway, timeout=0.05)

    assert resolution.tier == "platform"


@pytest.mark.parametrize("anchor, cart", [(None, ()), ("", ()), ("   ", ("", "  "))])
def test_missing_anchor_raises(anchor, cart):
    with pytest.raises(InvalidAnchorError):
        _resolve(_gateway(), anchor=anchor, context=RequestContext(cart_product_ids=cart))


def test_clamp_limit():
    gateway = _gateway()
    resolver = RecommendationResolver(gateway, CatalogService(gateway, AsyncTTLCache()))

    assert resolver.clamp_limit(None) == 4
    assert resolver.clamp_limit(0) == 4
    assert resolver.clamp_limit(50) == 12
    assert resolver.clamp_limit(-3) == 1
    assert resolver.clamp_limit(6) == 6


def test_served_recommendations_recorded():
    gateway = _gateway()

    _resolve(gateway, context=RequestContext(session_id="s1"))

    assert gateway.interactions == [("s1", SERVED_EVENT, ("1", "2", "3"))]


def test_no_session_no_tracking():
    gateway = _gateway()
    _resolve(gateway)
    assert gateway.interactions == []


def test_tracking_failure_does_not_fail_resolution():
    class BrokenTracking(InMemoryGateway):
        async def record_interaction(self, session_id, event, product_ids):
            raise GatewayError("record_interaction", RuntimeError("down"))

    gateway = BrokenTracking(products=_products(), orders=_orders())

    resolution = _resolve(gateway, context=RequestContext(session_id="s1"))

    assert resolution.tier == "co_purchase"


def test_resolve_dispatches_on_mode():
    gateway = _gateway()

    async def scenario():
        resolver = RecommendationResolver(gateway, CatalogService(gateway, AsyncTTLCache()))
        bundles = await resolver.resolve("1", 4)
        items = await resolver.resolve("1", 4, options=ResolveOptions(mode=ResolveMode.PRODUCTS))
        return bundles, items

    bundles, items = asyncio.run(scenario())

    assert bundles[0].id == "CO_3P_1_1_2_3"
    assert items and all(hasattr(item, "strategies") for item in items)


def test_recommend_products_respects_band_and_exclusions():
    gateway = _gateway(profiles={"s1": UserProfile(purchased_products=("9",))})

    async def scenario():
        resolver = RecommendationResolver(gateway, CatalogService(gateway, AsyncTTLCache()))
        return await resolver.recommend_products(
            "1", 3, RequestContext(session_id="s1", cart_product_ids=("3",))
        )

    items = asyncio.run(scenario())
    ids = [item.product_id for item in items]

    assert 0 < len(ids) <= 3
    assert "1" not in ids and "3" not in ids
    # 4 and 6 are outside the 50..200 band
    assert "4" not in ids and "6" not in ids
    assert ids[0] == "2"
    assert "collaborative" in items[0].strategies
    assert items[0].explanation == "Customers who bought this also bought"


def test_recommend_products_walks_past_out_of_band_leaders():
    """Test that cheap top-ranked items do not starve an in-band match."""
    products = [
        Product(id="A", title="Trail Running Shoe", vendor="Acme", type="Shoes", price=100.0),
        Product(id="c1", title="Trail Running Laces", vendor="Acme", type="Shoes", price=1.0),
        Product(id="c2", title="Trail Running Insole", vendor="Acme", type="Shoes", price=1.5),
        Product(id="c3", title="Running Shoe Tag", vendor="Acme", type="Shoes", price=2.0),
        Product(id="c4", title="Shoe Sticker", vendor="Acme", type="Shoes", price=2.5),
        Product(id="Z", title="Camp Stove", vendor="Other", type="Outdoor", price=100.0),
    ]
    gateway = InMemoryGateway(
        products={p.id: p for p in products},
        orders=[
            OrderSample("o1", ("A", "c1", "c2", "c3", "c4")),
            OrderSample("o2", ("A", "c1", "c2", "c3", "c4")),
            OrderSample("o3", ("A", "Z")),
        ],
    )

    async def scenario():
        resolver = RecommendationResolver(gateway, CatalogService(gateway, AsyncTTLCache()))
        return await resolver.recommend_products("A", 1)

    items = asyncio.run(scenario())

    assert [item.product_id for item in items] == ["Z"]

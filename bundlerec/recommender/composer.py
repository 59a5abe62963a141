"""Bundle assembly and pricing."""

import logging
from typing import List, Optional, Sequence

from bundlerec.recommender.models import Bundle, BundleProduct, Product, RequestContext, Source
from bundlerec.recommender.pricing import DiscountCalculator, apply_discount

# Configure module logger
logger = logging.getLogger(__name__)

MIN_BUNDLE_SIZE = 2
MAX_BUNDLE_SIZE = 3

TAG_MANUAL = "MANUAL"
TAG_CO_PURCHASE = "CO"
TAG_PLATFORM = "PR"
TAG_CONTENT = "CB"

DEFAULT_BUNDLE_NAME = "Frequently Bought Together"
CONTENT_BUNDLE_NAME = "Complete your setup"
MANUAL_BUNDLE_NAME = "Bundle"


def bundle_id(tag: str, anchor_id: str, product_ids: Sequence[str]) -> str:
    """Deterministic bundle id, stable across repeated resolution."""
    return f"{tag}_{len(product_ids)}P_{anchor_id}_{'_'.join(product_ids)}"


class BundleComposer:
    """Builds priced bundles from an anchor and ranked companions."""

    def __init__(self, calculator: Optional[DiscountCalculator] = None):
        self.calculator = calculator or DiscountCalculator()

    def price(
        self,
        items: List[BundleProduct],
        *,
        tag: str,
        anchor_id: str,
        name: str,
        source: Source,
        context: RequestContext,
    ) -> Optional[Bundle]:
        """Price an ordered list of bundle lines.

        Returns None when fewer than two distinct products remain.
        """
        unique: List[BundleProduct] = []
        seen = set()
        for item in items:
            if item.id in seen:
                continue
            seen.add(item.id)
            unique.append(item)

        if len(unique) < MIN_BUNDLE_SIZE:
            return None

        regular_total = sum(p.price for p in unique)
        discount = self.calculator.discount(unique, context.shop_aov, context.customer_aov)
        bundle_price, savings = apply_discount(regular_total, discount)

        return Bundle(
            id=bundle_id(tag, anchor_id, [p.id for p in unique]),
            name=name,
            products=tuple(unique),
            regular_total=regular_total,
            bundle_price=bundle_price,
            savings_amount=savings,
            discount_percent=discount,
            status="active",
            source=source,
        )

    def compose(
        self,
        anchor: Product,
        candidates: Sequence[Product],
        *,
        tag: str,
        context: RequestContext,
        name: str = DEFAULT_BUNDLE_NAME,
        source: Source = Source.ML,
    ) -> Optional[Bundle]:
        """Compose a bundle from ranked, price-filtered candidates.

        Uses three products when at least two companions qualify, otherwise
        two. Never pads with unrelated items.
        """
        companions: List[Product] = []
        seen = {anchor.id}
        for c in candidates:
            if c.id in seen:
                continue
            seen.add(c.id)
            companions.append(c)

        if not companions:
            return None

        size = MAX_BUNDLE_SIZE if len(companions) >= 2 else MIN_BUNDLE_SIZE
        selected = companions[: size - 1]

        bundle = self.price(
            [BundleProduct.from_product(anchor)] + [BundleProduct.from_product(c) for c in selected],
            tag=tag,
            anchor_id=anchor.id,
            name=name,
            source=source,
            context=context,
        )
        if bundle is not None:
            logger.debug(
                "Composed bundle",
                extra={"bundle_id": bundle.id, "size": len(bundle.products)},
            )
        return bundle

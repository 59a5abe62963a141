"""Candidate filtering and personalization.

PriceBandFilter keeps companions within a sane price ratio of the anchor.
PersonalizationBooster reweights co-occurrence counts with visitor signals.
"""

import logging
import math
from typing import Dict, List, Optional, Sequence, TypeVar

from bundlerec.recommender.models import UserProfile

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_MIN_RATIO = 0.5
DEFAULT_MAX_RATIO = 2.0

VIEW_BOOST = 1.5
CART_BOOST = 1.8

T = TypeVar("T")


class PriceBandFilter:
    """Rejects candidates priced too far from the anchor."""

    def __init__(
        self,
        min_ratio: float = DEFAULT_MIN_RATIO,
        max_ratio: float = DEFAULT_MAX_RATIO,
    ):
        self.min_ratio = min_ratio
        self.max_ratio = max_ratio

    def accepts(self, anchor_price: float, price: float) -> bool:
        if anchor_price <= 0:
            return True
        return anchor_price * self.min_ratio <= price <= anchor_price * self.max_ratio

    def filter(self, anchor_price: float, candidates: Sequence[T]) -> List[T]:
        """Keep candidates whose ``price`` lies in the band, preserving order.

        An anchor price of zero has no meaningful ratio, so everything passes.
        """
        kept = [c for c in candidates if self.accepts(anchor_price, c.price)]
        if len(kept) < len(candidates):
            logger.debug(
                "Price band removed candidates",
                extra={
                    "anchor_price": anchor_price,
                    "removed": len(candidates) - len(kept),
                    "kept": len(kept),
                },
            )
        return kept


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class PersonalizationBooster:
    """Boosts co-occurrence counts for products the visitor engaged with.

    Carted products get the cart boost; viewed-only products get the view
    boost. A product gets at most one boost, always computed from its
    original count.
    """

    def __init__(self, view_boost: float = VIEW_BOOST, cart_boost: float = CART_BOOST):
        self.view_boost = view_boost
        self.cart_boost = cart_boost

    def boost(
        self,
        counts: Dict[str, int],
        profile: Optional[UserProfile],
    ) -> Dict[str, int]:
        if profile is None:
            return dict(counts)

        carted = set(profile.carted_products)
        viewed = set(profile.viewed_products)

        boosted = {}
        for pid, count in counts.items():
            if pid in carted:
                boosted[pid] = round_half_up(count * self.cart_boost)
            elif pid in viewed:
                boosted[pid] = round_half_up(count * self.view_boost)
            else:
                boosted[pid] = count
        return boosted

"""Co-purchase analysis over recent order history.

Builds a co-occurrence table for an anchor product and ranks companions
by how many orders contained both.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from bundlerec.recommender.filters import PersonalizationBooster
from bundlerec.recommender.models import OrderSample, UserProfile

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_ORDER_SAMPLE_LIMIT = 100

# (sample size upper bound exclusive, minimum co-occurrence)
THRESHOLD_STEPS = ((50, 2), (200, 3))
LARGE_SAMPLE_MIN_CO_OCCURRENCE = 5


def min_co_occurrence(order_count: int) -> int:
    """Minimum count a companion needs, given the sample size.

    Small samples get a permissive floor so some signal surfaces; large
    samples need a stricter floor to filter noise.
    """
    for upper, minimum in THRESHOLD_STEPS:
        if order_count < upper:
            return minimum
    return LARGE_SAMPLE_MIN_CO_OCCURRENCE


@dataclass(frozen=True)
class CoPurchaseResult:
    ranked: List[Tuple[str, int]]
    order_count: int
    threshold: int

    @property
    def product_ids(self) -> List[str]:
        return [pid for pid, _ in self.ranked]


class CoPurchaseAnalyzer:
    """Ranks companions of an anchor from order co-occurrence."""

    def __init__(
        self,
        booster: Optional[PersonalizationBooster] = None,
        sample_limit: int = DEFAULT_ORDER_SAMPLE_LIMIT,
    ):
        self.booster = booster or PersonalizationBooster()
        self.sample_limit = sample_limit

    def build_table(
        self,
        anchor_product_id: str,
        orders: Iterable[OrderSample],
        exclude_ids: Iterable[str] = (),
    ) -> Dict[str, int]:
        """Count, per companion, the orders that also contain the anchor.

        Each companion is counted once per order, so one large order cannot
        dominate. Insertion order follows first encounter.
        """
        excluded = set(exclude_ids)
        excluded.add(anchor_product_id)
        counts: Dict[str, int] = {}

        for order in orders:
            line_items = order.line_item_product_ids
            if anchor_product_id not in line_items:
                continue

            seen = set()
            for pid in line_items:
                if not pid or pid in excluded or pid in seen:
                    continue
                seen.add(pid)
                counts[pid] = counts.get(pid, 0) + 1

        return counts

    def rank(
        self,
        anchor_product_id: str,
        orders: Sequence[OrderSample],
        profile: Optional[UserProfile] = None,
        exclude_ids: Iterable[str] = (),
    ) -> CoPurchaseResult:
        """Rank companion ids for the anchor.

        Args:
            anchor_product_id: Product the companions are for.
            orders: Recent order sample; truncated to the sample limit.
            profile: Optional visitor profile used to boost counts.
            exclude_ids: Ids never returned (e.g. cart contents).

        Returns:
            CoPurchaseResult with (product_id, count) pairs, highest first.
        """
        sample = list(orders)[: self.sample_limit]
        counts = self.build_table(anchor_product_id, sample, exclude_ids)
        counts = self.booster.boost(counts, profile)

        threshold = min_co_occurrence(len(sample))
        qualifying = [(pid, c) for pid, c in counts.items() if c >= threshold]
        # sorted() is stable, so ties keep first-encountered order
        ranked = sorted(qualifying, key=lambda item: item[1], reverse=True)

        logger.info(
            "Co-purchase ranking computed",
            extra={
                "anchor_product_id": anchor_product_id,
                "order_count": len(sample),
                "threshold": threshold,
                "companions": len(counts),
                "qualifying": len(ranked),
            },
        )
        return CoPurchaseResult(ranked=ranked, order_count=len(sample), threshold=threshold)

"""Content similarity scoring.

Scores catalog products against an anchor from title tokens, vendor,
product type and price proximity. Needs no purchase history, so it is
the last-resort tier of the resolver.
"""

import logging
import re
from typing import Iterable, List, Set, Tuple

import numpy as np

from bundlerec.recommender.models import Product

# Configure module logger
logger = logging.getLogger(__name__)

VENDOR_BOOST = 0.3
TYPE_BOOST = 0.2
MAX_PRICE_BOOST = 0.3
MIN_PRICE_SCALE = 20.0
SCORE_FLOOR = 0.15
MIN_RESULTS = 3

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def tokenize(text: str) -> List[str]:
    """Lowercase, replace non-alphanumerics with spaces and split."""
    return [t for t in _NON_ALNUM.sub(" ", (text or "").lower()).split() if t]


def jaccard(a: Set[str], b: Set[str]) -> float:
    union = len(a | b) or 1
    return len(a & b) / union


class ContentSimilarityScorer:
    """Scores and ranks candidates by similarity to an anchor product."""

    def __init__(self, score_floor: float = SCORE_FLOOR):
        self.score_floor = score_floor

    def _price_boosts(self, anchor_price: float, prices: np.ndarray) -> np.ndarray:
        if anchor_price <= 0:
            return np.zeros_like(prices)
        scale = max(MIN_PRICE_SCALE, anchor_price * 0.5)
        decay = np.minimum(MAX_PRICE_BOOST, np.abs(prices - anchor_price) / scale * MAX_PRICE_BOOST)
        return np.maximum(0.0, MAX_PRICE_BOOST - decay)

    def score_all(self, anchor: Product, candidates: List[Product]) -> np.ndarray:
        """Get similarity scores for every candidate, aligned with input order."""
        if not candidates:
            return np.zeros(0)

        anchor_tokens = set(tokenize(anchor.title))
        token_scores = np.array(
            [jaccard(anchor_tokens, set(tokenize(c.title))) for c in candidates],
            dtype=float,
        )
        vendor = np.array(
            [
                VENDOR_BOOST if anchor.vendor and c.vendor == anchor.vendor else 0.0
                for c in candidates
            ]
        )
        product_type = np.array(
            [
                TYPE_BOOST if anchor.type and c.type == anchor.type else 0.0
                for c in candidates
            ]
        )
        prices = np.array([c.price for c in candidates], dtype=float)

        raw = token_scores + vendor + product_type + self._price_boosts(anchor.price, prices)
        return np.maximum(self.score_floor, raw)

    def rank(
        self,
        anchor: Product,
        candidates: Iterable[Product],
        limit: int,
        exclude_ids: Iterable[str] = (),
    ) -> List[Tuple[Product, float]]:
        """Rank candidates by score, highest first.

        Args:
            anchor: Product to compare against.
            candidates: Candidate pool (e.g. best-sellers).
            limit: Requested result count; at least three are kept.
            exclude_ids: Ids to skip besides the anchor itself.

        Returns:
            List of (product, score) tuples.
        """
        excluded = set(exclude_ids)
        excluded.add(anchor.id)

        pool = []
        seen = set()
        for c in candidates:
            if c.id in excluded or c.id in seen:
                continue
            seen.add(c.id)
            pool.append(c)

        scores = self.score_all(anchor, pool)
        order = np.argsort(-scores, kind="stable")
        take = max(MIN_RESULTS, limit)

        ranked = [(pool[int(i)], float(scores[int(i)])) for i in order[:take]]
        logger.debug(
            "Content similarity ranked",
            extra={"anchor_product_id": anchor.id, "pool": len(pool), "kept": len(ranked)},
        )
        return ranked

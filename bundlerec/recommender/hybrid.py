"""Hybrid ranking for flat recommendation lists.

Combines collaborative (co-purchase), content and popularity scores with
weights chosen from how much history the visitor has.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from bundlerec.recommender.models import CandidateScore, Reason, Source, UserProfile

# Configure module logger
logger = logging.getLogger(__name__)

COLLABORATIVE = "collaborative"
CONTENT = "content"
POPULARITY = "popularity"

TIER_BASIC = "basic"
TIER_ENHANCED = "enhanced"
TIER_FULL = "full"

TIER_WEIGHTS = {
    TIER_BASIC: {COLLABORATIVE: 0.0, CONTENT: 0.3, POPULARITY: 0.7},
    TIER_ENHANCED: {COLLABORATIVE: 0.4, CONTENT: 0.4, POPULARITY: 0.2},
    TIER_FULL: {COLLABORATIVE: 0.5, CONTENT: 0.3, POPULARITY: 0.2},
}

CART_CONTEXT_SHIFT = 0.1
PREFERRED_HOUR_MULTIPLIER = 1.1
RECENCY_MULTIPLIER = 1.05
RECENCY_THRESHOLD = 3

EXPLANATIONS = {
    COLLABORATIVE: "Customers who bought this also bought",
    CONTENT: "Similar to items you've viewed",
    POPULARITY: "Popular choice among other customers",
}
DEFAULT_EXPLANATION = "Hand picked for you"

REASONS = {
    COLLABORATIVE: (Reason.SIMILAR_USERS, Source.ML),
    CONTENT: (Reason.CONTENT, Source.ML),
    POPULARITY: (Reason.POPULAR, Source.RULES),
}


@dataclass
class RankedCandidate:
    product_id: str
    score: float
    strategies: List[str] = field(default_factory=list)

    @property
    def primary_strategy(self) -> Optional[str]:
        return self.strategies[0] if self.strategies else None

    @property
    def reason(self) -> Reason:
        return REASONS.get(self.primary_strategy, (Reason.CONTENT, Source.ML))[0]

    @property
    def source(self) -> Source:
        return REASONS.get(self.primary_strategy, (Reason.CONTENT, Source.ML))[1]

    def to_candidate_score(self) -> CandidateScore:
        return CandidateScore(self.product_id, self.score, self.reason, self.source)

    @property
    def explanation(self) -> str:
        # Strongest evidence first
        for strategy in (COLLABORATIVE, CONTENT, POPULARITY):
            if strategy in self.strategies:
                return EXPLANATIONS[strategy]
        return DEFAULT_EXPLANATION


def personalization_tier(profile: Optional[UserProfile]) -> str:
    if profile is None or profile.is_empty:
        return TIER_BASIC
    if profile.purchased_products:
        return TIER_FULL
    return TIER_ENHANCED


def strategy_weights(profile: Optional[UserProfile], page: str = "product") -> Dict[str, float]:
    """Get per-strategy weights for a visitor and page context."""
    weights = dict(TIER_WEIGHTS[personalization_tier(profile)])
    if page == "cart":
        weights[COLLABORATIVE] += CART_CONTEXT_SHIFT
        weights[CONTENT] += CART_CONTEXT_SHIFT
        weights[POPULARITY] = max(0.0, weights[POPULARITY] - 2 * CART_CONTEXT_SHIFT)
    return weights


class HybridRanker:
    """Merges strategy outputs into one ranked list."""

    def __init__(self, now: Callable[[], datetime] = datetime.now):
        self._now = now

    @staticmethod
    def _normalize_scores(scores: Mapping[str, float]) -> Dict[str, float]:
        """Scale scores to 0-1 by the strategy's maximum."""
        if not scores:
            return {}
        top = max(scores.values())
        if top <= 0:
            return {pid: 0.0 for pid in scores}
        return {pid: score / top for pid, score in scores.items()}

    def _multiplier(self, profile: Optional[UserProfile]) -> float:
        if profile is None:
            return 1.0
        multiplier = 1.0
        if profile.preferred_hours and self._now().hour in profile.preferred_hours:
            multiplier *= PREFERRED_HOUR_MULTIPLIER
        if profile.recency_score > RECENCY_THRESHOLD:
            multiplier *= RECENCY_MULTIPLIER
        return multiplier

    def rank(
        self,
        strategy_scores: Mapping[str, Mapping[str, float]],
        profile: Optional[UserProfile] = None,
        page: str = "product",
    ) -> List[RankedCandidate]:
        """Combine strategy scores into a ranked candidate list.

        Args:
            strategy_scores: Strategy name -> {product_id: raw score}.
            profile: Visitor profile driving weights and final nudges.
            page: Page context; "cart" shifts weight away from popularity.

        Returns:
            Candidates sorted by combined score, highest first.
        """
        weights = strategy_weights(profile, page)
        combined: Dict[str, RankedCandidate] = {}

        for strategy in (COLLABORATIVE, CONTENT, POPULARITY):
            weight = weights.get(strategy, 0.0)
            if weight <= 0:
                continue
            for pid, score in self._normalize_scores(strategy_scores.get(strategy, {})).items():
                entry = combined.get(pid)
                if entry is None:
                    combined[pid] = RankedCandidate(pid, score * weight, [strategy])
                else:
                    entry.score += score * weight
                    entry.strategies.append(strategy)

        multiplier = self._multiplier(profile)
        for entry in combined.values():
            entry.score *= multiplier

        ranked = sorted(combined.values(), key=lambda c: c.score, reverse=True)
        logger.info(
            "Hybrid ranking computed",
            extra={
                "tier": personalization_tier(profile),
                "weights": weights,
                "candidates": len(ranked),
                "multiplier": multiplier,
            },
        )
        return ranked

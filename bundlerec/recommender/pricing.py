"""AOV-aware bundle discount calculation.

Discounts are chosen by an ordered list of rules. The first rule whose
predicate matches decides the percentage, so context-aware overrides are
checked before the stepped value table.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

# Configure module logger
logger = logging.getLogger(__name__)

# Customer push: bundle is well past what this customer usually spends
CUSTOMER_AOV_MULTIPLIER = 1.5
CUSTOMER_PUSH_DISCOUNT = 20.0
# Margin guard: bundle is already above the shop's average order
SHOP_MARGIN_DISCOUNT = 12.0

# (upper bound exclusive, percent); the last step has no bound
VALUE_STEPS = ((50.0, 10.0), (100.0, 15.0), (200.0, 18.0))
TOP_STEP_DISCOUNT = 22.0


class Priced(Protocol):
    price: float


@dataclass(frozen=True)
class DiscountInput:
    bundle_value: float
    shop_aov: float = 0.0
    customer_aov: float = 0.0


@dataclass(frozen=True)
class DiscountRule:
    """Predicate -> percent pair evaluated in order."""

    name: str
    predicate: Callable[[DiscountInput], bool]
    percent: float


def _value_step_rules() -> List[DiscountRule]:
    rules = []
    for upper, percent in VALUE_STEPS:
        rules.append(
            DiscountRule(
                name=f"value_below_{int(upper)}",
                predicate=lambda d, upper=upper: d.bundle_value < upper,
                percent=percent,
            )
        )
    rules.append(
        DiscountRule(name="value_top", predicate=lambda d: True, percent=TOP_STEP_DISCOUNT)
    )
    return rules


DEFAULT_RULES: Sequence[DiscountRule] = (
    DiscountRule(
        name="customer_aov_push",
        predicate=lambda d: d.customer_aov > 0
        and d.bundle_value > d.customer_aov * CUSTOMER_AOV_MULTIPLIER,
        percent=CUSTOMER_PUSH_DISCOUNT,
    ),
    DiscountRule(
        name="shop_aov_margin",
        predicate=lambda d: d.shop_aov > 0 and d.bundle_value > d.shop_aov,
        percent=SHOP_MARGIN_DISCOUNT,
    ),
    *_value_step_rules(),
)


class DiscountCalculator:
    """Turns a product set and AOV context into a discount percentage."""

    def __init__(self, rules: Optional[Iterable[DiscountRule]] = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def match(self, data: DiscountInput) -> Optional[DiscountRule]:
        for rule in self.rules:
            if rule.predicate(data):
                return rule
        return None

    def discount(
        self,
        products: Sequence[Priced],
        shop_aov: float = 0.0,
        customer_aov: float = 0.0,
    ) -> float:
        """Get the discount percent for a set of products.

        Args:
            products: Items with a ``price`` attribute (undiscounted).
            shop_aov: Shop average order value, 0 when unknown.
            customer_aov: Customer average order value, 0 when unknown.

        Returns:
            Percentage in [0, 100].
        """
        data = DiscountInput(
            bundle_value=sum(p.price for p in products),
            shop_aov=shop_aov or 0.0,
            customer_aov=customer_aov or 0.0,
        )
        rule = self.match(data)
        if rule is None:
            return 0.0

        logger.debug(
            "Discount rule matched",
            extra={"rule": rule.name, "bundle_value": round(data.bundle_value, 2)},
        )
        return min(100.0, max(0.0, rule.percent))


def apply_discount(regular_total: float, discount_percent: float) -> tuple:
    """Return (bundle_price, savings_amount) for a total and percent."""
    bundle_price = max(0.0, regular_total * (1 - discount_percent / 100))
    savings_amount = max(0.0, regular_total - bundle_price)
    return bundle_price, savings_amount

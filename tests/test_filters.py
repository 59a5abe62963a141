"""Tests for the price band filter and personalization booster."""

import pytest

from bundlerec.recommender.filters import PersonalizationBooster, PriceBandFilter, round_half_up
from bundlerec.recommender.models import Product, UserProfile


@pytest.mark.parametrize(
    "price, accepted",
    [(49.99, False), (50.00, True), (100.0, True), (200.00, True), (200.01, False)],
)
def test_price_band_bounds_inclusive(price, accepted):
    """Test the band edges around a $100 anchor."""
    assert PriceBandFilter().accepts(100.0, price) is accepted


def test_price_band_filter_preserves_order():
    candidates = [
        Product(id="a", price=60.0),
        Product(id="b", price=10.0),
        Product(id="c", price=150.0),
        Product(id="d", price=500.0),
    ]

    kept = PriceBandFilter().filter(100.0, candidates)

    assert [p.id for p in kept] == ["a", "c"]


def test_price_band_passes_everything_for_free_anchor():
    candidates = [Product(id="a", price=1.0), Product(id="b", price=1000.0)]
    assert PriceBandFilter().filter(0.0, candidates) == candidates


def test_round_half_up():
    assert round_half_up(7.2) == 7
    assert round_half_up(4.5) == 5
    assert round_half_up(2.5) == 3


def test_booster_cart_boost():
    """Test that a carted product with count 4 becomes 7."""
    profile = UserProfile(carted_products=("p1",))
    assert PersonalizationBooster().boost({"p1": 4}, profile) == {"p1": 7}


def test_booster_view_boost():
    profile = UserProfile(viewed_products=("p1",))
    assert PersonalizationBooster().boost({"p1": 4}, profile) == {"p1": 6}


def test_booster_cart_replaces_view_boost():
    """Test that carted and viewed is boosted once from the original count."""
    profile = UserProfile(viewed_products=("p1",), carted_products=("p1",))
    assert PersonalizationBooster().boost({"p1": 4}, profile) == {"p1": 7}


def test_booster_leaves_other_products_and_input_untouched():
    counts = {"p1": 4, "p2": 3}
    boosted = PersonalizationBooster().boost(counts, UserProfile(viewed_products=("p1",)))

    assert boosted == {"p1": 6, "p2": 3}
    assert counts == {"p1": 4, "p2": 3}


def test_booster_without_profile_returns_copy():
    counts = {"p1": 4}
    boosted = PersonalizationBooster().boost(counts, None)

    assert boosted == counts
    assert boosted is not counts

"""Tests for content similarity scoring."""

import numpy as np
import pytest

from bundlerec.recommender.models import Product
from bundlerec.recommender.similarity import ContentSimilarityScorer, jaccard, tokenize


@pytest.fixture
def anchor():
    return Product(id="a", title="Trail Running Shoe", vendor="Acme", type="Shoes", price=100.0)


def test_tokenize():
    assert tokenize("Trail-Running SHOE, v2!") == ["trail", "running", "shoe", "v2"]
    assert tokenize("") == []


def test_jaccard():
    assert jaccard({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
    assert jaccard(set(), set()) == 0.0


def test_score_components(anchor):
    """Test token, vendor, type and price contributions."""
    twin = Product(id="b", title="Trail Running Shoe", vendor="Acme", type="Shoes", price=100.0)
    unrelated = Product(id="c", title="Desk Lamp", vendor="Other", type="Home", price=500.0)

    scores = ContentSimilarityScorer().score_all(anchor, [twin, unrelated])

    assert scores[0] == pytest.approx(1.0 + 0.3 + 0.2 + 0.3)
    assert scores[1] == pytest.approx(0.15)


def test_price_boost_decays_with_distance(anchor):
    near = Product(id="b", title="x", price=110.0)
    far = Product(id="c", title="x", price=140.0)

    scores = ContentSimilarityScorer(score_floor=0.0).score_all(anchor, [near, far])

    # scale is max(20, 50) = 50
    assert scores[0] == pytest.approx(0.3 - 10 / 50 * 0.3)
    assert scores[1] == pytest.approx(0.3 - 40 / 50 * 0.3)


def test_scores_never_below_floor(anchor):
    candidates = [Product(id=str(i), title=f"item {i}", price=1000.0 + i) for i in range(5)]
    scores = ContentSimilarityScorer().score_all(anchor, candidates)
    assert np.all(scores >= 0.15)


def test_rank_excludes_anchor_and_ids(anchor):
    pool = [
        anchor,
        Product(id="b", title="Trail Running Sock", vendor="Acme", price=20.0),
        Product(id="c", title="Running Shoe Laces", price=10.0),
        Product(id="d", title="Trail Shoe", vendor="Acme", type="Shoes", price=90.0),
    ]

    ranked = ContentSimilarityScorer().rank(anchor, pool, limit=4, exclude_ids=["c"])

    ids = [p.id for p, _ in ranked]
    assert "a" not in ids and "c" not in ids
    assert ids[0] == "d"


def test_rank_keeps_at_least_three(anchor):
    pool = [Product(id=str(i), title=f"thing {i}", price=100.0) for i in range(6)]
    ranked = ContentSimilarityScorer().rank(anchor, pool, limit=1)
    assert len(ranked) == 3


def test_rank_empty_pool(anchor):
    assert ContentSimilarityScorer().rank(anchor, [], limit=4) == []

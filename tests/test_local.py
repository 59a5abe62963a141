"""Tests for the CSV-backed local gateway."""

import asyncio

import pandas as pd
import pytest

from bundlerec.recommender.local import LocalDataGateway, load_local_gateway, load_orders


@pytest.fixture
def data_dir(tmp_path):
    pd.DataFrame(
        [
            {"product_id": "1", "title": "Shoe", "price": "100", "vendor": "Acme", "total_sold": "5"},
            {"product_id": "2", "title": "Sock", "price": "10.5", "vendor": "Acme", "total_sold": "20"},
            {"product_id": "3", "title": "Lace", "price": "", "vendor": "", "total_sold": "1"},
        ]
    ).to_csv(tmp_path / "products.csv", index=False)
    pd.DataFrame(
        [
            {"order_id": "o1", "product_id": "1", "created_at": "2024-01-01T10:00:00"},
            {"order_id": "o1", "product_id": "2", "created_at": "2024-01-01T10:00:00"},
            {"order_id": "o2", "product_id": "1", "created_at": "2024-03-01T10:00:00"},
            {"order_id": "o2", "product_id": "3", "created_at": "2024-03-01T10:00:00"},
            {"order_id": "o3", "product_id": "2", "created_at": "2024-02-01T10:00:00"},
        ]
    ).to_csv(tmp_path / "orders.csv", index=False)
    pd.DataFrame(
        [
            {"bundle_id": "b1", "name": "Kit", "product_id": "1"},
            {"bundle_id": "b1", "name": "Kit", "product_id": "3"},
        ]
    ).to_csv(tmp_path / "bundles.csv", index=False)
    pd.DataFrame(
        [
            {"session_id": "s1", "event": "viewed", "product_id": "2"},
            {"session_id": "s1", "event": "carted", "product_id": "3"},
        ]
    ).to_csv(tmp_path / "profiles.csv", index=False)
    return tmp_path


def test_products_sorted_by_total_sold(data_dir):
    gateway = LocalDataGateway.from_directory(str(data_dir))

    assert list(gateway.products) == ["2", "1", "3"]
    assert gateway.products["2"].price == 10.5
    assert gateway.products["3"].price == 0.0


def test_orders_most_recent_first(data_dir):
    orders = load_orders(data_dir / "orders.csv")

    assert [o.order_id for o in orders] == ["o2", "o3", "o1"]
    assert orders[0].line_item_product_ids == ("1", "3")


def test_gateway_queries(data_dir):
    gateway = load_local_gateway(str(data_dir))

    async def scenario():
        return (
            await gateway.fetch_recent_orders("1", 10),
            await gateway.fetch_manual_bundles("3"),
            await gateway.fetch_user_profile("s1"),
            await gateway.fetch_top_products(2),
            await gateway.fetch_platform_recommendations("1"),
        )

    orders, bundles, profile, top, platform = asyncio.run(scenario())

    assert [o.order_id for o in orders] == ["o2", "o1"]
    assert bundles[0].name == "Kit"
    assert bundles[0].product_ids == ("1", "3")
    assert profile.viewed_products == ("2",)
    assert profile.carted_products == ("3",)
    assert [p.id for p in top] == ["2", "1"]
    # platform_recommendations.csv is optional
    assert platform == []


def test_missing_products_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        LocalDataGateway.from_directory(str(tmp_path))


def test_no_data_dir_raises():
    with pytest.raises(FileNotFoundError):
        load_local_gateway("")


def test_missing_columns_raise(tmp_path):
    pd.DataFrame([{"product_id": "1", "title": "Shoe"}]).to_csv(tmp_path / "products.csv", index=False)

    with pytest.raises(ValueError, match="missing required columns"):
        LocalDataGateway.from_directory(str(tmp_path))

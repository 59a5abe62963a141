"""CSV-backed storefront data for local development and the CLI.

Loads catalog, order and merchandising exports with pandas into an
``InMemoryGateway``.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from bundlerec.recommender.gateways import InMemoryGateway
from bundlerec.recommender.models import ManualBundle, OrderSample, Product, UserProfile

# Configure module logger
logger = logging.getLogger(__name__)

PRODUCTS_FILENAME = "products.csv"
ORDERS_FILENAME = "orders.csv"
BUNDLES_FILENAME = "bundles.csv"
PROFILES_FILENAME = "profiles.csv"
PLATFORM_FILENAME = "platform_recommendations.csv"

PRODUCT_COLUMNS = {"product_id", "title", "price"}
ORDER_COLUMNS = {"order_id", "product_id"}
BUNDLE_COLUMNS = {"bundle_id", "name", "product_id"}
PROFILE_COLUMNS = {"session_id", "event", "product_id"}
PLATFORM_COLUMNS = {"product_id", "recommended_product_id"}

PROFILE_EVENTS = {"viewed": "viewed_products", "carted": "carted_products", "purchased": "purchased_products"}


def _read_csv(path: Path, required: Iterable[str]) -> pd.DataFrame:
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    missing = set(required) - set(df.columns)
    if missing:
        raise ValueError(f"{path.name} missing required columns: {missing}")
    return df


def load_products(path: Path) -> Dict[str, Product]:
    """Load products, ordered best-seller first when ``total_sold`` is present."""
    df = _read_csv(path, PRODUCT_COLUMNS)
    if "total_sold" in df.columns:
        df["_sold"] = pd.to_numeric(df["total_sold"], errors="coerce").fillna(0)
        df = df.sort_values("_sold", ascending=False, kind="stable")
    df["price"] = pd.to_numeric(df["price"], errors="coerce").fillna(0.0)

    products = {}
    for row in df.to_dict("records"):
        pid = str(row["product_id"])
        products[pid] = Product(
            id=pid,
            title=row.get("title", ""),
            vendor=row.get("vendor", ""),
            type=row.get("product_type", ""),
            price=float(row["price"]),
            variant_id=row.get("variant_id", ""),
        )
    return products


def load_orders(path: Path) -> List[OrderSample]:
    """Load order lines grouped per order, most recent order first.

    Rows are expected in chronological order unless a ``created_at``
    column is present.
    """
    df = _read_csv(path, ORDER_COLUMNS)
    if "created_at" in df.columns:
        df = df.sort_values("created_at", kind="stable")

    orders = []
    for order_id, group in df.groupby("order_id", sort=False):
        orders.append(
            OrderSample(
                order_id=str(order_id),
                line_item_product_ids=tuple(str(pid) for pid in group["product_id"]),
            )
        )
    orders.reverse()
    return orders


def load_bundles(path: Path) -> List[ManualBundle]:
    df = _read_csv(path, BUNDLE_COLUMNS)
    bundles = []
    for bundle_id, group in df.groupby("bundle_id", sort=False):
        bundles.append(
            ManualBundle(
                bundle_id=str(bundle_id),
                name=str(group["name"].iloc[0]),
                product_ids=tuple(str(pid) for pid in group["product_id"]),
            )
        )
    return bundles


def load_profiles(path: Path) -> Dict[str, UserProfile]:
    df = _read_csv(path, PROFILE_COLUMNS)
    profiles = {}
    for session_id, group in df.groupby("session_id", sort=False):
        fields = {}
        for event, attr in PROFILE_EVENTS.items():
            fields[attr] = tuple(group.loc[group["event"] == event, "product_id"])
        profiles[str(session_id)] = UserProfile(**fields)
    return profiles


def load_platform_recommendations(path: Path) -> Dict[str, List[str]]:
    df = _read_csv(path, PLATFORM_COLUMNS)
    return {
        str(pid): [str(r) for r in group["recommended_product_id"]]
        for pid, group in df.groupby("product_id", sort=False)
    }


def _optional(path: Path, loader, default):
    if not path.exists():
        logger.info(f"Optional data file not found: {path.name}")
        return default
    return loader(path)


class LocalDataGateway(InMemoryGateway):
    """InMemoryGateway populated from a directory of CSV exports."""

    @classmethod
    def from_directory(cls, data_dir: str) -> "LocalDataGateway":
        """Load all data files from ``data_dir``.

        Args:
            data_dir: Directory containing at least ``products.csv``.

        Returns:
            Populated gateway.

        Raises:
            FileNotFoundError: If the directory or products file is missing.
            ValueError: If a file lacks required columns.
        """
        root = Path(data_dir)
        products_path = root / PRODUCTS_FILENAME
        if not products_path.exists():
            raise FileNotFoundError(f"Products file not found: {products_path}")

        logger.info(f"Loading storefront data from {data_dir}")
        gateway = cls(
            products=load_products(products_path),
            orders=_optional(root / ORDERS_FILENAME, load_orders, []),
            manual_bundles=_optional(root / BUNDLES_FILENAME, load_bundles, []),
            profiles=_optional(root / PROFILES_FILENAME, load_profiles, {}),
            platform_recommendations=_optional(
                root / PLATFORM_FILENAME, load_platform_recommendations, {}
            ),
        )
        logger.info(
            "Storefront data loaded",
            extra={
                "products": len(gateway.products),
                "orders": len(gateway.orders),
                "manual_bundles": len(gateway.manual_bundles),
            },
        )
        return gateway


def load_local_gateway(data_dir: Optional[str]) -> LocalDataGateway:
    if not data_dir:
        raise FileNotFoundError("No data directory configured")
    return LocalDataGateway.from_directory(data_dir)

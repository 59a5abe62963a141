"""Generate fake storefront data for local development.

Writes ``products.csv``, ``orders.csv`` and ``bundles.csv`` in the layout
read by ``LocalDataGateway``. Orders are built around a few "kits" of
products that tend to be bought together so every recommendation tier has
something to find.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_data.py

    Then resolve bundles against it:
        $ python scripts/recommend_cli.py P001 --data-dir data
"""

import argparse
import random
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

# Default configuration constants
DEFAULT_NUM_PRODUCTS = 60
DEFAULT_NUM_ORDERS = 400
DEFAULT_DAYS_BACK = 90
DEFAULT_KIT_SIZE = 4
SECONDS_PER_DAY = 86400

VENDORS = ["Northwind", "Acme Outdoor", "Lumen Goods", "Bramble & Co"]
PRODUCT_TYPES = {
    "Camping": ["Tent", "Sleeping Bag", "Camp Stove", "Lantern", "Cooler"],
    "Coffee": ["Grinder", "Pour Over Kit", "Kettle", "Coffee Beans", "Mug"],
    "Fitness": ["Yoga Mat", "Resistance Bands", "Water Bottle", "Foam Roller", "Gym Bag"],
}


def generate_products(num_products: int = DEFAULT_NUM_PRODUCTS) -> pd.DataFrame:
    """Generate a product catalog.

    Returns:
        DataFrame with product_id, title, vendor, product_type, price,
        variant_id and total_sold columns.
    """
    if num_products <= 0:
        raise ValueError("num_products must be positive")

    types = list(PRODUCT_TYPES)
    rows = []
    for i in range(1, num_products + 1):
        product_type = types[i % len(types)]
        noun = random.choice(PRODUCT_TYPES[product_type])
        vendor = random.choice(VENDORS)
        rows.append({
            "product_id": f"P{i:03d}",
            "title": f"{vendor} {noun}",
            "vendor": vendor,
            "product_type": product_type,
            "price": round(random.uniform(8, 180), 2),
            "variant_id": f"V{i:03d}",
            "total_sold": 0,
        })
    return pd.DataFrame(rows)


def generate_orders(
    products: pd.DataFrame,
    num_orders: int = DEFAULT_NUM_ORDERS,
    end_date: Optional[datetime] = None,
) -> pd.DataFrame:
    """Generate order lines, mostly drawn from same-type product kits.

    Returns:
        DataFrame with order_id, product_id and created_at columns,
        sorted by created_at.
    """
    if num_orders <= 0:
        raise ValueError("num_orders must be positive")

    end_date = end_date or datetime.now()
    start_date = end_date - timedelta(days=DEFAULT_DAYS_BACK)

    kits: Dict[str, list] = {
        product_type: list(group["product_id"][:DEFAULT_KIT_SIZE])
        for product_type, group in products.groupby("product_type")
    }
    all_ids = list(products["product_id"])

    rows = []
    for n in range(1, num_orders + 1):
        created_at = start_date + timedelta(
            days=random.randrange(DEFAULT_DAYS_BACK),
            seconds=random.randrange(SECONDS_PER_DAY),
        )
        kit = random.choice(list(kits.values()))
        items = random.sample(kit, k=random.randint(1, len(kit)))
        if random.random() < 0.3:
            items.append(random.choice(all_ids))

        for product_id in dict.fromkeys(items):
            rows.append({
                "order_id": f"O{n:05d}",
                "product_id": product_id,
                "created_at": created_at.isoformat(),
            })

    df = pd.DataFrame(rows)
    return df.sort_values("created_at", kind="stable").reset_index(drop=True)


def generate_bundles(products: pd.DataFrame) -> pd.DataFrame:
    """One merchant-curated bundle per product type, three products each."""
    rows = []
    for n, (product_type, group) in enumerate(products.groupby("product_type"), start=1):
        for product_id in group["product_id"][-3:]:
            rows.append({
                "bundle_id": f"B{n:03d}",
                "name": f"{product_type} Starter Set",
                "product_id": product_id,
            })
    return pd.DataFrame(rows)


def main() -> None:
    """Generate all data files and print a short summary."""
    parser = argparse.ArgumentParser(description="Generate fake storefront data")
    parser.add_argument("--output-dir", default="data", help="Output directory (default: data)")
    parser.add_argument("--products", type=int, default=DEFAULT_NUM_PRODUCTS)
    parser.add_argument("--orders", type=int, default=DEFAULT_NUM_ORDERS)
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)

    print(f"Generating {args.products} products and {args.orders} orders...")
    try:
        products = generate_products(args.products)
        orders = generate_orders(products, args.orders)
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    sold = orders["product_id"].value_counts()
    products["total_sold"] = products["product_id"].map(sold).fillna(0).astype(int)
    bundles = generate_bundles(products)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    products.to_csv(output_dir / "products.csv", index=False)
    orders.to_csv(output_dir / "orders.csv", index=False)
    bundles.to_csv(output_dir / "bundles.csv", index=False)

    print(f"\nData generated successfully in {output_dir}")
    print(f"  Products: {len(products)}")
    print(f"  Orders: {orders['order_id'].nunique()} ({len(orders)} lines)")
    print(f"  Manual bundles: {bundles['bundle_id'].nunique()}")
    print("\nBest sellers:")
    print(products.sort_values("total_sold", ascending=False).head(5).to_string(index=False))


if __name__ == "__main__":
    main()

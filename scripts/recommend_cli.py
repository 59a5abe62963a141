"""CLI script for resolving bundles and recommendations locally.

Useful for testing and evaluation. Loads the CSV storefront data, resolves
bundles or a flat recommendation list for an anchor product and prints
them to the console.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from bundlerec.recommender.cache import AsyncTTLCache, CatalogService
from bundlerec.recommender.exceptions import BundleRecException
from bundlerec.recommender.local import load_local_gateway
from bundlerec.recommender.models import RequestContext, ResolveMode, ResolveOptions
from bundlerec.recommender.resolver import RecommendationResolver

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


async def resolve(
    anchor_product_id: str,
    data_dir: str = "data",
    limit: int = 4,
    mode: ResolveMode = ResolveMode.BUNDLES,
    cart: Optional[List[str]] = None,
    session_id: Optional[str] = None,
    shop_aov: float = 0.0,
    customer_aov: float = 0.0,
) -> List[dict]:
    """Resolve recommendations against local CSV data.

    Returns:
        Bundles or recommendation items as plain dictionaries.
    """
    gateway = load_local_gateway(data_dir)
    resolver = RecommendationResolver(gateway, CatalogService(gateway, AsyncTTLCache()))
    context = RequestContext(
        session_id=session_id,
        cart_product_ids=tuple(cart or ()),
        shop_aov=shop_aov,
        customer_aov=customer_aov,
    )
    results = await resolver.resolve(
        anchor_product_id, limit, context, ResolveOptions(mode=mode)
    )
    await resolver.drain()
    return [r.to_dict() for r in results]


def main() -> None:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Resolve product bundles or recommendations for an anchor product",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/recommend_cli.py P001
  python scripts/recommend_cli.py P001 --limit 2 --shop-aov 80
  python scripts/recommend_cli.py P001 --mode products --json
  python scripts/recommend_cli.py "" --cart P004 P007
        """
    )
    parser.add_argument("anchor_product_id", help="Anchor product id")
    parser.add_argument("--data-dir", default="data", help="Directory with CSV data (default: data)")
    parser.add_argument("--limit", type=int, default=4, help="Number of results (default: 4)")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ResolveMode],
        default=ResolveMode.BUNDLES.value,
        help="bundles or products (default: bundles)",
    )
    parser.add_argument("--cart", nargs="*", default=[], help="Product ids already in the cart")
    parser.add_argument("--session-id", default=None, help="Visitor session id")
    parser.add_argument("--shop-aov", type=float, default=0.0, help="Shop average order value")
    parser.add_argument("--customer-aov", type=float, default=0.0, help="Visitor average order value")
    parser.add_argument("--json", action="store_true", help="Print raw JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    try:
        results = asyncio.run(
            resolve(
                args.anchor_product_id,
                data_dir=args.data_dir,
                limit=args.limit,
                mode=ResolveMode(args.mode),
                cart=args.cart,
                session_id=args.session_id,
                shop_aov=args.shop_aov,
                customer_aov=args.customer_aov,
            )
        )
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except BundleRecException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(results, indent=2))
        return

    if not results:
        print("\nNo recommendations available.\n")
        return

    if args.mode == ResolveMode.BUNDLES.value:
        for bundle in results:
            print(f"\n{bundle['name']} [{bundle['id']}]")
            for product in bundle["products"]:
                print(f"  - {product['title']} ({product['id']}): {product['price']:.2f}")
            print(
                f"  Regular {bundle['regular_total']:.2f}, bundle {bundle['bundle_price']:.2f}"
                f" (-{bundle['discount_percent']:g}%, save {bundle['savings_amount']:.2f})"
            )
    else:
        print(f"\nRecommendations for {args.anchor_product_id}:")
        for item in results:
            print(
                f"  {item['product_id']:<10} {item['score']:.3f}  {item['title']}"
                f"  [{', '.join(item['strategies'])}]"
            )
    print()


if __name__ == "__main__":
    main()

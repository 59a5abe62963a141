"""BundleRec: product bundles and recommendations for storefronts.

This package provides a backend service that composes priced product
bundles around an anchor product, falling back from curated bundles to
co-purchase statistics, platform recommendations and content similarity.

Modules:
    api: FastAPI application and REST API endpoints
    recommender: Signal analysis, ranking, pricing and data adapters
"""

__version__ = "0.1.0"

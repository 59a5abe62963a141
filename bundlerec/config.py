"""Runtime configuration for the BundleRec service.

Values come from ``BUNDLEREC_*`` environment variables or a local ``.env``.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Data source
    data_source: Literal["local", "http"] = "local"
    data_dir: str = "data"
    catalog_api_url: str = ""
    catalog_api_token: str = ""

    # Upstream calls
    gateway_timeout_seconds: float = 1.2
    max_concurrent_lookups: int = 3

    # Product cache
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = Field(default=500, gt=0)

    # Recommendation tuning
    order_sample_limit: int = 100
    candidate_pool_limit: int = 75
    enable_co_purchase: bool = True
    enable_platform_recommendations: bool = True
    default_limit: int = 4
    max_limit: int = 12

    # Logging
    log_level: str = "INFO"

    model_config = {
        "env_prefix": "BUNDLEREC_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()

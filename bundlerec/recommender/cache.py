"""Read-through product cache and bounded catalog lookups.

``AsyncTTLCache`` is constructed explicitly and injected where needed. It
is safe for concurrent tasks on a single event loop; it is not thread-safe.
Concurrent loads of the same key share one in-flight task.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Set, Tuple

from bundlerec.recommender.gateways import ProductCatalogGateway
from bundlerec.recommender.models import Product

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 500
DEFAULT_MAX_CONCURRENCY = 3
DEFAULT_TIMEOUT_SECONDS = 1.2


class AsyncTTLCache:
    """In-memory TTL cache with at-most-one-in-flight load per key.

    Entries expire ``ttl_seconds`` after they were stored. When the cache
    is full the oldest entry is evicted first.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()
        self._in_flight: Dict[Hashable, "asyncio.Future[Any]"] = {}
        self._batch_loads: Set["asyncio.Task[None]"] = set()
        self._hits = 0
        self._misses = 0
        self._loads = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            self._misses += 1
            return None

        self._hits += 1
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if key in self._entries:
            del self._entries[key]
        while self._entries and len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
        self._entries[key] = (self._clock(), value)

    def in_flight(self, key: Hashable) -> bool:
        return key in self._in_flight

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value or load it once for all concurrent callers.

        ``None`` results are not cached. A caller that is cancelled while
        waiting does not cancel the shared load.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, loader))
            self._in_flight[key] = task
        return await asyncio.shield(task)

    async def _load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        self._loads += 1
        try:
            value = await loader()
            if value is not None:
                self.set(key, value)
            return value
        finally:
            self._in_flight.pop(key, None)

    async def get_or_load_many(
        self,
        keys: Iterable[Hashable],
        loader: Callable[[List[Hashable]], Awaitable[Mapping[Hashable, Any]]],
    ) -> Dict[Hashable, Any]:
        """Batch variant of ``get_or_load``.

        Keys already loading are awaited, not requested again. The rest go
        to a single ``loader`` call that returns a mapping of key to value;
        keys it leaves out resolve to ``None``. The first load error is
        raised after every awaited key has settled.
        """
        values: Dict[Hashable, Any] = {}
        pending: Dict[Hashable, "asyncio.Future[Any]"] = {}
        to_load: List[Hashable] = []
        for key in dict.fromkeys(keys):
            cached = self.get(key)
            if cached is not None:
                values[key] = cached
            elif key in self._in_flight:
                pending[key] = self._in_flight[key]
            else:
                to_load.append(key)

        if to_load:
            loop = asyncio.get_running_loop()
            futures = {key: loop.create_future() for key in to_load}
            self._in_flight.update(futures)
            task = asyncio.ensure_future(self._load_many(futures, loader))
            self._batch_loads.add(task)
            task.add_done_callback(self._batch_loads.discard)
            pending.update(futures)

        if pending:
            results = await asyncio.gather(
                *(asyncio.shield(f) for f in pending.values()), return_exceptions=True
            )
            for key, result in zip(pending, results):
                if isinstance(result, BaseException):
                    raise result
                values[key] = result
        return values

    async def _load_many(
        self,
        futures: Dict[Hashable, "asyncio.Future[Any]"],
        loader: Callable[[List[Hashable]], Awaitable[Mapping[Hashable, Any]]],
    ) -> None:
        self._loads += 1
        try:
            loaded = await loader(list(futures))
        except asyncio.CancelledError:
            for future in futures.values():
                future.cancel()
            raise
        except Exception as e:
            for future in futures.values():
                future.set_exception(e)
        else:
            for key, future in futures.items():
                value = loaded.get(key)
                if value is not None:
                    self.set(key, value)
                future.set_result(value)
        finally:
            for key, future in futures.items():
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hits": self._hits,
            "misses": self._misses,
            "loads": self._loads,
            "in_flight": len(self._in_flight),
        }


async def call_with_timeout(operation: str, awaitable: Awaitable[Any], timeout: float) -> Any:
    """Await ``awaitable`` with a timeout, logging when it expires."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(
            "Upstream call timed out",
            extra={"operation": operation, "timeout_s": timeout},
        )
        raise


class CatalogService:
    """Cached, bounded-concurrency access to the product catalog.

    Lookups beyond ``max_concurrency`` queue on a semaphore. Each gateway
    call has its own timeout; a failed or slow lookup yields no product for
    that id only.
    """

    def __init__(
        self,
        gateway: ProductCatalogGateway,
        cache: AsyncTTLCache,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.gateway = gateway
        self.cache = cache
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)

    @staticmethod
    def _key(product_id: str) -> str:
        return f"product:{product_id}"

    async def _fetch_one(self, product_id: str) -> Optional[Product]:
        async with self._semaphore:
            return await call_with_timeout(
                "fetch_product", self.gateway.fetch_product(product_id), self.timeout
            )

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Get one product through the cache. Errors propagate."""
        return await self.cache.get_or_load(
            self._key(product_id), lambda: self._fetch_one(product_id)
        )

    async def _safe_get(self, product_id: str) -> Optional[Product]:
        try:
            return await self.get_product(product_id)
        except Exception as e:
            logger.warning(
                "Product lookup failed",
                extra={
                    "product_id": product_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return None

    async def get_products(self, product_ids: Iterable[str]) -> List[Product]:
        """Get many products with bounded fan-out, preserving input order.

        Missing or failed ids are dropped.
        """
        unique = list(dict.fromkeys(product_ids))
        results = await asyncio.gather(*(self._safe_get(pid) for pid in unique))
        return [p for p in results if p is not None]

    async def get_products_batch(self, product_ids: Iterable[str]) -> List[Product]:
        """Get many products using one batch call for the cache misses.

        Ids another caller is already loading are awaited instead of
        fetched again.
        """
        keys = {self._key(pid): pid for pid in product_ids}

        async def load(missing: List[str]) -> Dict[str, Product]:
            async with self._semaphore:
                fetched = await call_with_timeout(
                    "fetch_products_batch",
                    self.gateway.fetch_products_batch([keys[key] for key in missing]),
                    self.timeout,
                )
            return {self._key(product.id): product for product in fetched}

        found = await self.cache.get_or_load_many(keys, load)
        return [found[key] for key in keys if found.get(key) is not None]

    async def get_top_products(self, limit: int) -> List[Product]:
        async with self._semaphore:
            products = await call_with_timeout(
                "fetch_top_products", self.gateway.fetch_top_products(limit), self.timeout
            )
        for product in products:
            self.cache.set(self._key(product.id), product)
        return list(products)[:limit]

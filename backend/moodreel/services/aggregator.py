"""
Catalog aggregator.

Fans out N page fetches per content type to the catalog, fans them back in,
and normalizes raw records into CatalogItem. A failed or timed-out page
contributes nothing and is logged; only a call where every page failed
raises.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from moodreel.core.config import settings
from moodreel.entities import CatalogItem, ContentType
from moodreel.errors import AggregateFetchError, AuthExpiredError, UpstreamRateLimitedError
from moodreel.services.tmdb_client import CatalogQuery

logger = logging.getLogger(__name__)


class CatalogService(Protocol):
    async def discover(self, content_type: ContentType, page: int, query: CatalogQuery,
                       budget: Optional[float] = None) -> Dict[str, Any]:
        ...


@dataclass
class PageResult:
    content_type: ContentType
    page: int
    items: List[CatalogItem]
    total_pages: int


@dataclass
class AggregateResult:
    by_type: Dict[ContentType, List[CatalogItem]] = field(default_factory=dict)
    total_pages: Dict[ContentType, int] = field(default_factory=dict)
    last_page: Dict[ContentType, int] = field(default_factory=dict)
    failed_pages: int = 0

    @property
    def items(self) -> List[CatalogItem]:
        out: List[CatalogItem] = []
        for items in self.by_type.values():
            out.extend(items)
        return out

    def is_empty(self) -> bool:
        return not any(self.by_type.values())

    def exhausted(self, content_type: ContentType) -> bool:
        """True once we fetched the catalog's last known page for this type."""
        total = self.total_pages.get(content_type)
        last = self.last_page.get(content_type, 0)
        return total is not None and last >= total


def normalize_records(raw_items: Iterable[Dict[str, Any]], content_type: ContentType,
                      query: Optional[CatalogQuery] = None) -> List[CatalogItem]:
    """Convert raw catalog records into CatalogItem, dropping malformed or filtered-out ones."""
    items: List[CatalogItem] = []
    for raw in raw_items or []:
        if not isinstance(raw, dict) or raw.get("id") is None:
            continue
        try:
            item = CatalogItem.from_raw(raw, content_type)
        except (TypeError, ValueError) as e:
            logger.debug(f"[Aggregator] Skipping malformed {content_type.value} record {raw.get('id')}: {e}")
            continue
        if query is not None and not query.accepts(item):
            continue
        items.append(item)
    return items


class CatalogAggregator:
    def __init__(self, catalog: CatalogService, page_timeout: Optional[float] = None):
        self.catalog = catalog
        self.page_timeout = page_timeout or settings.page_timeout_seconds

    async def fetch_and_normalize(self, content_type: ContentType, query: CatalogQuery, page: int) -> PageResult:
        """One page fetch + normalization, bounded by the page timeout.

        Used identically by the initial fan-out, the fallback steps and load-more.
        """
        payload = await asyncio.wait_for(
            self.catalog.discover(content_type, page, query, budget=self.page_timeout),
            timeout=self.page_timeout,
        )
        items = normalize_records(payload.get("items") or [], content_type, query)
        return PageResult(
            content_type=content_type,
            page=page,
            items=items,
            total_pages=int(payload.get("totalPages") or 0),
        )

    async def fetch(
        self,
        content_types: Sequence[ContentType],
        query: CatalogQuery,
        page_count: int,
        start_pages: Optional[Dict[ContentType, int]] = None,
    ) -> AggregateResult:
        """Fetch page_count pages for each content type concurrently.

        start_pages maps a content type to its first page (defaults to 1), so
        load-more can continue where the previous fetch stopped.
        """
        start_pages = start_pages or {}
        plan = []
        for content_type in content_types:
            first = start_pages.get(content_type, 1)
            for page in range(first, first + page_count):
                plan.append((content_type, page))

        if not plan:
            return AggregateResult()

        results = await asyncio.gather(
            *(self.fetch_and_normalize(ct, query, page) for ct, page in plan),
            return_exceptions=True,
        )

        aggregate = AggregateResult(by_type={ct: [] for ct in content_types})
        failures: List[BaseException] = []
        for (content_type, page), result in zip(plan, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.TimeoutError):
                    logger.warning(f"[Aggregator] {content_type.value} page {page} timed out after {self.page_timeout}s")
                else:
                    logger.warning(f"[Aggregator] {content_type.value} page {page} failed: {result!r}")
                failures.append(result)
                aggregate.failed_pages += 1
                continue
            aggregate.by_type[content_type].extend(result.items)
            aggregate.total_pages[content_type] = result.total_pages
            aggregate.last_page[content_type] = max(aggregate.last_page.get(content_type, 0), page)

        if len(failures) == len(plan):
            self._raise_total_failure(failures, content_types)

        logger.info(
            "[Aggregator] "
            + ", ".join(f"{ct.value}={len(items)}" for ct, items in aggregate.by_type.items())
            + f" ({aggregate.failed_pages}/{len(plan)} pages failed)"
        )
        return aggregate

    @staticmethod
    def _raise_total_failure(failures: List[BaseException], content_types: Sequence[ContentType]) -> None:
        for exc in failures:
            if isinstance(exc, AuthExpiredError):
                raise exc
        for exc in failures:
            if isinstance(exc, UpstreamRateLimitedError):
                raise exc
        types = ",".join(ct.value for ct in content_types)
        raise AggregateFetchError(f"All {len(failures)} page fetches failed for {types}", failures=failures)

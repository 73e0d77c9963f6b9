"""
Serving-side operations besides search: reindex, metrics, index stats.

The process keeps one inverted-index cache and one result cache; they are
created here and handed to the builder, search and ranking objects that
need them.
"""
import logging
import threading
from functools import lru_cache
from typing import Iterable, Optional

from django.db import connections
from django.db.models import Sum

from webindex import conf
from webindex.errors import ComputationError, IndexingError
from webindex.models import Document, IndexStat, Posting, TagPosting, Term

from .indexer import IndexBuilder, IndexingProgress
from .inverted_index import InvertedIndexCache
from .metrics import MetricsComputer
from .ranking import RankingEngine
from .result_cache import ResultCache
from .search_service import SearchService

logger = logging.getLogger(__name__)


def _in_background(name, func):
    def target():
        try:
            func()
        except Exception:
            logger.exception("Background task %s failed", name)
        finally:
            connections.close_all()

    thread = threading.Thread(target=target, name=name, daemon=True)
    thread.start()
    return thread


class IndexService:

    def __init__(self, inverted_cache: Optional[InvertedIndexCache] = None,
                 result_cache: Optional[ResultCache] = None,
                 progress: Optional[IndexingProgress] = None):
        self.inverted_cache = inverted_cache or InvertedIndexCache()
        self.result_cache = result_cache or ResultCache(
            ttl_seconds=conf.get("CACHE_TTL_SECONDS"),
            max_entries=conf.get("CACHE_MAX_ENTRIES"),
        )
        self.progress = progress or IndexingProgress()
        self.builder = IndexBuilder(self.inverted_cache, self.result_cache, self.progress)
        self.metrics = MetricsComputer()
        self.ranking = RankingEngine(self.inverted_cache)
        self._metrics_lock = threading.Lock()
        self.last_thread = None

    # ---------------------------------------------------------------
    # reindex
    # ---------------------------------------------------------------
    def reindex(self, urls: Optional[Iterable[str]] = None, background=False):
        """Index the given stored pages (all stored pages when ``urls`` is None)."""
        if urls is None:
            urls = list(Document.objects.order_by("id").values_list("url", flat=True))
        else:
            urls = [u for u in urls if u]
        pages = {url: None for url in urls}

        if self.progress.in_progress:
            return {"status": "warning", "message": "indexing already in progress",
                    "progress": self.progress.snapshot()}

        if background:
            self.last_thread = _in_background("reindex", lambda: self.builder.run(pages))
            return {"status": "started", "message": f"indexing {len(pages)} pages",
                    "progress": self.progress.snapshot()}

        try:
            report = self.builder.run(pages)
        except IndexingError as exc:
            return {"status": "warning", "message": str(exc), "progress": self.progress.snapshot()}
        status = "success" if not report.failed and not report.missing else "completed_with_errors"
        return {"status": status, "report": report.to_dict(), "progress": self.progress.snapshot()}

    # ---------------------------------------------------------------
    # metrics
    # ---------------------------------------------------------------
    def compute_metrics(self, background=False):
        if background:
            self.last_thread = _in_background("metrics", self._compute_metrics)
            return {"status": "started"}
        return self._compute_metrics()

    def _compute_metrics(self):
        if not self._metrics_lock.acquire(blocking=False):
            return {"status": "warning", "message": "metrics computation already running"}
        try:
            report = self.metrics.compute_and_store_metrics()
            self.inverted_cache.clear()
            self.result_cache.clear()
            return {"status": "success", "report": report.to_dict()}
        except ComputationError as exc:
            logger.error("Metrics computation failed: %s", exc)
            return {"status": "error", "message": str(exc)}
        finally:
            self._metrics_lock.release()

    def compute_pagerank(self, damping=None, iterations=None):
        try:
            scores = self.ranking.compute_and_store_pagerank(damping=damping, iterations=iterations)
        except ComputationError as exc:
            logger.error("PageRank computation failed, keeping previous scores: %s", exc)
            return {"status": "error", "message": str(exc)}
        self.result_cache.clear()
        return {"status": "success", "documents": len(scores)}

    # ---------------------------------------------------------------
    # stats
    # ---------------------------------------------------------------
    def get_index_stats(self):
        stats = dict(IndexStat.objects.values_list("key", "value"))
        # word occurrences inside p / h1 / h2 / h3 elements
        tag_frequencies = dict(
            TagPosting.objects.values("tag").annotate(total=Sum("frequency")).values_list("tag", "total")
        )
        return {
            "word_count": Term.objects.count(),
            "document_count": Document.objects.count(),
            "posting_count": Posting.objects.count(),
            "tag_posting_count": TagPosting.objects.count(),
            "tag_frequencies": tag_frequencies,
            "indexed_documents": Document.objects.filter(last_indexed__isnull=False).count(),
            "stats": stats,
            "indexing": self.progress.snapshot(),
        }


@lru_cache(maxsize=1)
def get_index_service() -> IndexService:
    return IndexService()


@lru_cache(maxsize=1)
def get_search_service() -> SearchService:
    index_service = get_index_service()
    return SearchService(
        result_cache=index_service.result_cache,
        ranking=index_service.ranking,
    )

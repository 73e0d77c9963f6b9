"""
Query Engine entry point.

search(query) -> parse -> candidate documents -> score + snippet in batches
-> stable sort -> (optional PageRank blend) -> page.

Nothing raised while answering a query leaves search(): parse errors and
unexpected failures come back as an empty response carrying a message.
"""
import logging
import math
import time
from collections import Counter
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, List, Optional

from webindex import conf
from webindex.errors import QueryParseError
from webindex.models import Document, Posting

from .concurrency import run_batches, split_into_batches
from .phrase_search import PhraseMatcher
from .query_parser import QueryPlan, QueryShape, parse_query
from .ranking import RankingEngine
from .result_cache import ResultCache, normalize_key
from .scoring import DocumentView, QueryScorer, ScoringContext
from .snippets import describe, make_snippet

logger = logging.getLogger(__name__)

ORDERS = ("blend", "relevance")
MAX_PAGE_SIZE = 100


@dataclass
class SearchResult:
    id: int
    url: str
    title: str
    score: float
    snippet: str = ""
    description: str = ""
    relevance: float = 0.0
    pagerank: float = 0.0

    def to_dict(self):
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "score": self.score,
            "snippet": self.snippet,
            "description": self.description,
            "relevance": self.relevance,
            "pagerank": self.pagerank,
        }


@dataclass
class ResultSet:
    """Everything a query produced, before pagination. This is what gets cached."""
    plan: QueryPlan
    results: List[SearchResult] = field(default_factory=list)
    total_results: int = 0
    partial: bool = False


@dataclass
class SearchResponse:
    query: str
    results: List[SearchResult] = field(default_factory=list)
    total_results: int = 0
    total_pages: int = 0
    page: int = 1
    page_size: int = 10
    order: str = "blend"
    plan: Optional[QueryPlan] = None
    message: Optional[str] = None
    partial: bool = False
    from_cache: bool = False
    elapsed_ms: float = 0.0

    def to_dict(self):
        plan = self.plan
        return {
            "query": self.query,
            "results": [r.to_dict() for r in self.results],
            "totalResults": self.total_results,
            "totalPages": self.total_pages,
            "page": self.page,
            "pageSize": self.page_size,
            "order": self.order,
            "operator": plan.operator if plan else None,
            "phrases": list(plan.phrases) if plan else [],
            "terms": list(plan.terms) if plan else [],
            "message": self.message,
            "partial": self.partial,
            "fromCache": self.from_cache,
            "elapsedMs": round(self.elapsed_ms, 2),
        }


def merge_candidates(operator: str, left: List[int], right: List[int]) -> List[int]:
    """AND / OR / NOT over two ordered id lists; order of first appearance kept."""
    right_set = set(right)
    if operator == "AND":
        return [d for d in left if d in right_set]
    if operator == "NOT":
        return [d for d in left if d not in right_set]
    left_set = set(left)
    return list(left) + [d for d in right if d not in left_set]


def overlap_candidates(posting_lists: List[List[int]], fallback_limit: int) -> List[int]:
    """
    All-terms intersection; when empty, documents holding at least half the
    terms; when still empty, the documents with the largest overlap (capped).
    """
    n = len(posting_lists)
    counts = Counter()
    seen = []
    for ids in posting_lists:
        for doc_id in ids:
            if doc_id not in counts:
                seen.append(doc_id)
            counts[doc_id] += 1
    if not seen:
        return []

    matching_all = [d for d in seen if counts[d] == n]
    if matching_all:
        return matching_all

    threshold = math.ceil(n / 2)
    relaxed = [d for d in seen if counts[d] >= threshold]
    if relaxed:
        return sorted(relaxed, key=lambda d: -counts[d])

    best = max(counts.values())
    return [d for d in seen if counts[d] == best][:fallback_limit]


class SearchService:

    def __init__(self, result_cache: Optional[ResultCache] = None,
                 phrase_matcher: Optional[PhraseMatcher] = None,
                 scorer: Optional[QueryScorer] = None,
                 ranking: Optional[RankingEngine] = None):
        self.result_cache = result_cache or ResultCache(
            ttl_seconds=conf.get("CACHE_TTL_SECONDS"),
            max_entries=conf.get("CACHE_MAX_ENTRIES"),
        )
        self.phrase_matcher = phrase_matcher or PhraseMatcher()
        self.scorer = scorer or QueryScorer()
        self.ranking = ranking or RankingEngine()

    # ---------------------------------------------------------------
    # public
    # ---------------------------------------------------------------
    def search(self, query: str, page=1, page_size=10, order: Optional[str] = None) -> SearchResponse:
        start = time.time()
        page, page_size = self._paging(page, page_size)
        order = order if order in ORDERS else conf.get("DEFAULT_ORDER")
        response = SearchResponse(query=query or "", page=page, page_size=page_size, order=order)

        try:
            plan = parse_query(query)
        except QueryParseError as exc:
            response.message = str(exc)
            return self._finish(response, start)
        response.plan = plan

        if plan.is_empty:
            response.message = "query has no searchable words"
            return self._finish(response, start)

        computed = []

        def compute():
            computed.append(True)
            return self.run_query(plan, order)

        try:
            result_set = self.result_cache.get_or_compute(
                normalize_key(query, order), compute, cacheable=lambda rs: not rs.partial
            )
        except Exception:
            logger.exception("Search failed for %r", query)
            response.message = "search failed, please try again"
            return self._finish(response, start)

        offset = (page - 1) * page_size
        response.results = result_set.results[offset: offset + page_size]
        response.total_results = result_set.total_results
        response.total_pages = math.ceil(result_set.total_results / page_size)
        response.partial = result_set.partial
        response.from_cache = not computed
        if result_set.partial:
            response.message = "some results could not be loaded in time"
        elif not result_set.results:
            response.message = "no results"
        return self._finish(response, start)

    def describe_query(self, query: str) -> Dict:
        """How a query is understood, without running it."""
        try:
            plan = parse_query(query)
        except QueryParseError as exc:
            return {"originalQuery": query, "error": str(exc)}
        return {
            "originalQuery": query,
            "shape": plan.shape.value,
            "isPhraseQuery": plan.shape is not QueryShape.FREE_TEXT,
            "phrases": list(plan.phrases),
            "stemmedWords": list(plan.terms),
            "operator": plan.operator,
        }

    # ---------------------------------------------------------------
    # candidates
    # ---------------------------------------------------------------
    def find_candidates(self, plan: QueryPlan) -> List[int]:
        if plan.shape is QueryShape.BOOLEAN:
            # operands are full sets, bounded only by the candidate limit
            limit = conf.get("PHRASE_CANDIDATE_LIMIT")
            left = self.phrase_matcher.resolve(plan.phrases[0], max_matches=limit)
            right = self.phrase_matcher.resolve(plan.phrases[1], max_matches=limit)
            return merge_candidates(plan.operator, left, right)
        if plan.shape is QueryShape.PHRASE:
            return self.phrase_matcher.resolve(plan.phrases[0])
        return self.free_text_candidates(plan.terms)

    def free_text_candidates(self, terms) -> List[int]:
        limit = conf.get("POSTING_LIMIT")
        posting_lists = [
            list(
                Posting.objects.filter(term__text=term, frequency__gt=0)
                .order_by("document_id")
                .values_list("document_id", flat=True)[:limit]
            )
            for term in terms
        ]
        return overlap_candidates(posting_lists, conf.get("FALLBACK_RESULT_LIMIT"))

    # ---------------------------------------------------------------
    # scoring + assembly
    # ---------------------------------------------------------------
    def run_query(self, plan: QueryPlan, order: str) -> ResultSet:
        doc_ids = self.find_candidates(plan)[: conf.get("MAX_CANDIDATES")]
        result_set = ResultSet(plan=plan)
        if not doc_ids:
            return result_set

        # rows are read here; workers only do CPU work
        documents = Document.objects.in_bulk(doc_ids)
        ordered = [documents[d] for d in doc_ids if d in documents]
        context = ScoringContext.load(plan.terms, doc_ids)

        outcome = run_batches(
            partial(self.assemble_batch, plan, context),
            split_into_batches(ordered, conf.get("FETCH_BATCH_SIZE")),
            conf.get("FETCH_WORKERS"),
            timeout=conf.get("FETCH_TIMEOUT_SECONDS"),
        )
        results = [r for batch in outcome.results if batch for r in batch]
        results.sort(key=lambda r: r.score, reverse=True)

        pageranks = self.ranking.stored_pagerank([r.id for r in results])
        for r in results:
            r.pagerank = pageranks.get(r.id, 0.0)

        if order == "blend" and plan.shape is QueryShape.FREE_TEXT:
            blended = self.ranking.blend({r.id: r.relevance for r in results})
            for r in results:
                r.score = blended[r.id]
            results.sort(key=lambda r: r.score, reverse=True)

        total = len(results)
        if plan.shape is not QueryShape.FREE_TEXT:
            total = min(total, conf.get("PHRASE_REPORTED_RESULTS"))
            results = results[:total]

        result_set.results = results
        result_set.total_results = total
        result_set.partial = outcome.partial
        return result_set

    def assemble_batch(self, plan: QueryPlan, context: ScoringContext, documents) -> List[SearchResult]:
        out = []
        for document in documents:
            view = DocumentView.from_document(document)
            score = self.scorer.score(plan, view, context)
            out.append(SearchResult(
                id=document.pk,
                url=document.url,
                title=view.title,
                score=score,
                relevance=score,
                snippet=make_snippet(view.paragraphs, view.text, plan),
                description=describe(view.paragraphs, view.text),
            ))
        return out

    # ---------------------------------------------------------------
    # helpers
    # ---------------------------------------------------------------
    @staticmethod
    def _paging(page, page_size):
        try:
            page = int(page)
        except (TypeError, ValueError):
            page = 1
        try:
            page_size = int(page_size)
        except (TypeError, ValueError):
            page_size = 10
        return max(1, page), max(1, min(page_size, MAX_PAGE_SIZE))

    @staticmethod
    def _finish(response, start):
        response.elapsed_ms = (time.time() - start) * 1000.0
        logger.info("query=%r results=%d partial=%s cached=%s %.1fms",
                    response.query, response.total_results, response.partial,
                    response.from_cache, response.elapsed_ms)
        return response

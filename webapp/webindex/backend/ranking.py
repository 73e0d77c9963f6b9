"""
Ranking Engine: PageRank over the crawl link graph, blended with a simple
corpus-wide tf-idf relevance.

PageRank here is the plain fixed-iteration formula

    pr[i] = (1 - d) / N + sum over j -> i of d * pr[j] / max(1, outdeg(j))

with no convergence test and no redistribution of dangling-node mass, so the
total drifts below 1 on graphs that have pages without outgoing links.
The graph is a networkx DiGraph and each iteration walks the edges only.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

import networkx as nx
from django.db import transaction

from webindex import conf
from webindex.errors import ComputationError
from webindex.models import Document, IndexStat, LinkEdge, PageRankScore

from .inverted_index import InvertedIndexCache, document_lengths
from .metrics import compute_idf

logger = logging.getLogger(__name__)


def load_link_graph() -> nx.DiGraph:
    """Every document is a node, pages without links included."""
    graph = nx.DiGraph()
    graph.add_nodes_from(Document.objects.values_list("id", flat=True))
    graph.add_edges_from(LinkEdge.objects.values_list("parent_id", "child_id"))
    return graph


def iterate_pagerank(graph: nx.DiGraph, damping: float = 0.85,
                     iterations: int = 100) -> Iterator[Dict[int, float]]:
    """Yield the score vector after each iteration."""
    n = graph.number_of_nodes()
    if n == 0:
        return
    nodes = list(graph.nodes)
    out_degree = {node: max(1, graph.out_degree(node)) for node in nodes}
    scores = {node: 1.0 / n for node in nodes}
    teleport = (1.0 - damping) / n

    for _ in range(iterations):
        scores = {
            node: teleport + sum(damping * scores[src] / out_degree[src]
                                 for src in graph.predecessors(node))
            for node in nodes
        }
        yield scores


def pagerank(graph: nx.DiGraph, damping: float = 0.85, iterations: int = 100) -> Dict[int, float]:
    n = graph.number_of_nodes()
    scores = {node: 1.0 / n for node in graph.nodes} if n else {}
    for scores in iterate_pagerank(graph, damping, iterations):
        pass
    return scores


@dataclass
class RankedDocument:
    document_id: int
    relevance: float
    pagerank: float
    final_rank: float


def _normalized(values: Dict[int, float]) -> Dict[int, float]:
    top = max(values.values(), default=0.0)
    if top <= 0:
        return {k: 0.0 for k in values}
    return {k: v / top for k, v in values.items()}


class RankingEngine:

    def __init__(self, inverted_cache: Optional[InvertedIndexCache] = None,
                 relevance_weight=None, pagerank_weight=None):
        self.inverted_cache = inverted_cache or InvertedIndexCache()
        self.relevance_weight = relevance_weight
        self.pagerank_weight = pagerank_weight

    @property
    def weights(self):
        a = conf.get("RELEVANCE_WEIGHT") if self.relevance_weight is None else self.relevance_weight
        b = conf.get("PAGERANK_WEIGHT") if self.pagerank_weight is None else self.pagerank_weight
        return a, b

    # ---------------------------------------------------------------
    # relevance over the whole corpus (no query-time boosts)
    # ---------------------------------------------------------------
    def corpus_relevance(self, terms: Iterable[str],
                         doc_ids: Optional[Iterable[int]] = None) -> Dict[int, float]:
        index = self.inverted_cache.get_or_load()
        wanted = set(doc_ids) if doc_ids is not None else None
        total = Document.objects.count()

        postings_by_term = {term: index.get(term, {}) for term in set(terms)}
        touched = set()
        for postings in postings_by_term.values():
            touched.update(postings if wanted is None else wanted.intersection(postings))
        lengths = document_lengths(touched)

        relevance = {}
        for postings in postings_by_term.values():
            idf = compute_idf(total, len(postings))
            for doc_id, freq in postings.items():
                if wanted is not None and doc_id not in wanted:
                    continue
                tf = freq / max(1, lengths.get(doc_id, 0))
                relevance[doc_id] = relevance.get(doc_id, 0.0) + tf * idf
        return relevance

    # ---------------------------------------------------------------
    # PageRank
    # ---------------------------------------------------------------
    def stored_pagerank(self, doc_ids: Optional[Iterable[int]] = None) -> Dict[int, float]:
        qs = PageRankScore.objects.all()
        if doc_ids is not None:
            qs = qs.filter(document_id__in=list(doc_ids))
        return dict(qs.values_list("document_id", "pagerank"))

    def compute_pagerank(self, damping=None, iterations=None) -> Dict[int, float]:
        damping = conf.get("PAGERANK_DAMPING") if damping is None else damping
        iterations = conf.get("PAGERANK_ITERATIONS") if iterations is None else iterations

        graph = load_link_graph()
        logger.info("PageRank over %d nodes / %d edges, %d iterations",
                    graph.number_of_nodes(), graph.number_of_edges(), iterations)
        scores = pagerank(graph, damping=damping, iterations=iterations)

        bad = [doc_id for doc_id, value in scores.items() if not math.isfinite(value)]
        if bad:
            raise ComputationError(f"PageRank produced non-finite scores for {len(bad)} documents")
        return scores

    def compute_and_store_pagerank(self, damping=None, iterations=None) -> Dict[int, float]:
        scores = self.compute_pagerank(damping=damping, iterations=iterations)
        with transaction.atomic():
            PageRankScore.objects.all().delete()
            PageRankScore.objects.bulk_create(
                [PageRankScore(document_id=doc_id, pagerank=value) for doc_id, value in scores.items()],
                batch_size=5000,
            )
            IndexStat.objects.update_or_create(key="pagerank_computed_at",
                                               defaults={"value": time.strftime('%Y-%m-%d %H:%M:%S')})
        logger.info("Stored PageRank for %d documents (sum=%.6f)", len(scores), sum(scores.values()))
        return scores

    def pagerank_for(self, doc_ids: Optional[Iterable[int]] = None) -> Dict[int, float]:
        """Stored scores when available, otherwise computed on the fly (not stored)."""
        doc_ids = list(doc_ids) if doc_ids is not None else None
        stored = self.stored_pagerank(doc_ids)
        if stored:
            return stored
        scores = self.compute_pagerank()
        if doc_ids is None:
            return scores
        return {doc_id: scores.get(doc_id, 0.0) for doc_id in doc_ids}

    # ---------------------------------------------------------------
    # final rank
    # ---------------------------------------------------------------
    def final_rank(self, terms: Iterable[str], doc_ids: Optional[Iterable[int]] = None,
                   pagerank_scores: Optional[Dict[int, float]] = None) -> List[RankedDocument]:
        """0.7 * relevance + 0.3 * pagerank over documents matching any term."""
        a, b = self.weights
        relevance = self.corpus_relevance(terms, doc_ids)
        if pagerank_scores is None:
            pagerank_scores = self.pagerank_for(relevance.keys())

        ranked = [
            RankedDocument(doc_id, rel, pagerank_scores.get(doc_id, 0.0),
                           a * rel + b * pagerank_scores.get(doc_id, 0.0))
            for doc_id, rel in relevance.items()
        ]
        ranked.sort(key=lambda r: (-r.final_rank, r.document_id))
        return ranked

    def ranked_ids(self, terms, doc_ids=None) -> List[int]:
        return [r.document_id for r in self.final_rank(terms, doc_ids)]

    def blend(self, relevance: Dict[int, float]) -> Dict[int, float]:
        """Query-time scores mixed with PageRank, both scaled to [0, 1] first."""
        if not relevance:
            return {}
        a, b = self.weights
        rel = _normalized(relevance)
        pr = _normalized({doc_id: v for doc_id, v in self.stored_pagerank(relevance.keys()).items()})
        return {doc_id: a * rel[doc_id] + b * pr.get(doc_id, 0.0) for doc_id in relevance}

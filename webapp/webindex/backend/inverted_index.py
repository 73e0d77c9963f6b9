"""In-memory copy of the inverted index: {term: {doc_id: frequency}}.

Loading is split by term id into one chunk per worker; each chunk is read
in its own thread and merged into the shared map under a lock.
"""
import logging
import threading
from collections import defaultdict
from typing import Dict, Iterable, Optional

from django.db.models import Sum

from webindex import conf
from webindex.models import Posting, Term

from .concurrency import run_batches, split_into_batches, split_into_chunks

logger = logging.getLogger(__name__)

TERM_ID_QUERY_CHUNK = 500

InvertedIndex = Dict[str, Dict[int, int]]


def document_lengths(doc_ids: Optional[Iterable[int]] = None) -> Dict[int, int]:
    """Number of normalized tokens per document (sum of its posting frequencies)."""
    qs = Posting.objects.all()
    if doc_ids is not None:
        qs = qs.filter(document_id__in=list(doc_ids))
    rows = qs.values("document_id").annotate(length=Sum("frequency"))
    return {row["document_id"]: row["length"] or 0 for row in rows}


def load_inverted_index(workers=None) -> InvertedIndex:
    workers = conf.get("INDEX_WORKERS") if workers is None else workers
    term_ids = list(Term.objects.order_by("id").values_list("id", flat=True))
    index = defaultdict(dict)
    lock = threading.Lock()

    def load_chunk(ids):
        local = defaultdict(dict)
        for sub in split_into_batches(ids, TERM_ID_QUERY_CHUNK):
            rows = Posting.objects.filter(term_id__in=sub).values_list(
                "term__text", "document_id", "frequency"
            )
            for text, doc_id, freq in rows:
                local[text][doc_id] = freq
        with lock:
            for text, postings in local.items():
                index[text].update(postings)
        return len(local)

    outcome = run_batches(load_chunk, split_into_chunks(term_ids, workers), workers, uses_database=True)
    if outcome.failed:
        logger.error("%d chunks of the inverted index failed to load", outcome.failed)
    logger.info("Loaded inverted index: %d terms", len(index))
    return dict(index)


class InvertedIndexCache:
    """Process-level holder for the loaded index; cleared when indexing runs."""

    def __init__(self, loader=load_inverted_index):
        self._loader = loader
        self._lock = threading.Lock()
        self._index = None

    def get_or_load(self) -> InvertedIndex:
        with self._lock:
            if self._index is None:
                self._index = self._loader()
            return self._index

    def clear(self):
        with self._lock:
            self._index = None

    @property
    def loaded(self) -> bool:
        return self._index is not None

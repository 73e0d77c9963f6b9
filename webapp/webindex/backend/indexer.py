"""
Index Builder: turns stored pages into Term / Posting / TagPosting /
TermPosition rows.

Frequencies are only ever added to, with a single
``INSERT ... ON CONFLICT ... DO UPDATE`` statement, so concurrent batches that
touch the same term cannot lose updates. Indexing the same page twice doubles
its counts; ``rebuild()`` is the way to start from zero.
"""
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from django.db import DatabaseError, connection, transaction
from django.db.models import F
from django.utils import timezone

from webindex import conf
from webindex.errors import IndexingError
from webindex.models import (
    Document,
    IndexStat,
    Posting,
    PostingMetrics,
    TagPosting,
    Term,
    TermPosition,
    TermStats,
)

from .concurrency import run_batches, split_into_batches
from .text_normalizer import document_terms, parse_page, tag_terms

logger = logging.getLogger(__name__)

TOKENIZER_VERSION = "letters-lower-porter-v1"


def _upsert_add_sql(model, key_columns):
    table = connection.ops.quote_name(model._meta.db_table)
    columns = list(key_columns) + ["frequency"]
    placeholders = ", ".join(["%s"] * len(columns))
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
        f"ON CONFLICT ({', '.join(key_columns)}) "
        f"DO UPDATE SET frequency = {table}.frequency + excluded.frequency"
    )


def upsert_posting(term_id, document_id, frequency):
    with connection.cursor() as cursor:
        cursor.execute(
            _upsert_add_sql(Posting, ["term_id", "document_id"]),
            [term_id, document_id, frequency],
        )


def upsert_tag_posting(term_id, document_id, tag, frequency):
    with connection.cursor() as cursor:
        cursor.execute(
            _upsert_add_sql(TagPosting, ["term_id", "document_id", "tag"]),
            [term_id, document_id, tag, frequency],
        )


@dataclass
class TermEntry:
    count: int = 0
    tags: Dict[str, int] = field(default_factory=dict)
    positions: List[int] = field(default_factory=list)


def build_term_table(page) -> Dict[str, TermEntry]:
    """word -> (whole-document count, per-tag counts, positions)."""
    table = defaultdict(TermEntry)

    for position, word in enumerate(document_terms(page)):
        entry = table[word]
        entry.count += 1
        entry.positions.append(position)

    for tag, counts in tag_terms(page).items():
        for word, count in counts.items():
            table[word].tags[tag] = count

    return dict(table)


@dataclass
class DocumentOutcome:
    url: str
    status: str  # indexed / missing / failed
    term_errors: int = 0


@dataclass
class IndexReport:
    total: int = 0
    indexed: int = 0
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    term_errors: int = 0
    elapsed_seconds: float = 0.0

    def add(self, outcome: DocumentOutcome):
        self.term_errors += outcome.term_errors
        if outcome.status == "indexed":
            self.indexed += 1
        elif outcome.status == "missing":
            self.missing.append(outcome.url)
        else:
            self.failed.append(outcome.url)

    def to_dict(self):
        return {
            "total": self.total,
            "indexed": self.indexed,
            "missing": len(self.missing),
            "failed": len(self.failed),
            "term_errors": self.term_errors,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class IndexingProgress:
    """Shared status of the current (or last) indexing run."""

    def __init__(self):
        self._lock = threading.Lock()
        self.in_progress = False
        self.indexed = 0
        self.total = 0
        self.started_at = None
        self.last_status = "idle"

    def start(self, total) -> bool:
        with self._lock:
            if self.in_progress:
                return False
            self.in_progress = True
            self.indexed = 0
            self.total = total
            self.started_at = timezone.now()
            self.last_status = "running"
            return True

    def advance(self, count=1):
        with self._lock:
            self.indexed += count

    def finish(self, status):
        with self._lock:
            self.in_progress = False
            self.last_status = status

    def snapshot(self):
        with self._lock:
            return {
                "in_progress": self.in_progress,
                "indexed": self.indexed,
                "total": self.total,
                "started_at": self.started_at.isoformat() if self.started_at else None,
                "status": self.last_status,
            }


class IndexBuilder:

    def __init__(self, inverted_cache=None, result_cache=None, progress=None):
        self.inverted_cache = inverted_cache
        self.result_cache = result_cache
        self.progress = progress or IndexingProgress()

    # ---------------------------------------------------------------
    # single document
    # ---------------------------------------------------------------
    def index_document(self, url: str, html: Optional[str] = None) -> bool:
        """Index one stored page. ``html`` defaults to the stored content."""
        return self._index_one(url, html).status == "indexed"

    def _index_one(self, url, html=None) -> DocumentOutcome:
        document = Document.objects.filter(url=url).first()
        if document is None:
            logger.warning("No document row for %s, skipping", url)
            return DocumentOutcome(url, "missing")

        if html is None:
            html = document.content
        table = build_term_table(parse_page(html))

        errors = 0
        with transaction.atomic():
            for word, entry in table.items():
                try:
                    # savepoint: one bad term must not roll back the others
                    with transaction.atomic():
                        self._write_term(document.pk, word, entry)
                except DatabaseError as exc:
                    errors += 1
                    logger.error("Failed to index term %r of %s: %s", word, url, exc)

            Document.objects.filter(pk=document.pk).update(last_indexed=timezone.now())

        logger.debug("Indexed %s (%d terms, %d errors)", url, len(table), errors)
        return DocumentOutcome(url, "indexed", term_errors=errors)

    def _write_term(self, document_id, word, entry: TermEntry):
        term, _ = Term.objects.get_or_create(text=word)

        if entry.count:
            Term.objects.filter(pk=term.pk).update(
                total_frequency=F("total_frequency") + entry.count
            )
            upsert_posting(term.pk, document_id, entry.count)
            TermPosition.objects.update_or_create(
                term_id=term.pk,
                document_id=document_id,
                defaults={"positions": entry.positions},
            )

        for tag, count in entry.tags.items():
            upsert_tag_posting(term.pk, document_id, tag, count)

    # ---------------------------------------------------------------
    # batches
    # ---------------------------------------------------------------
    def index_batch(self, items) -> List[DocumentOutcome]:
        """Documents of one batch run one after another."""
        outcomes = []
        for url, html in items:
            try:
                outcome = self._index_one(url, html)
            except Exception:
                logger.exception("Indexing %s failed", url)
                outcome = DocumentOutcome(url, "failed")
            outcomes.append(outcome)
            self.progress.advance()
        return outcomes

    def build_index(self, pages: Mapping[str, Optional[str]], workers=None) -> IndexReport:
        """Index ``{url: html}``; a ``None`` html means "use the stored content"."""
        start = time.time()
        items = list(pages.items())
        report = IndexReport(total=len(items))

        workers = conf.get("INDEX_WORKERS") if workers is None else workers
        batches = split_into_batches(items, conf.get("INDEX_BATCH_SIZE"))
        logger.info("Indexing %d pages in %d batches (%d workers)", len(items), len(batches), workers)

        outcome = run_batches(self.index_batch, batches, workers, uses_database=True)
        for i, batch_outcomes in enumerate(outcome.results):
            if batch_outcomes is None:
                report.failed.extend(url for url, _ in batches[i])
                continue
            for doc_outcome in batch_outcomes:
                report.add(doc_outcome)

        self._record_build()
        self.invalidate_caches()

        report.elapsed_seconds = time.time() - start
        logger.info(
            "Indexing finished: %d indexed, %d missing, %d failed, %d term errors in %.1fs",
            report.indexed, len(report.missing), len(report.failed),
            report.term_errors, report.elapsed_seconds,
        )
        return report

    def run(self, pages, workers=None) -> IndexReport:
        """build_index() wrapped with progress bookkeeping."""
        if not self.progress.start(len(pages)):
            raise IndexingError("indexing already in progress")
        try:
            report = self.build_index(pages, workers=workers)
        except Exception:
            self.progress.finish("failed")
            raise
        self.progress.finish("completed" if not report.failed else "completed with errors")
        return report

    def rebuild(self, workers=None) -> IndexReport:
        """Drop every index row and index all stored documents again."""
        with transaction.atomic():
            for model in (PostingMetrics, TermStats, TermPosition, TagPosting, Posting, Term):
                model.objects.all().delete()
        logger.info("Index tables cleared, re-indexing all documents")
        urls = Document.objects.order_by("id").values_list("url", flat=True)
        return self.build_index({url: None for url in urls}, workers=workers)

    def invalidate_caches(self):
        if self.inverted_cache is not None:
            self.inverted_cache.clear()
        if self.result_cache is not None:
            self.result_cache.clear()

    def _record_build(self):
        IndexStat.objects.update_or_create(key="N_docs",
                                           defaults={"value": str(Document.objects.count())})
        IndexStat.objects.update_or_create(key="built_at",
                                           defaults={"value": time.strftime('%Y-%m-%d %H:%M:%S')})
        IndexStat.objects.update_or_create(key="tokenizer_version",
                                           defaults={"value": TOKENIZER_VERSION})

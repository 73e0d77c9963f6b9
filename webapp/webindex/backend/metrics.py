"""
Metrics Computer: document frequency / idf per term and tf, tf-idf and
normalized score per posting.

Full recomputation every run (TermStats and PostingMetrics are dropped and
rebuilt), so running it twice on an unchanged index gives the same rows.
"""
import logging
import math
import time
from dataclasses import dataclass
from itertools import groupby

from django.db import transaction
from django.db.models import Count

from webindex import conf
from webindex.errors import ComputationError
from webindex.models import Document, IndexStat, Posting, PostingMetrics, Term, TermStats

from .inverted_index import document_lengths

logger = logging.getLogger(__name__)


def compute_idf(total_documents: int, document_frequency: int) -> float:
    """log10(N / max(1, df)); 0 for an empty corpus."""
    if total_documents <= 0:
        return 0.0
    return math.log10(total_documents / max(1, document_frequency))


def posting_scores(postings, idf, lengths):
    """
    postings: [(doc_id, frequency)] of one term.
    Returns [(doc_id, frequency, tf, tf_idf, normalized)].
    """
    rows = []
    for doc_id, freq in postings:
        tf = freq / max(1, lengths.get(doc_id, 0))
        rows.append((doc_id, freq, tf, tf * idf))

    max_score = max((r[3] for r in rows), default=0.0)
    if not math.isfinite(max_score):
        raise ComputationError(f"non-finite tf-idf ({max_score})")
    return [
        (doc_id, freq, tf, score, score / max_score if max_score > 0 else 0.0)
        for doc_id, freq, tf, score in rows
    ]


@dataclass
class MetricsReport:
    total_documents: int = 0
    terms: int = 0
    postings: int = 0
    skipped_terms: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self):
        return {
            "total_documents": self.total_documents,
            "terms": self.terms,
            "postings": self.postings,
            "skipped_terms": self.skipped_terms,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class MetricsComputer:

    def __init__(self, batch_size=None):
        self.batch_size = batch_size or conf.get("METRICS_BATCH_SIZE")

    def compute_and_store_metrics(self) -> MetricsReport:
        start = time.time()
        report = MetricsReport()

        total = Document.objects.count()
        lengths = document_lengths()
        report.total_documents = total

        df_by_term = dict(
            Posting.objects.filter(frequency__gt=0)
            .values("term_id")
            .annotate(df=Count("document", distinct=True))
            .values_list("term_id", "df")
        )
        term_ids = list(Term.objects.order_by("id").values_list("id", flat=True))
        logger.info("Computing metrics: %d documents, %d terms", total, len(term_ids))

        with transaction.atomic():
            PostingMetrics.objects.all().delete()
            TermStats.objects.all().delete()

            stats = []
            idf_by_term = {}
            for term_id in term_ids:
                df = df_by_term.get(term_id, 0)
                idf = compute_idf(total, df)
                idf_by_term[term_id] = idf
                stats.append(TermStats(term_id=term_id, document_frequency=df,
                                       idf=idf, total_documents=total))
            TermStats.objects.bulk_create(stats, batch_size=self.batch_size)
            report.terms = len(stats)

            rows = list(
                Posting.objects.filter(frequency__gt=0)
                .order_by("term_id", "document_id")
                .values_list("term_id", "document_id", "frequency")
            )
            buffer = []
            for term_id, group in groupby(rows, key=lambda r: r[0]):
                postings = [(doc_id, freq) for _, doc_id, freq in group]
                try:
                    scored = posting_scores(postings, idf_by_term.get(term_id, 0.0), lengths)
                except (ArithmeticError, ComputationError) as exc:
                    report.skipped_terms += 1
                    logger.error("Skipping metrics for term id %s: %s", term_id, exc)
                    continue

                for doc_id, freq, tf, score, normalized in scored:
                    buffer.append(PostingMetrics(
                        term_id=term_id, document_id=doc_id, frequency=freq,
                        term_frequency=tf, tf_idf_score=score, normalized_score=normalized,
                    ))
                if len(buffer) >= self.batch_size:
                    PostingMetrics.objects.bulk_create(buffer, batch_size=self.batch_size)
                    report.postings += len(buffer)
                    buffer = []
            if buffer:
                PostingMetrics.objects.bulk_create(buffer, batch_size=self.batch_size)
                report.postings += len(buffer)

            avg_len = sum(lengths.values()) / total if total else 0
            IndexStat.objects.update_or_create(key="N_docs",
                                               defaults={"value": str(total)})
            IndexStat.objects.update_or_create(key="avg_doc_len",
                                               defaults={"value": f"{avg_len:.6f}"})
            IndexStat.objects.update_or_create(key="metrics_computed_at",
                                               defaults={"value": time.strftime('%Y-%m-%d %H:%M:%S')})

        report.elapsed_seconds = time.time() - start
        logger.info("Metrics stored: %d terms, %d postings, %d skipped in %.1fs",
                    report.terms, report.postings, report.skipped_terms, report.elapsed_seconds)
        return report

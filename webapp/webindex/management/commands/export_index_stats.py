import csv
from pathlib import Path

from django.core.management.base import BaseCommand
from django.db.models import Count, Sum

from webindex.models import Document, IndexStat, Posting, Term, TermStats


class Command(BaseCommand):
    help = "Export inverted index statistics (vocabulary size, postings, per-document sparsity, df per term) to CSV"

    def add_arguments(self, parser):
        parser.add_argument("--out-dir", default="stats",
                            help="directory for the CSV files (default: stats)")

    def handle(self, *args, **opts):
        out_dir = Path(opts["out_dir"])
        out_dir.mkdir(parents=True, exist_ok=True)
        out_global = out_dir / "index_global_stats.csv"
        out_docs = out_dir / "index_document_stats.csv"
        out_vocab = out_dir / "vocab_stats.csv"

        self.stdout.write("Exporting inverted index statistics...")

        # 1) global
        stats = dict(IndexStat.objects.values_list("key", "value"))
        n_docs = int(stats.get("N_docs") or Document.objects.count())
        vocab_size = Term.objects.count()
        posting_total = Posting.objects.count()
        token_total = Posting.objects.aggregate(total=Sum("frequency"))["total"] or 0
        avg_doc_len = float(stats.get("avg_doc_len") or (token_total / n_docs if n_docs else 0))

        with out_global.open("w", newline="", encoding="utf8") as f:
            w = csv.writer(f)
            w.writerow(["metric", "value"])
            w.writerow(["N_docs", n_docs])
            w.writerow(["avg_doc_len", avg_doc_len])
            w.writerow(["vocab_size", vocab_size])
            w.writerow(["posting_total", posting_total])
            for key in ("built_at", "metrics_computed_at", "pagerank_computed_at", "tokenizer_version"):
                w.writerow([key, stats.get(key, "")])

        self.stdout.write(f"Global statistics -> {out_global}")

        # 2) per document
        per_doc = {
            row["document_id"]: row
            for row in Posting.objects.values("document_id").annotate(
                token_count=Sum("frequency"), unique_terms=Count("term")
            )
        }
        with out_docs.open("w", newline="", encoding="utf8") as f:
            w = csv.writer(f)
            w.writerow(["document_id", "url", "token_count", "unique_terms", "sparsity_percent"])

            for doc_id, url in Document.objects.order_by("id").values_list("id", "url"):
                row = per_doc.get(doc_id, {})
                unique_terms = row.get("unique_terms", 0)
                sparsity = unique_terms / vocab_size * 100 if vocab_size else 0
                w.writerow([doc_id, url, row.get("token_count", 0), unique_terms, f"{sparsity:.3f}"])

        self.stdout.write(f"Per-document statistics -> {out_docs}")

        # 3) vocabulary
        stats_by_term = {
            s["term_id"]: s for s in TermStats.objects.values("term_id", "document_frequency", "idf")
        }
        with out_vocab.open("w", newline="", encoding="utf8") as f:
            w = csv.writer(f)
            w.writerow(["term_id", "term", "total_frequency", "df", "idf"])

            for term_id, text, total_frequency in Term.objects.order_by("id").values_list(
                "id", "text", "total_frequency"
            ):
                s = stats_by_term.get(term_id, {})
                w.writerow([term_id, text, total_frequency,
                            s.get("document_frequency", ""), s.get("idf", "")])

        self.stdout.write(f"Vocabulary statistics -> {out_vocab}")
        self.stdout.write(self.style.SUCCESS("All CSV files written."))

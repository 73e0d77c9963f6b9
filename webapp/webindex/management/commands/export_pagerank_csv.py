import csv
from pathlib import Path

from django.core.management.base import BaseCommand

from webindex.models import PageRankScore


class Command(BaseCommand):
    help = "Export stored PageRank scores to a CSV file."

    def add_arguments(self, parser):
        parser.add_argument(
            "--out",
            default="pagerank.csv",
            help="Output CSV file path (default: pagerank.csv)",
        )

    def handle(self, *args, **opts):

        out_path = Path(opts["out"])
        self.stdout.write(f"Exporting PageRank scores to {out_path} ...")

        qs = PageRankScore.objects.select_related("document").order_by("-pagerank")
        total = qs.count()

        if total == 0:
            self.stdout.write(self.style.WARNING("PageRank table is empty, run compute_pagerank first."))
            return

        with out_path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(["document_id", "url", "title", "in_links", "out_links", "pagerank"])

            for score in qs:
                doc = score.document
                writer.writerow([
                    doc.id,
                    doc.url,
                    (doc.title or "").strip(),
                    doc.links_in.count(),
                    doc.links_out.count(),
                    score.pagerank,
                ])

        self.stdout.write(self.style.SUCCESS(f"Done. Exported {total} rows to {out_path}."))

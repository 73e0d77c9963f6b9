from django.core.management.base import BaseCommand

from webindex.backend.index_service import get_index_service
from webindex.models import Document


class Command(BaseCommand):
    help = "Build the inverted index (terms, postings, tag postings, positions) from stored pages"

    def add_arguments(self, parser):
        parser.add_argument("--url", action="append", dest="urls", default=None,
                            help="only index this page (repeatable)")
        parser.add_argument("--rebuild", action="store_true",
                            help="drop all index tables first and index every page")
        parser.add_argument("--limit", type=int, default=0,
                            help="only index the first N pages (0 = all)")
        parser.add_argument("--workers", type=int, default=None,
                            help="worker threads (default: WEBINDEX INDEX_WORKERS)")

    def handle(self, *args, **opts):
        service = get_index_service()
        builder = service.builder

        if opts["rebuild"]:
            self.stdout.write("Dropping index tables and re-indexing every page...")
            report = builder.rebuild(workers=opts["workers"])
        else:
            urls = opts["urls"]
            if urls is None:
                qs = Document.objects.order_by("id").values_list("url", flat=True)
                if opts["limit"] > 0:
                    qs = qs[:opts["limit"]]
                urls = list(qs)
            self.stdout.write(f"Indexing {len(urls)} pages...")
            report = builder.run({url: None for url in urls}, workers=opts["workers"])

        for url in report.missing:
            self.stdout.write(self.style.WARNING(f"not found: {url}"))
        for url in report.failed:
            self.stdout.write(self.style.ERROR(f"failed: {url}"))

        summary = (
            f"Indexed {report.indexed}/{report.total} pages "
            f"({report.term_errors} term errors) in {report.elapsed_seconds:.1f}s"
        )
        style = self.style.ERROR if report.failed else self.style.SUCCESS
        self.stdout.write(style(summary))

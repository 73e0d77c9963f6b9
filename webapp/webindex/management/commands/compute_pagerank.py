from django.core.management.base import BaseCommand, CommandError

from webindex.backend.index_service import get_index_service


class Command(BaseCommand):
    help = "Compute PageRank over the crawl link graph and store it per document."

    def add_arguments(self, parser):
        parser.add_argument("--iterations", type=int, default=None,
                            help="number of iterations (default: WEBINDEX PAGERANK_ITERATIONS)")
        parser.add_argument("--damping", type=float, default=None,
                            help="damping factor (default: 0.85)")

    def handle(self, *args, **opts):
        self.stdout.write(self.style.SUCCESS("Loading link graph and computing PageRank..."))
        result = get_index_service().compute_pagerank(damping=opts["damping"],
                                                      iterations=opts["iterations"])
        if result["status"] != "success":
            raise CommandError(result["message"])
        self.stdout.write(self.style.SUCCESS(f"PageRank stored for {result['documents']} documents"))

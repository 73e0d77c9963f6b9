import json

from django.core.management.base import BaseCommand

from webindex.backend.index_service import get_index_service, get_search_service
from webindex.backend.query_parser import parse_query
from webindex.errors import QueryParseError


class Command(BaseCommand):
    help = "Run a search from the command line (query engine, or --ranked for the corpus-wide final rank)"

    def add_arguments(self, parser):
        parser.add_argument("query")
        parser.add_argument("--page", type=int, default=1)
        parser.add_argument("--size", type=int, default=10)
        parser.add_argument("--order", choices=["blend", "relevance"], default=None)
        parser.add_argument("--ranked", action="store_true",
                            help="order by 0.7 * corpus tf-idf + 0.3 * PageRank instead")
        parser.add_argument("--json", action="store_true", help="print the raw JSON response")

    def handle(self, *args, **opts):
        if opts["ranked"]:
            return self.show_ranked(opts)

        response = get_search_service().search(
            opts["query"], page=opts["page"], page_size=opts["size"], order=opts["order"]
        )
        if opts["json"]:
            self.stdout.write(json.dumps(response.to_dict(), indent=2))
            return

        if response.message:
            self.stdout.write(self.style.WARNING(response.message))
        self.stdout.write(
            f"{response.total_results} results, page {response.page}/{response.total_pages} "
            f"({response.elapsed_ms:.1f} ms)"
        )
        for i, r in enumerate(response.results, 1 + (response.page - 1) * response.page_size):
            self.stdout.write(self.style.SUCCESS(f"{i:>3}. {r.title or r.url}  [{r.score:.4f}]"))
            self.stdout.write(f"     {r.url}")
            if r.description:
                self.stdout.write(f"     {r.description}")

    def show_ranked(self, opts):
        try:
            plan = parse_query(opts["query"])
        except QueryParseError as exc:
            self.stdout.write(self.style.WARNING(str(exc)))
            return

        ranked = get_index_service().ranking.final_rank(plan.terms)
        self.stdout.write(f"{len(ranked)} documents")
        for r in ranked[: opts["size"]]:
            self.stdout.write(
                f"{r.document_id:>8}  final={r.final_rank:.6f}  "
                f"relevance={r.relevance:.6f}  pagerank={r.pagerank:.6f}"
            )

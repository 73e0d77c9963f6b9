from django.core.management.base import BaseCommand, CommandError

from webindex.backend.index_service import get_index_service


class Command(BaseCommand):
    help = "Compute document frequency / idf per term and tf-idf per posting (full recompute)"

    def handle(self, *args, **opts):
        self.stdout.write("Computing TF-IDF metrics...")
        result = get_index_service().compute_metrics()
        if result["status"] != "success":
            raise CommandError(result.get("message", "metrics computation failed"))

        report = result["report"]
        self.stdout.write(self.style.SUCCESS(
            f"Metrics done: N={report['total_documents']}, {report['terms']} terms, "
            f"{report['postings']} postings, {report['skipped_terms']} skipped "
            f"in {report['elapsed_seconds']}s"
        ))

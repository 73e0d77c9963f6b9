import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from webindex.models import Document, LinkEdge


class Command(BaseCommand):
    help = "Load crawled pages from a JSON Lines file (url, title, html, parent_url) into documents and links"

    def add_arguments(self, parser):
        parser.add_argument("path", help="JSONL file, one page per line")
        parser.add_argument("--limit", type=int, default=0,
                            help="only load the first N pages (0 = all)")

    def handle(self, *args, **opts):
        path = Path(opts["path"]).resolve()
        if not path.exists():
            raise CommandError(f"File not found: {path}")

        pages, links, skipped = 0, 0, 0
        pending_links = []

        with path.open(encoding="utf-8", errors="ignore") as f, transaction.atomic():
            for lineno, line in enumerate(f, 1):
                if opts["limit"] and pages >= opts["limit"]:
                    break
                line = line.strip()
                if not line:
                    continue
                try:
                    row = json.loads(line)
                except ValueError as exc:
                    skipped += 1
                    self.stderr.write(f"line {lineno}: invalid JSON ({exc})")
                    continue

                url = (row.get("url") or "").strip()
                if not url:
                    skipped += 1
                    continue

                Document.objects.update_or_create(
                    url=url,
                    defaults={
                        "title": row.get("title") or "",
                        "content": row.get("html") or "",
                        "status": "crawled",
                    },
                )
                pages += 1

                parent = (row.get("parent_url") or "").strip()
                if parent:
                    pending_links.append((parent, url))

                if pages % 500 == 0:
                    self.stdout.write(self.style.SUCCESS(f"Loaded {pages} pages..."))

            # parents may appear later in the file than their children
            ids = dict(Document.objects.values_list("url", "id"))
            for parent, child in pending_links:
                if parent not in ids:
                    skipped += 1
                    continue
                _, created = LinkEdge.objects.get_or_create(parent_id=ids[parent], child_id=ids[child])
                links += created

        self.stdout.write(self.style.SUCCESS(
            f"Done: {pages} pages, {links} new links, {skipped} lines/links skipped"
        ))

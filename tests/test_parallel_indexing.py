import pytest
from django.db.models import Sum

from webindex.backend.indexer import IndexBuilder
from webindex.backend.inverted_index import load_inverted_index
from webindex.models import Posting, TagPosting, Term

# worker threads use their own connections, so rows must really be committed
pytestmark = pytest.mark.django_db(transaction=True)

PAGES = 40
URLS = [f"http://c.test/{i}" for i in range(PAGES)]


@pytest.fixture
def shared_pages(make_page, webindex_settings):
    webindex_settings["INDEX_BATCH_SIZE"] = 5
    for url in URLS:
        make_page(url, body="<p>shared words, shared again</p>")


def test_parallel_batches_keep_every_increment(shared_pages):
    report = IndexBuilder().build_index({url: None for url in URLS}, workers=4)

    assert report.indexed == PAGES
    assert report.failed == []
    assert Term.objects.get(text="share").total_frequency == 2 * PAGES
    assert Posting.objects.filter(term__text="share").count() == PAGES
    tag_total = TagPosting.objects.filter(term__text="share").aggregate(total=Sum("frequency"))["total"]
    assert tag_total == 2 * PAGES


def test_parallel_reindex_is_additive(shared_pages):
    builder = IndexBuilder()
    builder.build_index({url: None for url in URLS}, workers=4)
    builder.build_index({url: None for url in URLS}, workers=4)

    assert Term.objects.get(text="share").total_frequency == 4 * PAGES
    assert set(Posting.objects.filter(term__text="share").values_list("frequency", flat=True)) == {4}


def test_threaded_index_load_matches_single_thread(shared_pages):
    IndexBuilder().build_index({url: None for url in URLS}, workers=4)

    threaded = load_inverted_index(workers=4)

    assert threaded == load_inverted_index(workers=1)
    assert len(threaded["share"]) == PAGES
    assert set(threaded["share"].values()) == {2}

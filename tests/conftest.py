import pytest

from webindex.backend import index_service
from webindex.backend.indexer import IndexBuilder
from webindex.models import Document, LinkEdge


def page_html(title="", body="", head=""):
    return f"<html><head><title>{title}</title>{head}</head><body>{body}</body></html>"


@pytest.fixture(autouse=True)
def webindex_settings(settings):
    # worker threads would open their own DB connections, outside the test transaction
    settings.WEBINDEX = {
        **settings.WEBINDEX,
        "INDEX_WORKERS": 1,
        "FETCH_WORKERS": 1,
        "DEFAULT_ORDER": "relevance",
    }
    index_service.get_index_service.cache_clear()
    index_service.get_search_service.cache_clear()
    yield settings.WEBINDEX
    index_service.get_index_service.cache_clear()
    index_service.get_search_service.cache_clear()


@pytest.fixture
def make_page(db):
    def _make(url, body="", title="", html=None, parent=None):
        document = Document.objects.create(
            url=url, title=title, content=html if html is not None else page_html(title, body)
        )
        if parent is not None:
            LinkEdge.objects.create(parent=parent, child=document)
        return document

    return _make


@pytest.fixture
def builder(db):
    return IndexBuilder()


@pytest.fixture
def indexed(make_page, builder):
    """Create pages ``{url: (title, body)}`` and index them."""
    def _indexed(pages):
        documents = {url: make_page(url, body=body, title=title) for url, (title, body) in pages.items()}
        builder.build_index({url: None for url in pages}, workers=1)
        return documents

    return _indexed

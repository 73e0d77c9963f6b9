import pytest

from webindex.backend.index_service import IndexService

pytestmark = pytest.mark.django_db


def test_search_api(client, indexed):
    indexed({"http://s.test/bees": ("Bees", "Honey bees make honey.")})

    data = client.get("/api/search", {"query": "honey", "pageSize": 5}).json()

    assert data["totalResults"] == 1
    assert data["pageSize"] == 5
    assert data["results"][0]["url"] == "http://s.test/bees"
    assert data["fromCache"] is False


def test_search_api_reports_parse_errors(client):
    data = client.get("/api/search", {"query": '"bees" AND honey'}).json()

    assert data["results"] == []
    assert data["message"] == "operators require both operands in quotes"


def test_process_query_api(client):
    data = client.get("/api/process-query", {"query": "Running shoes"}).json()

    assert data["operator"] is None
    assert data["stemmedWords"] == ["run", "shoe"]
    assert data["isPhraseQuery"] is False


def test_search_api_rejects_post(client):
    assert client.post("/api/search").status_code == 405


def test_reindex_api_starts_background_run(client, monkeypatch):
    calls = []

    def fake_reindex(self, urls=None, background=False):
        calls.append((urls, background))
        return {"status": "started"}

    monkeypatch.setattr(IndexService, "reindex", fake_reindex)

    response = client.post("/api/reindex", {"urls": ["http://s.test/a"]}, content_type="application/json")

    assert response.status_code == 202
    assert calls == [(["http://s.test/a"], True)]


def test_reindex_api_conflict_while_running(client, monkeypatch):
    monkeypatch.setattr(IndexService, "reindex",
                        lambda self, urls=None, background=False: {"status": "warning"})

    assert client.post("/api/reindex").status_code == 409


def test_reindex_api_validates_urls(client):
    response = client.post("/api/reindex", {"urls": "http://s.test/a"}, content_type="application/json")

    assert response.status_code == 400
    assert response.json()["status"] == "error"


def test_metrics_api(client, monkeypatch):
    monkeypatch.setattr(IndexService, "compute_metrics",
                        lambda self, background=False: {"status": "started"})

    response = client.post("/api/metrics")

    assert response.status_code == 202
    assert response.json() == {"status": "started"}


def test_index_stats_api(client, indexed):
    indexed({"http://s.test/x": ("X", "quartz crystals")})

    data = client.get("/api/index-stats").json()

    assert data["document_count"] == 1
    assert data["indexed_documents"] == 1
    assert data["word_count"] >= 2
    assert data["stats"]["N_docs"] == "1"
    assert data["indexing"]["in_progress"] is False

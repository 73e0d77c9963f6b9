import pytest

from webindex.backend.search_service import SearchService, merge_candidates, overlap_candidates
from webindex.models import PageRankScore

pytestmark = pytest.mark.django_db


@pytest.fixture
def service():
    return SearchService()


def result_urls(response):
    return [r.url for r in response.results]


def test_merge_candidates():
    assert merge_candidates("AND", [1, 2, 3], [3, 1]) == [1, 3]
    assert merge_candidates("OR", [1, 2], [3, 2]) == [1, 2, 3]
    assert merge_candidates("NOT", [1, 2, 3], [2]) == [1, 3]


def test_overlap_candidates_levels():
    assert overlap_candidates([[1, 2], [2, 3]], 100) == [2]
    # no document has all three: the ones with at least two win
    assert overlap_candidates([[1], [1], [2]], 100) == [1]
    # nobody reaches half: best overlap, capped
    assert overlap_candidates([[1], [2], [3], [4]], 2) == [1, 2]
    assert overlap_candidates([[], []], 10) == []


def test_free_text_round_trip(indexed, service):
    indexed({
        "http://s.test/solar": ("Solar power", "Solar panels turn sunlight into electricity."),
        "http://s.test/wind": ("Wind power", "Turbines turn wind into electricity."),
    })

    response = service.search("sunlight")

    assert result_urls(response) == ["http://s.test/solar"]
    assert response.total_results == 1
    assert "<mark>sunlight</mark>" in response.results[0].snippet
    assert response.message is None


def test_partial_overlap_fallback(indexed, service):
    indexed({
        "http://s.test/d1": ("One", "apple banana"),
        "http://s.test/d2": ("Two", "cherry date"),
    })

    response = service.search("apple banana cherry")

    assert result_urls(response) == ["http://s.test/d1"]


@pytest.fixture
def ml_pages(indexed):
    return indexed({
        "http://s.test/both": ("Both", "An intro to machine learning with neural networks inside."),
        "http://s.test/ml": ("Ml", "Plain machine learning material."),
        "http://s.test/nn": ("Nn", "Plain neural networks material."),
    })


@pytest.mark.parametrize("operator,expected", [
    ("AND", {"http://s.test/both"}),
    ("OR", {"http://s.test/both", "http://s.test/ml", "http://s.test/nn"}),
    ("NOT", {"http://s.test/ml"}),
])
def test_boolean_queries(ml_pages, service, operator, expected):
    response = service.search(f'"machine learning" {operator} "neural networks"')

    assert set(result_urls(response)) == expected
    assert response.plan.operator == operator


@pytest.mark.parametrize("operator,expected", [
    ("AND", ["http://s.test/both"]),
    ("NOT", []),
])
def test_boolean_operands_are_not_truncated(indexed, service, operator, expected):
    pages = {f"http://s.test/gd{i}": ("Page", "gamma delta only") for i in range(31)}
    pages["http://s.test/both"] = ("Both", "alpha beta next to gamma delta")
    indexed(pages)

    response = service.search(f'"alpha beta" {operator} "gamma delta"')

    assert result_urls(response) == expected


def test_phrase_query_requires_adjacent_words(indexed, service):
    indexed({
        "http://s.test/tea": ("Drinks", "We serve green tea every morning."),
        "http://s.test/mix": ("Market", "Green apples next to black tea."),
    })

    response = service.search('"green tea"')

    assert result_urls(response) == ["http://s.test/tea"]


def test_title_match_ranks_first(indexed, service):
    body = "Notes about volcano eruptions and lava flows for students."
    indexed({
        "http://s.test/a": ("Geology notes", body),
        "http://s.test/b": ("Volcano guide", body),
        # keeps idf above zero
        "http://s.test/c": ("Garden", "Tomatoes need sun and water."),
    })

    response = service.search("volcano lava")

    assert result_urls(response)[0] == "http://s.test/b"


def test_parse_error_comes_back_as_message(service):
    response = service.search("apple AND banana")

    assert response.results == []
    assert response.message == "operators require both operands in quotes"


def test_empty_query(service):
    response = service.search("   the   ")
    assert response.results == []
    assert response.message == "query has no searchable words"


def test_pagination(indexed, service):
    indexed({f"http://s.test/w{i}": (f"Page {i}", "widget catalogue") for i in range(12)})

    response = service.search("widget", page=3, page_size=5)

    assert response.total_results == 12
    assert response.total_pages == 3
    assert len(response.results) == 2
    assert response.to_dict()["totalPages"] == 3


def test_results_assembled_on_several_workers(indexed, service, webindex_settings):
    indexed({f"http://s.test/g{i}": (f"Page {i}", "glacier melt " * (i + 1)) for i in range(6)})
    indexed({"http://s.test/other": ("Other", "desert dunes")})
    webindex_settings["FETCH_WORKERS"] = 3
    webindex_settings["FETCH_BATCH_SIZE"] = 2

    response = service.search("glacier")

    assert response.total_results == 6
    assert not response.partial
    assert len({r.url for r in response.results}) == 6


def test_second_search_is_served_from_cache(indexed, service):
    indexed({"http://s.test/c": ("Cache", "comet sightings")})

    first = service.search("comet")
    second = service.search("  COMET ")

    assert not first.from_cache
    assert second.from_cache
    assert result_urls(second) == result_urls(first)


def test_failed_batch_gives_partial_uncached_result(indexed, service, webindex_settings, monkeypatch):
    indexed({
        "http://s.test/ok": ("Ok", "meteor shower"),
        "http://s.test/bad": ("Bad", "meteor crater"),
    })
    webindex_settings["FETCH_BATCH_SIZE"] = 1
    original = SearchService.assemble_batch

    def flaky(self, plan, context, documents):
        if documents[0].url.endswith("/bad"):
            raise RuntimeError("slow page")
        return original(self, plan, context, documents)

    monkeypatch.setattr(SearchService, "assemble_batch", flaky)

    response = service.search("meteor")
    again = service.search("meteor")

    assert response.partial
    assert result_urls(response) == ["http://s.test/ok"]
    assert response.message == "some results could not be loaded in time"
    assert not again.from_cache


def test_blend_uses_pagerank_to_break_ties(indexed, service):
    docs = indexed({
        "http://s.test/a": ("Page", "rocket engines"),
        "http://s.test/b": ("Page", "rocket engines"),
    })
    PageRankScore.objects.create(document=docs["http://s.test/a"], pagerank=0.1)
    PageRankScore.objects.create(document=docs["http://s.test/b"], pagerank=0.5)

    by_relevance = service.search("rocket", order="relevance")
    blended = service.search("rocket", order="blend")

    assert result_urls(by_relevance) == ["http://s.test/a", "http://s.test/b"]
    assert result_urls(blended) == ["http://s.test/b", "http://s.test/a"]
    assert blended.results[0].pagerank == 0.5


def test_describe_query(service):
    described = service.describe_query('"Green Tea" or "coffee"')
    assert described["operator"] == "OR"
    assert described["phrases"] == ["green tea", "coffee"]
    assert described["isPhraseQuery"] is True

    assert "error" in service.describe_query("tea AND coffee")

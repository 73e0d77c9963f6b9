import math

import networkx as nx
import pytest

from webindex.backend.ranking import RankingEngine, iterate_pagerank, pagerank
from webindex.backend.text_normalizer import stem
from webindex.models import IndexStat, PageRankScore


def test_cycle_keeps_total_mass():
    graph = nx.DiGraph([(1, 2), (2, 3), (3, 1)])
    scores = pagerank(graph, iterations=50)

    assert sum(scores.values()) == pytest.approx(1.0)
    assert scores[1] == pytest.approx(1 / 3)


def test_dangling_pages_leak_mass():
    graph = nx.DiGraph([(1, 2), (1, 3)])
    scores = pagerank(graph, iterations=20)

    assert sum(scores.values()) < 1.0
    assert scores[2] == pytest.approx(scores[3])
    assert scores[2] > scores[1]


def test_hub_target_ranks_highest():
    graph = nx.DiGraph([(1, 4), (2, 4), (3, 4), (4, 1)])
    scores = pagerank(graph)
    assert max(scores, key=scores.get) == 4


def test_iterate_pagerank_yields_each_step():
    graph = nx.DiGraph([(1, 2), (2, 1)])
    steps = list(iterate_pagerank(graph, iterations=3))
    assert len(steps) == 3
    assert list(iterate_pagerank(nx.DiGraph())) == []


@pytest.mark.django_db
def test_compute_and_store_covers_isolated_pages(make_page):
    root = make_page("http://s.test/", body="home")
    make_page("http://s.test/child", body="child", parent=root)
    lonely = make_page("http://s.test/lonely", body="alone")

    scores = RankingEngine().compute_and_store_pagerank(iterations=10)

    assert PageRankScore.objects.count() == 3
    assert scores[lonely.pk] == pytest.approx(0.15 / 3)
    assert all(math.isfinite(v) for v in scores.values())
    assert IndexStat.objects.filter(key="pagerank_computed_at").exists()


@pytest.mark.django_db
def test_final_rank_mixes_relevance_and_pagerank(indexed):
    docs = indexed({
        "http://s.test/a": ("A", "river river boat"),
        "http://s.test/b": ("B", "river bridge boat"),
        "http://s.test/c": ("C", "mountain"),
    })
    a, b = docs["http://s.test/a"].pk, docs["http://s.test/b"].pk
    engine = RankingEngine()
    river = stem("river")

    relevance = engine.corpus_relevance([river])
    assert set(relevance) == {a, b}
    assert relevance[a] > relevance[b]

    ranked = engine.final_rank([river], pagerank_scores={a: 0.0, b: 1.0})
    assert [r.document_id for r in ranked] == [b, a]
    top = ranked[0]
    assert top.final_rank == pytest.approx(0.7 * relevance[b] + 0.3 * 1.0)


@pytest.mark.django_db
def test_pagerank_for_prefers_stored_scores(make_page):
    page = make_page("http://s.test/p", body="x")
    PageRankScore.objects.create(document=page, pagerank=0.42)

    assert RankingEngine().pagerank_for([page.pk]) == {page.pk: 0.42}


@pytest.mark.django_db
def test_ranked_ids_orders_by_final_rank(indexed):
    docs = indexed({
        "http://s.test/a": ("A", "river river boat"),
        "http://s.test/b": ("B", "river bridge boat"),
        "http://s.test/c": ("C", "mountain"),
    })
    a, b = docs["http://s.test/a"], docs["http://s.test/b"]
    PageRankScore.objects.create(document=a, pagerank=0.0)
    PageRankScore.objects.create(document=b, pagerank=1.0)
    engine = RankingEngine()
    river = stem("river")

    assert engine.ranked_ids([river]) == [b.pk, a.pk]
    assert engine.ranked_ids([river], doc_ids=[a.pk]) == [a.pk]
    assert engine.ranked_ids([stem("desert")]) == []

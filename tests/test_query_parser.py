import pytest

from webindex.backend.query_parser import QueryShape, parse_query
from webindex.backend.text_normalizer import stem
from webindex.errors import QueryParseError


def test_free_text_is_stemmed_without_stopwords():
    plan = parse_query("Running the engines")
    assert plan.shape is QueryShape.FREE_TEXT
    assert plan.terms == (stem("running"), stem("engines"))
    assert plan.operator is None


def test_free_text_terms_are_deduplicated():
    assert parse_query("cats cat CATS").terms == ("cat",)


def test_single_quoted_phrase():
    plan = parse_query('  "Machine   Learning"  ')
    assert plan.shape is QueryShape.PHRASE
    assert plan.phrases == ("machine learning",)
    assert plan.terms == (stem("machine"), stem("learning"))


@pytest.mark.parametrize("operator", ["AND", "OR", "NOT", "and", "Or"])
def test_operator_between_phrases(operator):
    plan = parse_query(f'"deep learning" {operator} "neural networks"')
    assert plan.shape is QueryShape.BOOLEAN
    assert plan.operator == operator.upper()
    assert plan.phrases == ("deep learning", "neural networks")


@pytest.mark.parametrize("query", [
    'cats AND dogs',
    '"cats" AND dogs',
    'cats OR "dogs"',
    '"cats" and dogs',
    '"a" AND "b" AND "c"',
])
def test_operator_needs_quoted_operands(query):
    with pytest.raises(QueryParseError, match="operators require both operands in quotes"):
        parse_query(query)


def test_lowercase_connectives_in_plain_text_stay_free_text():
    plan = parse_query("salt and pepper")
    assert plan.shape is QueryShape.FREE_TEXT
    assert plan.terms == ("salt", stem("pepper"))


def test_quoted_part_inside_free_text_is_kept_as_phrase():
    plan = parse_query('best "green tea" recipes')
    assert plan.shape is QueryShape.FREE_TEXT
    assert plan.phrases == ("green tea",)
    assert stem("green") in plan.terms
    assert plan.text == "best green tea recipes"


def test_empty_query():
    assert parse_query("").is_empty
    assert parse_query(None).is_empty
    assert parse_query("the of and").is_empty

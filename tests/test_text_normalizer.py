from webindex.backend.text_normalizer import (
    IMPORTANT_TERMS,
    document_terms,
    is_stopword,
    normalize,
    parse_page,
    query_terms,
    stem,
    tag_terms,
    visible_text,
)


def test_normalize_drops_markup_scripts_and_styles():
    html = (
        "<html><head><style>body { color: red; }</style>"
        "<script>var secret = 'hidden';</script></head>"
        "<body><p>Running dogs</p></body></html>"
    )
    assert normalize(html) == [stem("running"), stem("dogs")]


def test_normalize_removes_stopwords_and_single_letters():
    assert normalize("<p>The x cat and a dog</p>") == [stem("cat"), stem("dog")]


def test_normalize_keeps_order_and_duplicates():
    assert normalize("<p>zebra apple zebra</p>") == [stem("zebra"), stem("apple"), stem("zebra")]


def test_important_terms_survive_filtering():
    assert is_stopword("it")
    tokens = normalize("<p>it is about AI in the US</p>")
    assert "it" in tokens
    assert "ai" in tokens
    assert "us" in tokens
    assert {"it", "ai", "us"} <= IMPORTANT_TERMS


def test_document_pass_keeps_letters_only():
    tokens = normalize("<p>version2 released in 2024</p>")
    assert "2024" not in tokens
    assert stem("version") in tokens


def test_normalize_never_raises_on_bad_input():
    assert normalize(None) == []
    assert normalize("") == []
    assert normalize("<p>unclosed <b>bold <i>text") == [stem("unclosed"), stem("bold"), stem("text")]


def test_parse_page_collects_title_and_tag_texts():
    page = parse_page(
        "<html><head><title>My Page</title></head><body>"
        "<h1>Main heading</h1><h2>Sub</h2><p>First para</p><p>Second para</p></body></html>"
    )
    assert page.title == "My Page"
    assert page.tags["h1"] == ["Main heading"]
    assert page.tags["p"] == ["First para", "Second para"]
    assert page.tags["h3"] == []
    assert "Main heading" in page.text


def test_visible_text_keeps_case():
    assert visible_text("<p>Hello <b>World</b></p>") == "Hello World"


def test_tag_pass_differs_from_document_pass():
    page = parse_page("<h1>Python 3000 release</h1><p>release notes</p>")
    tags = tag_terms(page)

    assert tags["h1"]["3000"] == 1
    assert tags["h1"][stem("release")] == 1
    assert tags["p"][stem("release")] == 1
    assert "3000" not in document_terms(page)
    assert document_terms(page).count(stem("release")) == 2


def test_query_terms_match_document_terms():
    words = "Searching engines rank documents"
    assert query_terms(words) == normalize(f"<p>{words}</p>")

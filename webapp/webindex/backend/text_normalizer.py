"""
HTML -> normalized stemmed tokens.

Two separate extraction passes:

* ``document_terms`` works on the whole visible text, letters only. It feeds
  Posting counts, token positions and document length.
* ``tag_terms`` works on the raw text of each <p>/<h1>/<h2>/<h3> element
  (digits kept). It feeds TagPosting counts only.
"""
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List

from bs4 import BeautifulSoup
from nltk.stem import PorterStemmer

logger = logging.getLogger(__name__)

NON_LETTER_RE = re.compile(r"[^a-zA-Z]")
WORD_RE = re.compile(r"\w+")

STRIP_TAGS = ("script", "style", "meta", "link", "noscript")
INDEXED_TAGS = ("p", "h1", "h2", "h3")

# short words that survive stopword / length filtering
IMPORTANT_TERMS = frozenset({
    "us", "uk", "un", "eu", "it", "ai", "who", "nato", "ui", "os", "db", "js", "io",
})

STOPWORDS_FILE = Path(__file__).with_name("stopwords.txt")

_stemmer = PorterStemmer()


@dataclass
class ParsedPage:
    text: str = ""
    title: str = ""
    tags: Dict[str, List[str]] = field(default_factory=dict)


@lru_cache(maxsize=1)
def load_stopwords():
    with STOPWORDS_FILE.open(encoding="utf-8") as f:
        return frozenset(line.strip().lower() for line in f if line.strip())


@lru_cache(maxsize=100_000)
def stem(word: str) -> str:
    return _stemmer.stem(word)


def is_stopword(word: str) -> bool:
    return word in load_stopwords()


def keep_token(token: str) -> bool:
    if token in IMPORTANT_TERMS:
        return True
    if len(token) < 2:
        return False
    return not is_stopword(token)


def parse_page(html) -> ParsedPage:
    """Parse permissively; a page that cannot be parsed gives an empty ParsedPage."""
    if not html:
        return ParsedPage()
    try:
        soup = BeautifulSoup(html, "html.parser")
        for node in soup(STRIP_TAGS):
            node.decompose()

        title = soup.title.get_text(" ", strip=True) if soup.title else ""
        tags = {
            tag: [el.get_text(" ", strip=True) for el in soup.find_all(tag)]
            for tag in INDEXED_TAGS
        }
        text = " ".join(soup.get_text(" ").split())
    except Exception as exc:  # bs4 surfaces parser bugs as assorted exceptions
        logger.warning("Could not parse page (%s), indexing it as empty", exc)
        return ParsedPage()
    return ParsedPage(text=text, title=title, tags=tags)


def visible_text(html) -> str:
    return parse_page(html).text


def normalize_text(text) -> List[str]:
    """Letters only -> lowercase -> \\w+ -> filter -> stem."""
    if not text:
        return []
    letters = NON_LETTER_RE.sub(" ", text).lower()
    return [stem(tok) for tok in WORD_RE.findall(letters) if keep_token(tok)]


def normalize(html) -> List[str]:
    return document_terms(parse_page(html))


def document_terms(page: ParsedPage) -> List[str]:
    """Whole-document pass; order preserved, duplicates kept."""
    return normalize_text(page.text)


def tag_terms(page: ParsedPage) -> Dict[str, Counter]:
    """Per-tag pass: {tag: Counter(stem -> count)} over raw lowercase element text."""
    counts = {}
    for tag in INDEXED_TAGS:
        counter = Counter()
        for element_text in page.tags.get(tag, []):
            for tok in WORD_RE.findall(element_text.lower()):
                if keep_token(tok):
                    counter[stem(tok)] += 1
        counts[tag] = counter
    return counts


def query_terms(query) -> List[str]:
    """Same normalization as documents, so indexed words and query words meet."""
    return normalize_text(query)

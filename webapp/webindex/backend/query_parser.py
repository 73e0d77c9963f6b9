"""
Query mini-grammar:

    "exact phrase"                  one phrase
    "phrase a" AND|OR|NOT "phrase b" two quoted operands combined
    anything else                   free text, AND of terms with fallback

Operators are matched case-insensitively when the query contains quotes.
Without quotes only upper-case AND/OR/NOT count as operators, so plain text
like "salt and pepper" stays a free-text query.
"""
import enum
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from webindex.errors import QueryParseError

from .text_normalizer import query_terms

OPERATOR_RE = re.compile(r"\s+(AND|OR|NOT)\s+", re.IGNORECASE)
PHRASE_RE = re.compile(r'"([^"]+)"')
QUOTED_OPERAND_RE = re.compile(r'^"([^"]+)"$')

OPERAND_ERROR = "operators require both operands in quotes"


class QueryShape(enum.Enum):
    FREE_TEXT = "free_text"
    PHRASE = "phrase"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class QueryPlan:
    raw: str
    shape: QueryShape
    operator: Optional[str] = None
    phrases: Tuple[str, ...] = ()
    terms: Tuple[str, ...] = ()

    @property
    def text(self) -> str:
        """Query without quotes, whitespace collapsed, lowercase."""
        return " ".join(self.raw.replace('"', " ").split()).lower()

    @property
    def is_empty(self) -> bool:
        return not self.terms and not self.phrases


def clean_phrase(phrase: str) -> str:
    return " ".join(phrase.split()).lower()


def _find_operator(query):
    match = OPERATOR_RE.search(query)
    if match is None:
        return None
    if '"' in query or match.group(1).isupper():
        return match
    return None


def parse_query(query) -> QueryPlan:
    raw = (query or "").strip()

    match = _find_operator(raw)
    if match is not None:
        left = QUOTED_OPERAND_RE.match(raw[: match.start()].strip())
        right = QUOTED_OPERAND_RE.match(raw[match.end():].strip())
        if left is None or right is None:
            raise QueryParseError(OPERAND_ERROR)
        phrases = (clean_phrase(left.group(1)), clean_phrase(right.group(1)))
        if not all(phrases):
            raise QueryParseError(OPERAND_ERROR)
        return QueryPlan(
            raw=raw,
            shape=QueryShape.BOOLEAN,
            operator=match.group(1).upper(),
            phrases=phrases,
            terms=tuple(query_terms(" ".join(phrases))),
        )

    whole = QUOTED_OPERAND_RE.match(raw)
    if whole is not None and clean_phrase(whole.group(1)):
        phrase = clean_phrase(whole.group(1))
        return QueryPlan(raw=raw, shape=QueryShape.PHRASE, phrases=(phrase,),
                         terms=tuple(query_terms(phrase)))

    # free text; quoted parts are kept for boosting and snippets
    phrases = tuple(p for p in (clean_phrase(p) for p in PHRASE_RE.findall(raw)) if p)
    return QueryPlan(raw=raw, shape=QueryShape.FREE_TEXT, phrases=phrases,
                     terms=tuple(dict.fromkeys(query_terms(raw.replace('"', " ")))))

"""
Query-time scoring. One scorer, three query shapes:

FREE_TEXT  short-circuits (exact title, all terms in URL, all terms in title),
           then capped tf * idf with title/URL boosts, missing-term penalty,
           literal phrase boost and a proximity bonus, in that order.
PHRASE     fixed multipliers on a base of 1.0.
BOOLEAN    product of one contribution per phrase.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List

from webindex import conf
from webindex.models import Document, Posting, PostingMetrics, TermStats

from .inverted_index import document_lengths
from .metrics import compute_idf
from .query_parser import QueryPlan, QueryShape
from .text_normalizer import WORD_RE, parse_page, query_terms

logger = logging.getLogger(__name__)

TF_CAP_RATIO = 0.1
TITLE_TERM_BOOST = 3.0
URL_TERM_BOOST = 2.0
MISSING_TERMS_PENALTY = 0.1
LITERAL_PHRASE_BOOST = 3.0

PHRASE_TITLE_BOOST = 3.0
PHRASE_FIRST_PARAGRAPH_BOOST = 1.5
PHRASE_URL_BOOST = 2.0
BOOLEAN_LITERAL_BOOST = 2.0

# (max distance, bonus), checked in order
PROXIMITY_STEPS = ((3, 2.0), (10, 1.0), (50, 0.5))


@dataclass
class DocumentView:
    """Pre-lowered fields of one document, built once per query."""
    id: int
    url: str
    title: str
    text: str
    paragraphs: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.url_lower = (self.url or "").lower()
        self.title_lower = " ".join((self.title or "").split()).lower()
        self.text_lower = " ".join((self.text or "").split()).lower()
        self.words = WORD_RE.findall(self.text_lower)
        self.first_paragraph = " ".join(self.paragraphs[0].split()).lower() if self.paragraphs else ""

    @classmethod
    def from_document(cls, document: Document):
        page = parse_page(document.content)
        return cls(
            id=document.pk,
            url=document.url,
            title=document.title or page.title,
            text=page.text,
            paragraphs=[p for p in page.tags.get("p", []) if p],
        )


class ScoringContext:
    """idf per term, tf per (term, document) and raw frequencies for one query.

    idf and tf come from the last metrics pass (TermStats, PostingMetrics).
    Terms or postings the metrics pass has not seen, or postings whose
    frequency changed since, fall back to live values.
    """

    def __init__(self, total_documents=0, idf=None, lengths=None, frequencies=None,
                 term_frequencies=None):
        self.total_documents = total_documents
        self._idf = idf or {}
        self.lengths = lengths or {}
        self.frequencies = frequencies or {}
        self.term_frequencies = term_frequencies or {}

    @classmethod
    def load(cls, terms: Iterable[str], doc_ids: Iterable[int]):
        terms = sorted(set(terms))
        doc_ids = list(doc_ids)
        total = Document.objects.count()

        idf = dict(
            TermStats.objects.filter(term__text__in=terms).values_list("term__text", "idf")
        )
        for term in terms:
            if term not in idf:
                # metrics not computed yet for this term
                df = Posting.objects.filter(term__text=term, frequency__gt=0).count()
                idf[term] = compute_idf(total, df)

        frequencies = {}
        rows = Posting.objects.filter(
            term__text__in=terms, document_id__in=doc_ids
        ).values_list("term__text", "document_id", "frequency")
        for text, doc_id, freq in rows:
            frequencies.setdefault(text, {})[doc_id] = freq

        term_frequencies = {}
        rows = PostingMetrics.objects.filter(
            term__text__in=terms, document_id__in=doc_ids
        ).values_list("term__text", "document_id", "frequency", "term_frequency")
        for text, doc_id, freq, tf in rows:
            if frequencies.get(text, {}).get(doc_id) == freq:
                term_frequencies.setdefault(text, {})[doc_id] = tf

        stale = {
            doc_id
            for text, postings in frequencies.items()
            for doc_id in postings
            if doc_id not in term_frequencies.get(text, {})
        }
        lengths = document_lengths(stale) if stale else {}
        return cls(total, idf, lengths, frequencies, term_frequencies)

    def idf(self, term) -> float:
        return self._idf.get(term, 0.0)

    def frequency(self, term, doc_id) -> int:
        return self.frequencies.get(term, {}).get(doc_id, 0)

    def length(self, doc_id) -> int:
        return max(1, self.lengths.get(doc_id, 0))

    def tf(self, term, doc_id) -> float:
        stored = self.term_frequencies.get(term, {}).get(doc_id)
        if stored is not None:
            return stored
        return self.frequency(term, doc_id) / self.length(doc_id)


def proximity_bonus(words: List[str], terms: Iterable[str]) -> float:
    """Bonus from the smallest gap between occurrences of two different terms."""
    occurrences = []
    for term in set(terms):
        occurrences.extend((i, term) for i, word in enumerate(words) if term in word)
    if len({term for _, term in occurrences}) < 2:
        return 0.0

    occurrences.sort()
    best = None
    for (pos_a, term_a), (pos_b, term_b) in zip(occurrences, occurrences[1:]):
        if term_a != term_b:
            gap = pos_b - pos_a
            best = gap if best is None else min(best, gap)

    for max_distance, bonus in PROXIMITY_STEPS:
        if best <= max_distance:
            return bonus
    return 0.0


class QueryScorer:

    def score(self, plan: QueryPlan, doc: DocumentView, context: ScoringContext) -> float:
        if plan.shape is QueryShape.PHRASE:
            return self.score_phrase(plan.phrases[0], doc)
        if plan.shape is QueryShape.BOOLEAN:
            return self.score_boolean(plan, doc, context)
        return self.score_free_text(plan, doc, context)

    def term_weight(self, term, doc: DocumentView, context: ScoringContext) -> float:
        if not context.frequency(term, doc.id):
            return 0.0
        tf = min(context.tf(term, doc.id), TF_CAP_RATIO)
        weight = tf * context.idf(term)
        if term in doc.title_lower:
            weight *= TITLE_TERM_BOOST
        if term in doc.url_lower:
            weight *= URL_TERM_BOOST
        return weight

    def score_free_text(self, plan: QueryPlan, doc: DocumentView, context: ScoringContext) -> float:
        literal = plan.text
        terms = plan.terms

        # 1) short-circuits
        if literal and literal in doc.title_lower:
            return float(conf.get("TITLE_EXACT_SCORE"))
        if not terms:
            return 0.0
        if all(t in doc.url_lower for t in terms):
            return float(conf.get("URL_ALL_TERMS_SCORE"))
        if all(t in doc.title_lower for t in terms):
            return float(conf.get("TITLE_ALL_TERMS_SCORE"))

        # 2) tf * idf
        score = 0.0
        missing = 0
        for term in terms:
            weight = self.term_weight(term, doc, context)
            if not context.frequency(term, doc.id):
                missing += 1
            score += weight

        # 3) penalties and boosts, order matters
        if missing > len(terms) / 2:
            score *= MISSING_TERMS_PENALTY
        if literal and (literal in doc.text_lower or literal in doc.title_lower):
            return score * LITERAL_PHRASE_BOOST
        return score + proximity_bonus(doc.words, terms)

    def score_phrase(self, phrase: str, doc: DocumentView) -> float:
        score = 1.0
        if phrase in doc.title_lower:
            score *= PHRASE_TITLE_BOOST
        count = doc.text_lower.count(phrase)
        if count > 1:
            score *= 1 + math.log(count)
        if doc.first_paragraph and phrase in doc.first_paragraph:
            score *= PHRASE_FIRST_PARAGRAPH_BOOST
        if phrase.replace(" ", "-") in doc.url_lower:
            score *= PHRASE_URL_BOOST
        return score

    def phrase_contribution(self, phrase: str, doc: DocumentView, context: ScoringContext) -> float:
        contribution = 1.0
        for term in query_terms(phrase):
            if not context.frequency(term, doc.id):
                continue
            weight = context.tf(term, doc.id) * context.idf(term)
            if term in doc.title_lower:
                weight *= TITLE_TERM_BOOST
            contribution += weight
        if phrase in doc.text_lower or phrase in doc.title_lower:
            contribution *= BOOLEAN_LITERAL_BOOST
        return contribution

    def score_boolean(self, plan: QueryPlan, doc: DocumentView, context: ScoringContext) -> float:
        score = 1.0
        for phrase in plan.phrases:
            score *= self.phrase_contribution(phrase, doc, context)
        return score

"""Exact phrase lookup.

Candidates come from the posting list of the first non-stopword of the
phrase; a candidate matches when the lowercase phrase is a substring of its
visible text or title. Token positions are only consulted for long phrases
in long documents whose substring check failed.
"""
import logging
from typing import Dict, List, Optional

from webindex import conf
from webindex.models import Document, Posting, TermPosition

from .inverted_index import document_lengths
from .query_parser import clean_phrase
from .text_normalizer import parse_page, query_terms

logger = logging.getLogger(__name__)


def collapse(text: str) -> str:
    return " ".join((text or "").split()).lower()


def positions_in_sequence(positions: Dict[str, set], stems: List[str]) -> bool:
    """True when ``stems`` occur at consecutive token offsets."""
    if not stems or any(not positions.get(s) for s in stems):
        return False
    for start in positions[stems[0]]:
        if all(start + i in positions[s] for i, s in enumerate(stems)):
            return True
    return False


class PhraseMatcher:

    def __init__(self, candidate_limit=None, max_matches=None, long_document_tokens=None):
        self.candidate_limit = candidate_limit
        self.max_matches = max_matches
        self.long_document_tokens = long_document_tokens

    def _setting(self, value, name):
        return conf.get(name) if value is None else value

    def candidates(self, stems: List[str]) -> List[int]:
        if not stems:
            return []
        limit = self._setting(self.candidate_limit, "PHRASE_CANDIDATE_LIMIT")
        return list(
            Posting.objects.filter(term__text=stems[0], frequency__gt=0)
            .order_by("document_id")
            .values_list("document_id", flat=True)[:limit]
        )

    def resolve(self, phrase: str, max_matches: Optional[int] = None) -> List[int]:
        """Ids of documents containing ``phrase``, in posting order."""
        phrase = clean_phrase(phrase)
        stems = query_terms(phrase)
        if not stems:
            logger.debug("Phrase %r has no indexable words", phrase)
            return []

        max_matches = max_matches or self._setting(self.max_matches, "PHRASE_MAX_MATCHES")
        candidate_ids = self.candidates(stems)
        documents = Document.objects.in_bulk(candidate_ids)

        matches = []
        for doc_id in candidate_ids:
            document = documents.get(doc_id)
            if document is None:
                continue
            if self.contains(document, phrase, stems):
                matches.append(doc_id)
                if len(matches) >= max_matches:
                    break

        logger.debug("Phrase %r: %d candidates, %d matches", phrase, len(candidate_ids), len(matches))
        return matches

    def contains(self, document, phrase: str, stems: List[str]) -> bool:
        page = parse_page(document.content)
        if phrase in collapse(page.text) or phrase in collapse(document.title or page.title):
            return True

        if len(phrase.split()) <= 3:
            return False
        length = document_lengths([document.pk]).get(document.pk, 0)
        if length <= self._setting(self.long_document_tokens, "LONG_DOCUMENT_TOKENS"):
            return False
        return self.positional_match(document.pk, stems)

    def positional_match(self, document_id, stems: List[str]) -> bool:
        rows = TermPosition.objects.filter(
            document_id=document_id, term__text__in=set(stems)
        ).values_list("term__text", "positions")
        positions = {text: set(offsets) for text, offsets in rows}
        return positions_in_sequence(positions, stems)

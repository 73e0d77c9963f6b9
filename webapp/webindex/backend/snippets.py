"""Snippet and description text for search results."""
import html
import re
from typing import Iterable, List, Sequence

from .query_parser import QueryPlan

SNIPPET_LENGTH = 300
DESCRIPTION_LENGTH = 200
MIN_PARAGRAPH_CHARS = 20
CONTEXT_BEFORE_MATCH = 60

MARK_OPEN = "<mark>"
MARK_CLOSE = "</mark>"

DATA_URI_RE = re.compile(r"data:\S*;base64,\S*")
JS_VAR_RE = re.compile(r"var\s+[^=]+=\s*[^;]*;")
CSS_BLOCK_RE = re.compile(r"\{--[^}]*\}")


def split_paragraphs(paragraphs: Sequence[str], text: str) -> List[str]:
    """<p> texts when the page has any, otherwise the text split on sentences."""
    found = [" ".join(p.split()) for p in paragraphs if p and p.strip()]
    if found:
        return found
    return [s.strip() for s in (text or "").split(". ") if s.strip()]


def choose_paragraph(paragraphs: List[str], phrases: Iterable[str], terms: Iterable[str]) -> str:
    if not paragraphs:
        return ""
    lowered = [p.lower() for p in paragraphs]

    for phrase in phrases:
        for original, low in zip(paragraphs, lowered):
            if phrase in low:
                return original

    terms = list(terms)
    if terms:
        hits = [sum(1 for t in terms if t in low) for low in lowered]
        best = max(range(len(paragraphs)), key=lambda i: hits[i])
        if hits[best] > 0:
            return paragraphs[best]

    for paragraph in paragraphs:
        if len(paragraph) >= MIN_PARAGRAPH_CHARS:
            return paragraph
    return paragraphs[0]


def _highlight_pattern(phrases, terms):
    parts = []
    for phrase in sorted(set(phrases), key=len, reverse=True):
        words = phrase.split()
        if words:
            parts.append(r"\s+".join(re.escape(w) for w in words))
    for term in sorted(set(terms), key=len, reverse=True):
        parts.append(r"\b" + re.escape(term) + r"\w*")
    if not parts:
        return None
    return re.compile("|".join(parts), re.IGNORECASE)


def highlight(text: str, phrases: Iterable[str] = (), terms: Iterable[str] = ()) -> str:
    """HTML-escape ``text`` and wrap query matches in <mark>."""
    pattern = _highlight_pattern(list(phrases), list(terms))
    if pattern is None:
        return html.escape(text)

    out = []
    last = 0
    for match in pattern.finditer(text):
        if match.start() == match.end():
            continue
        out.append(html.escape(text[last:match.start()]))
        out.append(MARK_OPEN + html.escape(match.group(0)) + MARK_CLOSE)
        last = match.end()
    out.append(html.escape(text[last:]))
    return "".join(out)


def truncate_marked(text: str, limit: int = SNIPPET_LENGTH) -> str:
    """Cut to about ``limit`` chars; a <mark>...</mark> span is never split."""
    if len(text) <= limit:
        return text

    start = 0
    first = text.find(MARK_OPEN)
    if first > limit - CONTEXT_BEFORE_MATCH:
        start = text.rfind(" ", 0, max(0, first - CONTEXT_BEFORE_MATCH)) + 1

    end = start + limit
    open_at = text.rfind(MARK_OPEN, start, end)
    close_at = text.find(MARK_CLOSE, open_at) if open_at != -1 else -1
    if end >= len(text):
        end = len(text)
    elif open_at != -1 and close_at + len(MARK_CLOSE) > end:
        end = close_at + len(MARK_CLOSE)
    else:
        space = text.rfind(" ", start, end)
        if space > start:
            end = space

    snippet = text[start:end].strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet += "..."
    return snippet


def make_snippet(paragraphs: Sequence[str], text: str, plan: QueryPlan) -> str:
    chosen = choose_paragraph(split_paragraphs(paragraphs, text), plan.phrases, plan.terms)
    return truncate_marked(highlight(chosen, plan.phrases, plan.terms))


def build_description(text: str, limit: int = DESCRIPTION_LENGTH) -> str:
    """Plain-text summary: no data URIs, JS declarations or {--...} blocks."""
    if not text:
        return ""
    text = DATA_URI_RE.sub("", text)
    text = JS_VAR_RE.sub("", text)
    text = CSS_BLOCK_RE.sub("", text)
    text = " ".join(text.split())
    if len(text) > limit:
        text = text[:limit].rstrip() + "..."
    return text


def describe(paragraphs: Sequence[str], text: str) -> str:
    for paragraph in split_paragraphs(paragraphs, text):
        if len(paragraph) >= MIN_PARAGRAPH_CHARS:
            return build_description(paragraph)
    return build_description(text)

"""Tunables for the index, query and ranking code.

Values come from ``settings.WEBINDEX`` and fall back to ``DEFAULTS``. They are
read on every call so ``override_settings`` works in tests.
"""
import os

from django.conf import settings

DEFAULTS = {
    # indexing
    "INDEX_BATCH_SIZE": 20,
    "INDEX_WORKERS": min(os.cpu_count() or 1, 8),
    # phrase resolution
    "PHRASE_CANDIDATE_LIMIT": 1000,
    "PHRASE_MAX_MATCHES": 30,
    "PHRASE_REPORTED_RESULTS": 100,
    "LONG_DOCUMENT_TOKENS": 5000,
    # free text retrieval
    "POSTING_LIMIT": 1000,
    "FALLBACK_RESULT_LIMIT": 100,
    "MAX_CANDIDATES": 1000,
    # result assembly
    "FETCH_BATCH_SIZE": 50,
    "FETCH_WORKERS": 4,
    "FETCH_TIMEOUT_SECONDS": 30,
    # scoring short-circuits
    "TITLE_EXACT_SCORE": 1000.0,
    "URL_ALL_TERMS_SCORE": 500.0,
    "TITLE_ALL_TERMS_SCORE": 250.0,
    # query result cache
    "CACHE_TTL_SECONDS": 30 * 60,
    "CACHE_MAX_ENTRIES": 500,
    # ranking
    "PAGERANK_DAMPING": 0.85,
    "PAGERANK_ITERATIONS": 100,
    "RELEVANCE_WEIGHT": 0.7,
    "PAGERANK_WEIGHT": 0.3,
    "DEFAULT_ORDER": "blend",
    # metrics
    "METRICS_BATCH_SIZE": 5000,
}


def get(name):
    overrides = getattr(settings, "WEBINDEX", None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]

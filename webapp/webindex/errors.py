class WebIndexError(Exception):
    """Base class for errors raised by the webindex backend."""


class QueryParseError(WebIndexError):
    """Malformed query (e.g. an operator without quoted operands).

    The message is shown to the user as-is.
    """


class IndexingError(WebIndexError):
    """An indexing run could not start or finish."""


class ComputationError(WebIndexError):
    """Metrics or PageRank step failed for part of the data."""

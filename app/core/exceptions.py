"""Errors raised by the search core.

An empty result set always means "zero matches". Anything that went wrong while
talking to the store is raised as one of the errors below so callers can tell
the two apart.
"""


class SearchError(Exception):
    """Base class for every search failure"""

    kind = "search_error"


class InvalidQueryError(SearchError):
    """The query itself is malformed; retrying it will not help"""

    kind = "invalid_query"


class InvalidCoordinate(InvalidQueryError, ValueError):
    kind = "invalid_coordinate"


class CategoryNotFoundError(SearchError):
    kind = "category_not_found"

    def __init__(self, slug: str):
        super().__init__(f"Category not found: {slug}")
        self.slug = slug


class SearchBackendError(SearchError):
    """The data store or full-text search call failed"""

    kind = "backend_error"

    def __init__(self, message: str, operation: str = None):
        super().__init__(message)
        self.operation = operation


class SearchTimeoutError(SearchBackendError):
    """A backend call did not answer in time. Transient, callers may retry."""

    kind = "timeout"


class PartialHydrationWarning(UserWarning):
    """Some candidate ids could not be loaded; the request continues without them"""

from fastapi import Query

from heritage.config import settings


class ListParams:
    """
    FastAPI dependency parsing the entry list query string.

    Attributes
    ----------
    search:
        Optional free-text query matched against title, content, location
        and category.
    category:
        Optional exact category filter; ``"all"`` means no filter.
    sort:
        Sort keys, ``-`` prefix for descending (default ``-createdAt``).
    page:
        1-based page number.  Non-numeric or non-positive values are
        rejected with 422 before reaching the service.
    limit:
        Page size, at most ``settings.MAX_PAGE_SIZE``.
    """

    def __init__(
        self,
        search: str | None = Query(None, max_length=200, description="Free-text search."),
        category: str | None = Query(None, description="Category filter, or 'all'."),
        sort: str = Query("-createdAt", description="Sort keys, '-' prefix for descending."),
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=settings.MAX_PAGE_SIZE,
            description="Entries per page.",
        ),
    ) -> None:
        self.search = search
        self.category = category
        self.sort = sort
        self.page = page
        self.limit = limit

"""Paginated listing."""

from collections.abc import AsyncIterator, Awaitable, Callable

from s3simple.models import ListBucketResult

type PageFetcher = Callable[[str | None], Awaitable[ListBucketResult]]


def v1_marker(continuation_token: str | None, start_after: str | None) -> str | None:
    """Pick the `marker` of a legacy (v1) ListObjects request.

    v1 has a single marker for both the starting position and the
    continuation, so the lexically greater of the two is sent. A missing
    value loses against any string.
    """
    if continuation_token is None:
        return start_after
    if start_after is None:
        return continuation_token
    return max(continuation_token, start_after)


async def iter_pages(fetch_page: PageFetcher) -> AsyncIterator[ListBucketResult]:
    """Yield pages in order, following continuation tokens.

    Args:
        fetch_page: Fetches one page given the continuation token, None for the first page.

    Yields:
        Each page. Iteration stops after the first page without a next continuation token.

    """
    continuation_token: str | None = None
    while True:
        page = await fetch_page(continuation_token)
        continuation_token = page.next_continuation_token
        yield page
        if continuation_token is None:
            return


async def collect_pages(fetch_page: PageFetcher) -> list[ListBucketResult]:
    """Fetch every page into a list."""
    return [page async for page in iter_pages(fetch_page)]

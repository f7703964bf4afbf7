"""Test listing pagination."""

import pytest

from s3simple.documents import parse_list_bucket_result
from s3simple.listing import collect_pages, iter_pages, v1_marker
from s3simple.models import ListBucketResult, Object


def page(keys: list[str], next_token: str | None) -> ListBucketResult:
    """Build a listing page."""
    return ListBucketResult(
        name="bucket",
        is_truncated=next_token is not None,
        next_continuation_token=next_token,
        contents=[Object(key=key) for key in keys],
    )


class PagedBucket:
    """Serves pages keyed by the continuation token that leads to them."""

    def __init__(self, pages: dict[str | None, ListBucketResult]) -> None:
        self._pages = pages
        self.tokens: list[str | None] = []

    async def fetch(self, continuation_token: str | None) -> ListBucketResult:
        self.tokens.append(continuation_token)
        return self._pages[continuation_token]


@pytest.mark.parametrize(
    ("continuation_token", "start_after", "expected"),
    [
        (None, None, None),
        ("token", None, "token"),
        (None, "start", "start"),
        ("b", "a", "b"),
        ("a", "b", "b"),
        ("same", "same", "same"),
    ],
)
def test_v1_marker(continuation_token: str | None, start_after: str | None, expected: str | None) -> None:
    """Test that the lexically greater value becomes the marker and None always loses."""
    assert v1_marker(continuation_token, start_after) == expected


@pytest.mark.asyncio
async def test_iter_pages_follows_tokens() -> None:
    """Test that every continuation token is followed exactly once, in order."""
    bucket = PagedBucket(
        {
            None: page(["a", "b"], "t1"),
            "t1": page(["c", "d"], "t2"),
            "t2": page(["e"], None),
        }
    )
    keys = [item.key async for result in iter_pages(bucket.fetch) for item in result.contents]
    assert keys == ["a", "b", "c", "d", "e"]
    assert bucket.tokens == [None, "t1", "t2"]


@pytest.mark.asyncio
async def test_collect_single_page() -> None:
    """Test that a page without next token stops the listing."""
    bucket = PagedBucket({None: page(["only"], None)})
    pages = await collect_pages(bucket.fetch)
    assert len(pages) == 1
    assert bucket.tokens == [None]


@pytest.mark.asyncio
async def test_collect_stops_on_missing_token_even_if_truncated() -> None:
    """Test that only the token decides termination."""
    truncated_without_token = ListBucketResult(name="bucket", is_truncated=True, contents=[Object(key="a")])
    bucket = PagedBucket({None: truncated_without_token})
    pages = await collect_pages(bucket.fetch)
    assert pages == [truncated_without_token]


@pytest.mark.asyncio
async def test_collect_stops_on_empty_next_token_element() -> None:
    """Test that a truncated page with an empty next token element ends the listing."""
    document = (
        b"<ListBucketResult><Name>bucket</Name><IsTruncated>true</IsTruncated>"
        b"<Contents><Key>a</Key></Contents><NextContinuationToken></NextContinuationToken></ListBucketResult>"
    )
    bucket = PagedBucket({None: parse_list_bucket_result(document)})
    pages = await collect_pages(bucket.fetch)
    assert [item.key for result in pages for item in result.contents] == ["a"]
    assert bucket.tokens == [None]


@pytest.mark.asyncio
async def test_iter_pages_propagates_failures() -> None:
    """Test that a failing page ends the iteration with its exception."""
    bucket = PagedBucket({None: page(["a"], "missing")})
    with pytest.raises(KeyError):
        await collect_pages(bucket.fetch)

"""Conftest for S3 integration tests."""

from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from s3simple.bucket import Bucket
from s3simple.credentials import Credentials, Region
from s3simple.multipart import StreamingUploader
from s3simple.options import BucketOptions
from s3simple.transport import S3Transport
from tests.integration.s3.fake_server import FakeS3Server

BUCKET_NAME = "test-bucket"
ENDPOINT = "http://s3.test"
CREDENTIALS = Credentials.new("AKIDEXAMPLE", "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY")
REGION = Region.new("us-east-1")

# Small parts keep the streaming tests fast. Real buckets enforce 5 MiB.
TEST_CHUNK_SIZE = 1024
TEST_CHANNEL_CAPACITY = 2


@pytest.fixture
def fake_s3() -> FakeS3Server:
    """Fake S3 server holding the test bucket.

    Returns:
        FakeS3Server: The server, with listing pages of 2 entries.

    """
    return FakeS3Server(BUCKET_NAME, CREDENTIALS, REGION, page_size=2)


@pytest_asyncio.fixture
async def s3_transport(fake_s3: FakeS3Server) -> AsyncGenerator[S3Transport, None]:
    """Transport routed to the fake server.

    Args:
        fake_s3 (FakeS3Server): The fake server.

    Returns:
        AsyncGenerator[S3Transport, None]: The transport, closed after the test.

    """
    transport = S3Transport(transport=httpx.MockTransport(fake_s3))
    yield transport
    await transport.aclose()


@pytest.fixture
def bucket(s3_transport: S3Transport) -> Bucket:
    """Path-style bucket on the fake server.

    Args:
        s3_transport (S3Transport): The shared transport.

    Returns:
        Bucket: The bucket.

    """
    return Bucket.new(
        ENDPOINT,
        BUCKET_NAME,
        REGION,
        CREDENTIALS,
        options=BucketOptions(path_style=True),
        transport=s3_transport,
    )


@pytest.fixture
def uploader(bucket: Bucket) -> StreamingUploader:
    """Streaming uploader with small parts.

    Args:
        bucket (Bucket): The bucket.

    Returns:
        StreamingUploader: The uploader.

    """
    return StreamingUploader(bucket, chunk_size=TEST_CHUNK_SIZE, channel_capacity=TEST_CHANNEL_CAPACITY)

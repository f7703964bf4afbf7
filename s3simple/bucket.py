"""S3 bucket binding and object operations."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import UTC, datetime
from email.utils import format_datetime
from types import TracebackType
from typing import Any, Self, assert_never

import httpx
from opentelemetry import trace
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from s3simple.commands import (
    AbortMultipartUpload,
    Command,
    CompleteMultipartUpload,
    CompleteMultipartUploadData,
    CopyObject,
    DeleteObject,
    DeleteObjectTagging,
    GetBucketLocation,
    GetObject,
    GetObjectRange,
    GetObjectTagging,
    HeadObject,
    InitiateMultipartUpload,
    ListMultipartUploads,
    ListObjects,
    ListObjectsV2,
    Part,
    PutObject,
    PutObjectTagging,
    UploadPart,
    body,
    command_name,
    content_length,
    content_md5,
    content_type,
    http_method,
    sha256,
)
from s3simple.configs.s3 import S3Config
from s3simple.configs.transport import S3TransportConfig
from s3simple.constants import DEFAULT_CONTENT_TYPE, DEFAULT_REGION, XML_CONTENT_TYPE
from s3simple.credentials import Credentials, Region
from s3simple.documents import (
    build_tagging,
    parse_initiate_multipart_upload,
    parse_list_bucket_result,
    parse_list_multipart_uploads,
    parse_location_constraint,
    parse_tagging,
)
from s3simple.exceptions import (
    S3ConfigurationClientException,
    S3HTTPClientException,
    S3InvalidRangeClientException,
    S3MissingHeaderClientException,
    S3ValidationClientException,
)
from s3simple.listing import collect_pages, iter_pages, v1_marker
from s3simple.models import (
    HeadObjectResult,
    InitiateMultipartUploadResponse,
    ListBucketResult,
    ListMultipartUploadsResult,
    PutStreamResponse,
    Tag,
)
from s3simple.multipart import StreamSource, StreamingUploader
from s3simple.options import BucketOptions
from s3simple.signature import long_date, sign, uri_encode
from s3simple.transport import S3Transport

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

type S3Response = httpx.Response


def _encode_query(pairs: list[tuple[str, str | None]]) -> str:
    return "&".join(
        uri_encode(key, encode_slash=True)
        if value is None
        else f"{uri_encode(key, encode_slash=True)}={uri_encode(value, encode_slash=True)}"
        for key, value in pairs
    )


class Bucket(BaseModel):
    """S3 bucket bound to an endpoint, a region and credentials.

    A bucket is an immutable value. Clones made with `with_options` or
    `model_copy` share the credentials and the pooled transport.

    Example:
        ```python
        async with Bucket.try_from_env() as bucket:
            await bucket.put("hello.txt", b"world")
            response = await bucket.get("hello.txt")
        ```

    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    host: str = Field(description="Endpoint URL, e.g. `https://s3.amazonaws.com`.")
    name: str = Field(min_length=1, description="Bucket name.")
    region: Region
    credentials: Credentials
    options: BucketOptions = Field(default_factory=BucketOptions)
    transport: S3Transport = Field(exclude=True, repr=False)
    owns_transport: bool = Field(default=False, exclude=True, repr=False)

    @classmethod
    def new(
        cls,
        host: str,
        name: str,
        region: Region,
        credentials: Credentials,
        options: BucketOptions | None = None,
        transport: S3Transport | None = None,
    ) -> Self:
        """Bind a bucket.

        Args:
            host: Endpoint URL with scheme and host, optionally a port.
            name: Bucket name.
            region: Signing region.
            credentials: Access key pair.
            options: Addressing, listing and streaming options.
                If None, the default options will be used.
            transport: Shared transport. If None, the bucket creates one and closes it in `aclose()`.

        Raises:
            S3ConfigurationClientException: If the host URL or the name is unusable.

        """
        try:
            url = httpx.URL(host)
        except httpx.InvalidURL as e:
            msg = f"invalid S3 host URL '{host}': {e}"
            raise S3ConfigurationClientException(msg) from e
        if url.scheme not in ("http", "https") or not url.host:
            msg = f"S3 host URL must have an http(s) scheme and a host, got '{host}'"
            raise S3ConfigurationClientException(msg)
        try:
            return cls(
                host=str(url),
                name=name,
                region=region,
                credentials=credentials,
                options=options or BucketOptions(),
                transport=transport or S3Transport(),
                owns_transport=transport is None,
            )
        except ValidationError as e:
            msg = f"invalid bucket '{name}': {e}"
            raise S3ConfigurationClientException(msg) from e

    @classmethod
    def try_from_env(
        cls,
        config: S3Config | None = None,
        transport_config: S3TransportConfig | None = None,
    ) -> Self:
        """Bind the bucket described by the `S3_*` environment variables.

        Raises:
            S3ConfigurationClientException: If a variable is missing or cannot be parsed.

        """
        config = config or S3Config.from_env()
        transport_config = transport_config or S3TransportConfig.from_env()
        if config.danger_allow_insecure and not transport_config.danger_allow_insecure:
            transport_config = transport_config.model_copy(update={"danger_allow_insecure": True})
        return cls.new(
            str(config.url),
            config.bucket,
            config.region_value(),
            config.credentials(),
            options=config.bucket_options(),
            transport=S3Transport(transport_config),
        ).model_copy(update={"owns_transport": True})

    def with_options(self, **changes: Any) -> Self:
        """Clone the bucket with some options changed. The clone shares the transport.

        Raises:
            S3ValidationClientException: If an option value is rejected, e.g. a chunk size below 5 MiB.

        """
        try:
            options = BucketOptions.model_validate(self.options.model_dump() | changes)
        except ValidationError as e:
            msg = f"invalid bucket options: {e}"
            raise S3ValidationClientException(msg) from e
        return self.model_copy(update={"options": options, "owns_transport": False})

    async def aclose(self) -> None:
        """Close the transport if this bucket created it."""
        if self.owns_transport:
            await self.transport.aclose()

    async def __aenter__(self) -> Self:
        """Enter the context manager."""
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_value: BaseException | None, traceback: TracebackType | None
    ) -> None:
        """Exit the context manager."""
        await self.aclose()

    def host_domain(self) -> str:
        """Host of the endpoint with its port, if any."""
        url = httpx.URL(self.host)
        if url.port is not None:
            return f"{url.host}:{url.port}"
        return url.host

    def host_header(self) -> str:
        """Value of the `Host` header for the configured addressing style."""
        if self.options.path_style:
            return self.host_domain()
        return f"{self.name}.{self.host_domain()}"

    def _query_pairs(self, command: Command) -> list[tuple[str, str | None]]:
        match command:
            case InitiateMultipartUpload():
                return [("uploads", None)]
            case ListMultipartUploads(prefix=prefix, delimiter=delimiter, key_marker=key_marker, max_uploads=limit):
                pairs: list[tuple[str, str | None]] = [("uploads", None)]
                if delimiter is not None:
                    pairs.append(("delimiter", delimiter))
                if prefix is not None:
                    pairs.append(("prefix", prefix))
                if key_marker is not None:
                    pairs.append(("key-marker", key_marker))
                if limit is not None:
                    pairs.append(("max-uploads", str(limit)))
                return pairs
            case AbortMultipartUpload(upload_id=upload_id) | CompleteMultipartUpload(upload_id=upload_id):
                return [("uploadId", upload_id)]
            case UploadPart(part_number=part_number, upload_id=upload_id):
                return [("partNumber", str(part_number)), ("uploadId", upload_id)]
            case PutObject(multipart=multipart):
                return list(multipart.query_pairs()) if multipart is not None else []
            case ListObjectsV2(
                prefix=prefix,
                delimiter=delimiter,
                continuation_token=continuation_token,
                start_after=start_after,
                max_keys=max_keys,
            ):
                pairs = []
                if delimiter is not None:
                    pairs.append(("delimiter", delimiter))
                pairs.append(("prefix", prefix))
                pairs.append(("list-type", "2"))
                if continuation_token is not None:
                    pairs.append(("continuation-token", continuation_token))
                if start_after is not None:
                    pairs.append(("start-after", start_after))
                if max_keys is not None:
                    pairs.append(("max-keys", str(max_keys)))
                return pairs
            case ListObjects(prefix=prefix, delimiter=delimiter, marker=marker, max_keys=max_keys):
                pairs = []
                if delimiter is not None:
                    pairs.append(("delimiter", delimiter))
                pairs.append(("prefix", prefix))
                if marker is not None:
                    pairs.append(("marker", marker))
                if max_keys is not None:
                    pairs.append(("max-keys", str(max_keys)))
                return pairs
            case PutObjectTagging() | GetObjectTagging() | DeleteObjectTagging():
                return [("tagging", None)]
            case GetBucketLocation():
                return [("location", None)]
            case HeadObject() | CopyObject() | DeleteObject() | GetObject() | GetObjectRange():
                return []
            case _:
                assert_never(command)

    def build_url(self, command: Command, path: str) -> httpx.URL:
        """Fully qualified request URL of a command.

        Args:
            command: The command.
            path: Object key. A leading `/` is stripped.

        """
        scheme = httpx.URL(self.host).scheme
        if self.options.path_style:
            base = f"{scheme}://{self.host_domain()}/{self.name}"
        else:
            base = f"{scheme}://{self.name}.{self.host_domain()}"
        url = f"{base}/{uri_encode(path.removeprefix('/'), encode_slash=False)}"
        query = _encode_query(self._query_pairs(command))
        if query:
            url = f"{url}?{query}"
        return httpx.URL(url)

    def build_headers(self, command: Command, url: httpx.URL, now: datetime | None = None) -> dict[str, str]:
        """Signed header set of a command.

        Caller supplied headers of PutObject, InitiateMultipartUpload and
        CopyObject are signed along with the derived ones. `Date` is added
        after signing and is not part of the signature.

        Args:
            command: The command.
            url: URL from `build_url`, exactly as it will be sent.
            now: Signing time. Defaults to the current UTC time.

        Returns:
            Lower-cased header names mapped to values, `authorization` included.

        """
        moment = now or datetime.now(UTC)
        payload_sha256 = sha256(command)

        match command:
            case PutObject(headers=extra) | InitiateMultipartUpload(headers=extra) | CopyObject(headers=extra):
                headers = {name.lower(): value for name, value in extra.items()}
            case _:
                headers = {}

        headers["host"] = self.host_header()

        match command:
            case CopyObject(from_=source):
                headers["x-amz-copy-source"] = source
            case InitiateMultipartUpload() | PutObject(multipart=None):
                headers.setdefault("content-type", DEFAULT_CONTENT_TYPE)
            case CompleteMultipartUpload():
                headers["content-type"] = XML_CONTENT_TYPE
            case PutObject():
                # content type of a part was set at initiation
                pass
            case (
                DeleteObject()
                | GetObjectRange()
                | HeadObject()
                | ListObjects()
                | ListObjectsV2()
                | GetObject()
                | GetObjectTagging()
                | GetBucketLocation()
            ):
                pass
            case (
                PutObjectTagging()
                | DeleteObjectTagging()
                | UploadPart()
                | AbortMultipartUpload()
                | ListMultipartUploads()
            ):
                headers["content-length"] = str(content_length(command))
                headers["content-type"] = content_type(command)
            case _:
                assert_never(command)

        headers["x-amz-content-sha256"] = payload_sha256
        headers["x-amz-date"] = long_date(moment)

        match command:
            case PutObjectTagging() | PutObject() | UploadPart():
                headers["content-md5"] = content_md5(body(command))
            case GetObject():
                headers["accept"] = DEFAULT_CONTENT_TYPE
            case GetObjectRange(start=start, end=end):
                headers["accept"] = DEFAULT_CONTENT_TYPE
                headers["range"] = f"bytes={start}-{end}" if end is not None else f"bytes={start}-"
            case _:
                pass

        headers["authorization"] = sign(
            http_method(command),
            url,
            headers,
            payload_sha256,
            moment,
            self.region,
            self.credentials,
        )
        headers["date"] = format_datetime(moment, usegmt=True)
        return headers

    def build_request(self, command: Command, path: str, now: datetime | None = None) -> httpx.Request:
        """Signed request of a command, ready to send."""
        url = self.build_url(command, path)
        headers = self.build_headers(command, url, now)
        method = http_method(command)
        content = body(command)
        if isinstance(content, bytearray):
            # sent from the chunk buffer as is; `content-length` is already among the signed headers
            stream = httpx.ByteStream(content)  # type: ignore[arg-type]
            return httpx.Request(method, url, headers=headers, stream=stream)
        return httpx.Request(method, url, headers=headers, content=content or None)

    def _start_span(self, command: Command, request: httpx.Request) -> trace.Span:
        span = tracer.start_span(f"s3.{command_name(command)}", kind=trace.SpanKind.CLIENT)
        span.set_attribute("http.request.method", request.method)
        span.set_attribute("url.full", str(request.url))
        span.set_attribute("s3.bucket", self.name)
        return span

    async def send_request(self, command: Command, path: str) -> S3Response:
        """Sign, send and read the response of a command.

        Raises:
            S3HTTPClientException: If the status is not 2xx.
            S3TransportClientException: If no response was received.

        """
        request = self.build_request(command, path)
        logger.debug("Sending %s %s", request.method, request.url)
        with trace.use_span(self._start_span(command, request), end_on_exit=True) as span:
            try:
                response = await self.transport.send(request)
            except S3HTTPClientException as e:
                span.set_attribute("http.response.status_code", e.status_code)
                raise
            span.set_attribute("http.response.status_code", response.status_code)
            return response

    @asynccontextmanager
    async def _stream_request(self, command: Command, path: str) -> AsyncIterator[S3Response]:
        request = self.build_request(command, path)
        logger.debug("Streaming %s %s", request.method, request.url)
        with trace.use_span(self._start_span(command, request), end_on_exit=True) as span:
            try:
                async with self.transport.stream(request) as response:
                    span.set_attribute("http.response.status_code", response.status_code)
                    yield response
            except S3HTTPClientException as e:
                span.set_attribute("http.response.status_code", e.status_code)
                raise

    async def head(self, path: str) -> HeadObjectResult:
        """Object metadata."""
        response = await self.send_request(HeadObject(), path)
        return HeadObjectResult.from_headers(response.headers)

    async def get(self, path: str) -> S3Response:
        """Download a whole object into memory."""
        return await self.send_request(GetObject(), path)

    def stream(self, path: str) -> AbstractAsyncContextManager[S3Response]:
        """Download an object incrementally.

        Returns:
            An async context manager yielding the response before its body is read.

        Example:
            ```python
            async with bucket.stream("big.bin") as response:
                async for chunk in response.aiter_bytes():
                    ...
            ```

        """
        return self._stream_request(GetObject(), path)

    async def iter_bytes(self, path: str, chunk_size: int | None = None) -> AsyncIterator[bytes]:
        """Iterate over the body of an object."""
        async with self.stream(path) as response:
            async for chunk in response.aiter_bytes(chunk_size):
                yield chunk

    async def get_range(self, path: str, start: int, end: int | None = None) -> S3Response:
        """Download the bytes `start..=end` of an object, or from `start` to its end.

        Raises:
            S3InvalidRangeClientException: If `start >= end` or `start` is negative. No request is sent.

        """
        if start < 0:
            msg = f"range start must not be negative, got {start}"
            raise S3InvalidRangeClientException(msg)
        if end is not None and start >= end:
            msg = f"range start must be lower than end, got {start}-{end}"
            raise S3InvalidRangeClientException(msg)
        return await self.send_request(GetObjectRange(start=start, end=end), path)

    async def delete(self, path: str) -> S3Response:
        """Delete an object."""
        return await self.send_request(DeleteObject(), path)

    async def put(self, path: str, content: bytes) -> S3Response:
        """Upload an object as `application/octet-stream`."""
        return await self.put_with_content_type(path, content, DEFAULT_CONTENT_TYPE)

    async def put_with_content_type(self, path: str, content: bytes, content_type: str) -> S3Response:
        """Upload an object with a content type."""
        return await self.put_with(path, content, {"content-type": content_type})

    async def put_with(self, path: str, content: bytes, extra_headers: Mapping[str, str] | None = None) -> S3Response:
        """Upload an object with extra headers.

        Args:
            path: Object key.
            content: Object body.
            extra_headers: Headers such as `content-type` or `cache-control`. Authentication
                and integrity headers are added automatically.

        """
        return await self.send_request(PutObject(content=content, headers=dict(extra_headers or {})), path)

    def _uploader(self) -> StreamingUploader:
        return StreamingUploader(self, self.options.chunk_size, self.options.channel_capacity)

    async def put_stream(self, reader: StreamSource, path: str) -> PutStreamResponse:
        """Upload a stream of unknown length as `application/octet-stream`."""
        return await self.put_stream_with_content_type(reader, path, DEFAULT_CONTENT_TYPE)

    async def put_stream_with_content_type(
        self, reader: StreamSource, path: str, content_type: str
    ) -> PutStreamResponse:
        """Upload a stream of unknown length with a content type."""
        return await self.put_stream_with(reader, path, {"content-type": content_type})

    async def put_stream_with(
        self,
        reader: StreamSource,
        path: str,
        extra_headers: Mapping[str, str] | None = None,
    ) -> PutStreamResponse:
        """Upload a stream of unknown length with extra headers.

        Streams shorter than one chunk are sent with a single PutObject. Longer
        ones go through a multipart upload that holds at most
        `channel_capacity` chunks in memory.

        Raises:
            S3MultipartUploadClientException: If the upload failed after initiation. It was aborted.

        """
        return await self._uploader().upload(reader, path, extra_headers)

    async def initiate_multipart_upload(
        self, path: str, extra_headers: Mapping[str, str] | None = None
    ) -> InitiateMultipartUploadResponse:
        """Open a multipart upload session."""
        response = await self.send_request(InitiateMultipartUpload(headers=dict(extra_headers or {})), path)
        return parse_initiate_multipart_upload(response.content)

    async def upload_part(self, path: str, part_number: int, content: bytes | bytearray, upload_id: str) -> str:
        """Upload one part and return its ETag.

        Raises:
            S3MissingHeaderClientException: If the response has no `ETag` header.

        """
        response = await self.send_request(
            UploadPart(part_number=part_number, content=content, upload_id=upload_id), path
        )
        etag = response.headers.get("etag")
        if etag is None:
            raise S3MissingHeaderClientException("etag", f"part {part_number} of upload {upload_id}")
        return etag

    async def complete_multipart_upload(self, path: str, upload_id: str, parts: list[Part]) -> S3Response:
        """Stitch the uploaded parts into the final object."""
        data = CompleteMultipartUploadData(parts=tuple(parts))
        return await self.send_request(CompleteMultipartUpload(upload_id=upload_id, data=data), path)

    async def abort_upload(self, key: str, upload_id: str) -> None:
        """Abort a multipart upload and discard its parts."""
        await self.send_request(AbortMultipartUpload(upload_id=upload_id), key)

    async def list_multipart_uploads(
        self,
        prefix: str | None = None,
        delimiter: str | None = None,
        key_marker: str | None = None,
        max_uploads: int | None = None,
    ) -> ListMultipartUploadsResult:
        """List in-progress multipart uploads, e.g. to find orphaned ones."""
        command = ListMultipartUploads(
            prefix=prefix, delimiter=delimiter, key_marker=key_marker, max_uploads=max_uploads
        )
        response = await self.send_request(command, "/")
        return parse_list_multipart_uploads(response.content)

    async def copy_internal(self, from_: str, to: str) -> int:
        """Copy an object inside this bucket. Returns the HTTP status code."""
        return await self.copy_internal_with(from_, to)

    async def copy_internal_with(self, from_: str, to: str, extra_headers: Mapping[str, str] | None = None) -> int:
        """Copy an object inside this bucket with extra headers.

        Example:
            Replace the metadata of an object in place:

            ```python
            await bucket.copy_internal_with(
                "cat.jpg",
                "cat.jpg",
                {"x-amz-metadata-directive": "REPLACE", "content-type": "image/jpeg"},
            )
            ```

        """
        return await self._copy(self.name, from_, to, extra_headers)

    async def copy_internal_from(self, from_bucket: str, from_object: str, to: str) -> int:
        """Copy an object of another bucket into this bucket. Returns the HTTP status code."""
        return await self._copy(from_bucket, from_object, to, None)

    async def _copy(self, from_bucket: str, from_object: str, to: str, extra_headers: Mapping[str, str] | None) -> int:
        source = uri_encode(f"{from_bucket}/{from_object.removeprefix('/')}", encode_slash=False)
        response = await self.send_request(CopyObject(from_=source, headers=dict(extra_headers or {})), to)
        return response.status_code

    async def put_tagging(self, path: str, tags: Mapping[str, str] | list[Tag]) -> S3Response:
        """Replace the tags of an object."""
        pairs = [(tag.key, tag.value) for tag in tags] if isinstance(tags, list) else list(tags.items())
        return await self.send_request(PutObjectTagging(tags=build_tagging(pairs)), path)

    async def get_tagging(self, path: str) -> list[Tag]:
        """Tags of an object."""
        response = await self.send_request(GetObjectTagging(), path)
        return parse_tagging(response.content)

    async def delete_tagging(self, path: str) -> S3Response:
        """Remove every tag of an object."""
        return await self.send_request(DeleteObjectTagging(), path)

    async def location(self) -> str:
        """Region the bucket lives in. An empty constraint means `us-east-1`."""
        response = await self.send_request(GetBucketLocation(), "/")
        return parse_location_constraint(response.content) or DEFAULT_REGION

    def _list_command(
        self,
        prefix: str,
        delimiter: str | None,
        continuation_token: str | None,
        start_after: str | None,
        max_keys: int | None,
    ) -> Command:
        if self.options.list_objects_v2:
            return ListObjectsV2(
                prefix=prefix,
                delimiter=delimiter,
                continuation_token=continuation_token,
                start_after=start_after,
                max_keys=max_keys,
            )
        return ListObjects(
            prefix=prefix,
            delimiter=delimiter,
            marker=v1_marker(continuation_token, start_after),
            max_keys=max_keys,
        )

    async def list_page(
        self,
        prefix: str = "",
        delimiter: str | None = None,
        continuation_token: str | None = None,
        start_after: str | None = None,
        max_keys: int | None = None,
    ) -> ListBucketResult:
        """Fetch one listing page.

        With v1 listing, the marker sent is the greater of `continuation_token`
        and `start_after`.
        """
        command = self._list_command(prefix, delimiter, continuation_token, start_after, max_keys)
        response = await self.send_request(command, "/")
        return parse_list_bucket_result(response.content)

    def iter_pages(
        self, prefix: str = "", delimiter: str | None = None, max_keys: int | None = None
    ) -> AsyncIterator[ListBucketResult]:
        """Iterate over listing pages until no continuation token is returned."""

        async def fetch_page(continuation_token: str | None) -> ListBucketResult:
            return await self.list_page(prefix, delimiter, continuation_token, None, max_keys)

        return iter_pages(fetch_page)

    async def list(
        self, prefix: str = "", delimiter: str | None = None, max_keys: int | None = None
    ) -> list[ListBucketResult]:
        """Fetch every listing page, in order."""

        async def fetch_page(continuation_token: str | None) -> ListBucketResult:
            return await self.list_page(prefix, delimiter, continuation_token, None, max_keys)

        return await collect_pages(fetch_page)

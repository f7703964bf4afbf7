"""Streaming multipart upload pipeline.

A reader task fills fixed-size chunks from the caller's stream and hands them
to the uploader through a bounded `ChunkChannel`. The uploader turns every
chunk into one UploadPart request, strictly in read order, and completes the
upload once the reader signals the end of the stream. Any failure after
initiation aborts the upload.

Memory use is bounded by `channel_capacity * chunk_size` bytes of chunk
payload, whatever the size of the stream: the reader reserves a slot before
reading a chunk, and the uploader frees it only after the chunk was sent.
"""

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from opentelemetry import trace

from s3simple.commands import Part
from s3simple.constants import CHANNEL_CAPACITY, CHUNK_SIZE
from s3simple.exceptions import S3ClientException, S3MultipartUploadClientException, S3ValidationClientException
from s3simple.models import PutStreamResponse

if TYPE_CHECKING:
    from s3simple.bucket import Bucket

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@runtime_checkable
class Readable(Protocol):
    """Object with a `read(n)` method, sync (binary file) or async (stream reader)."""

    def read(self, n: int = -1, /) -> bytes | Awaitable[bytes]:
        """Read up to `n` bytes, returning an empty result at end of stream."""
        ...


type StreamSource = Readable | AsyncIterable[bytes]
type Chunk = bytes | bytearray


class ChunkReader:
    """Reads a source stream in chunks of exactly `chunk_size` bytes.

    Every chunk but the last one is full. An empty chunk means the stream is exhausted.
    """

    def __init__(self, source: StreamSource, chunk_size: int) -> None:
        """Initialize the reader.

        Args:
            source: An async reader, a sync binary file object or an async iterable of bytes.
            chunk_size: Size of a full chunk.

        Raises:
            TypeError: If the source is none of the supported kinds.

        """
        self._chunk_size = chunk_size
        self._eof = False
        self._bytes_read = 0
        self._read = self._reader_for(source)

    @property
    def bytes_read(self) -> int:
        """Total bytes read so far."""
        return self._bytes_read

    def _reader_for(self, source: StreamSource) -> Callable[[int], Awaitable[bytes]]:
        if isinstance(source, Readable):
            read = source.read
            if inspect.iscoroutinefunction(read):
                return read

            async def read_off_loop(n: int) -> bytes:
                data = await asyncio.to_thread(read, n)
                if inspect.isawaitable(data):
                    return await data
                return data

            return read_off_loop
        if isinstance(source, AsyncIterable):
            return self._iterable_reader(aiter(source))
        msg = f"cannot read a stream from {type(source).__name__}"
        raise TypeError(msg)

    @staticmethod
    def _iterable_reader(iterator: AsyncIterator[bytes]) -> Callable[[int], Awaitable[bytes]]:
        leftover = bytearray()

        async def read(n: int) -> bytes:
            while not leftover:
                try:
                    piece = await anext(iterator)
                except StopAsyncIteration:
                    return b""
                leftover.extend(piece)
            data = bytes(leftover[:n])
            del leftover[:n]
            return data

        return read

    async def read_chunk(self) -> bytearray:
        """Read the next chunk, repeating short reads until it is full or the stream ends.

        Reads are copied straight into one preallocated buffer, so a chunk never
        exists twice in memory while it is assembled.
        """
        chunk = bytearray(self._chunk_size)
        size = 0
        with memoryview(chunk) as view:
            while size < self._chunk_size and not self._eof:
                piece = await self._read(self._chunk_size - size)
                if not piece:
                    self._eof = True
                    break
                view[size : size + len(piece)] = piece
                size += len(piece)
        del chunk[size:]
        self._bytes_read += size
        return chunk


class _EndOfStream:
    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = _EndOfStream()
"""Sentinel sent by the reader after the last chunk."""


class ChunkChannel:
    """Bounded hand-off of chunks from the reader to the uploader.

    Capacity counts slots, not queued items: a slot is taken with `reserve()`
    before a chunk is read and given back with `release()` once the chunk
    has been uploaded. Closing the channel wakes every waiter.
    """

    def __init__(self, capacity: int = CHANNEL_CAPACITY) -> None:
        """Initialize the channel.

        Raises:
            S3ValidationClientException: If the capacity is not positive.

        """
        if capacity < 1:
            msg = f"channel capacity must be positive, got {capacity}"
            raise S3ValidationClientException(msg)
        self._capacity = capacity
        self._reserved = 0
        self._items: deque[Chunk | _EndOfStream] = deque()
        self._condition = asyncio.Condition()
        self._closed = False
        self._exception: BaseException | None = None

    @property
    def reserved(self) -> int:
        """Slots currently taken."""
        return self._reserved

    @property
    def closed(self) -> bool:
        """Whether the channel has been closed."""
        return self._closed

    async def reserve(self) -> bool:
        """Wait for a free slot and take it.

        Returns:
            False if the channel was closed instead.

        """
        async with self._condition:
            await self._condition.wait_for(lambda: self._closed or self._reserved < self._capacity)
            if self._closed:
                return False
            self._reserved += 1
            return True

    async def release(self) -> None:
        """Give a slot back."""
        async with self._condition:
            self._reserved = max(0, self._reserved - 1)
            self._condition.notify_all()

    async def send(self, item: Chunk | _EndOfStream) -> bool:
        """Queue a chunk or the end-of-stream sentinel.

        Returns:
            False if the channel is closed and the item was dropped.

        """
        async with self._condition:
            if self._closed:
                return False
            self._items.append(item)
            self._condition.notify_all()
            return True

    async def receive(self) -> Chunk | None:
        """Take the next chunk.

        Returns:
            The chunk, or None at end of stream or once the channel is closed.

        Raises:
            Exception: The failure the channel was closed with.

        """
        async with self._condition:
            await self._condition.wait_for(lambda: self._closed or bool(self._items))
            if self._exception is not None:
                raise self._exception
            if not self._items:
                return None
            item = self._items.popleft()
            if isinstance(item, _EndOfStream):
                return None
            return item

    async def close(self, exception: BaseException | None = None) -> None:
        """Close the channel, optionally with the failure that ended the producer."""
        async with self._condition:
            if self._closed:
                return
            self._closed = True
            self._exception = exception
            self._items.clear()
            self._condition.notify_all()


class StreamingUploader:
    """Uploads a stream of unknown length, switching to multipart when it exceeds one chunk."""

    def __init__(
        self,
        bucket: "Bucket",
        chunk_size: int = CHUNK_SIZE,
        channel_capacity: int = CHANNEL_CAPACITY,
    ) -> None:
        """Initialize the uploader.

        Args:
            bucket: Bucket issuing the requests.
            chunk_size: Part size. Every part but the last has exactly this size.
            channel_capacity: Chunks held in memory at once, including the one being sent.

        Raises:
            S3ValidationClientException: If a size is not positive.

        """
        if chunk_size < 1:
            msg = f"chunk size must be positive, got {chunk_size}"
            raise S3ValidationClientException(msg)
        if channel_capacity < 1:
            msg = f"channel capacity must be positive, got {channel_capacity}"
            raise S3ValidationClientException(msg)
        self._bucket = bucket
        self._chunk_size = chunk_size
        self._channel_capacity = channel_capacity

    async def upload(
        self,
        source: StreamSource,
        path: str,
        headers: Mapping[str, str] | None = None,
    ) -> PutStreamResponse:
        """Upload the whole stream to `path`.

        Args:
            source: The stream to upload.
            path: Object key.
            headers: Extra request headers (e.g. `content-type`), sent with the
                single PutObject or with InitiateMultipartUpload.

        Returns:
            Status of the final request and the number of bytes uploaded.

        Raises:
            S3MultipartUploadClientException: If a part or the stream failed after initiation.
            S3ClientException: If the single PutObject, the initiation or the completion failed.

        """
        headers = dict(headers or {})
        with tracer.start_as_current_span("s3.put_stream") as span:
            span.set_attribute("s3.bucket", self._bucket.name)
            span.set_attribute("s3.key", path)
            reader = ChunkReader(source, self._chunk_size)
            first_chunk = await reader.read_chunk()
            logger.debug("First chunk of '%s' has %d bytes", path, len(first_chunk))

            if len(first_chunk) < self._chunk_size:
                logger.debug("Stream fits in one chunk, uploading '%s' with a single PUT", path)
                response = await self._bucket.put_with(path, bytes(first_chunk), headers)
                result = PutStreamResponse(status_code=response.status_code, uploaded_bytes=len(first_chunk))
                span.set_attribute("s3.part_count", 0)
                span.set_attribute("s3.uploaded_bytes", result.uploaded_bytes)
                return result

            logger.debug("Stream exceeds one chunk, starting multipart upload of '%s'", path)
            channel = ChunkChannel(self._channel_capacity)
            await channel.reserve()
            await channel.send(first_chunk)
            del first_chunk

            reader_task = asyncio.create_task(self._pump(reader, channel, path))
            try:
                result, part_count = await self._upload_parts(channel, path, headers)
            finally:
                await channel.close()
                reader_task.cancel()
                await asyncio.wait([reader_task])
            span.set_attribute("s3.part_count", part_count)
            span.set_attribute("s3.uploaded_bytes", result.uploaded_bytes)
            return result

    async def _pump(self, reader: ChunkReader, channel: ChunkChannel, path: str) -> None:
        try:
            while True:
                if not await channel.reserve():
                    logger.warning("Upload of '%s' stopped before the stream was fully read", path)
                    return
                chunk = await reader.read_chunk()
                if not chunk:
                    await channel.release()
                    await channel.send(END_OF_STREAM)
                    logger.debug("Finished reading '%s' after %d bytes", path, reader.bytes_read)
                    return
                logger.debug("Read %d bytes of '%s'", len(chunk), path)
                if not await channel.send(chunk):
                    logger.warning("Upload of '%s' stopped before the stream was fully read", path)
                    return
        except Exception as e:
            logger.error("Reading the stream for '%s' failed: %s", path, e)
            await channel.close(e)

    async def _upload_parts(
        self, channel: ChunkChannel, path: str, headers: Mapping[str, str]
    ) -> tuple[PutStreamResponse, int]:
        initiated = await self._bucket.initiate_multipart_upload(path, headers)
        upload_id = initiated.upload_id
        logger.debug("Initiated multipart upload %s of '%s'", upload_id, path)

        parts: list[Part] = []
        uploaded_bytes = 0
        part_number: int | None = None
        try:
            while (chunk := await channel.receive()) is not None:
                part_number = len(parts) + 1
                size = len(chunk)
                logger.debug("Uploading part %d of '%s' (%d bytes)", part_number, path, size)
                try:
                    etag = await self._bucket.upload_part(path, part_number, chunk, upload_id)
                finally:
                    del chunk
                    await channel.release()
                uploaded_bytes += size
                parts.append(Part(part_number=part_number, etag=etag))
                part_number = None
        except asyncio.CancelledError:
            logger.warning("Multipart upload %s of '%s' was cancelled, aborting it", upload_id, path)
            await channel.close()
            await asyncio.shield(self._abort(path, upload_id))
            raise
        except Exception as e:
            await channel.close()
            abort_exception = await self._abort(path, upload_id)
            raise S3MultipartUploadClientException(
                key=path,
                upload_id=upload_id,
                part_number=part_number,
                cause=e,
                abort_exception=abort_exception,
            ) from e

        logger.debug(
            "Multipart upload %s of '%s' finished after %d parts with %d bytes",
            upload_id,
            path,
            len(parts),
            uploaded_bytes,
        )
        try:
            response = await self._bucket.complete_multipart_upload(path, upload_id, parts)
        except asyncio.CancelledError:
            # the server may not have processed the completion, so the session can still be open
            logger.warning("Completing multipart upload %s of '%s' was cancelled, aborting it", upload_id, path)
            await asyncio.shield(self._abort(path, upload_id))
            raise
        return PutStreamResponse(status_code=response.status_code, uploaded_bytes=uploaded_bytes), len(parts)

    async def _abort(self, path: str, upload_id: str) -> S3ClientException | None:
        try:
            await self._bucket.abort_upload(path, upload_id)
        except S3ClientException as e:
            logger.error("Aborting multipart upload %s of '%s' failed: %s", upload_id, path, e)
            return e
        logger.debug("Aborted multipart upload %s of '%s'", upload_id, path)
        return None

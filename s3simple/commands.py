"""S3 command model.

Every S3 operation the client issues is one of the frozen dataclasses below.
A command fully determines the HTTP method, body, payload hash and content
metadata of its request. The module functions map each variant exhaustively,
so a new operation has to be handled in every one of them.
"""

import base64
import hashlib
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import assert_never

from s3simple.constants import DEFAULT_CONTENT_TYPE, EMPTY_PAYLOAD_SHA, FALLBACK_CONTENT_TYPE, XML_CONTENT_TYPE
from s3simple.documents import build_complete_multipart_upload


@dataclass(frozen=True)
class Part:
    """Uploaded part of a multipart upload."""

    part_number: int
    """1-based part number."""

    etag: str
    """ETag returned by the UploadPart response, kept verbatim."""


@dataclass(frozen=True)
class CompleteMultipartUploadData:
    """Manifest of a CompleteMultipartUpload request."""

    parts: tuple[Part, ...]

    def to_xml(self) -> bytes:
        """Render the manifest document."""
        return build_complete_multipart_upload((part.part_number, part.etag) for part in self.parts)

    def __len__(self) -> int:
        return len(self.to_xml())


@dataclass(frozen=True)
class Multipart:
    """Part coordinates of a PutObject issued inside a multipart upload."""

    part_number: int
    upload_id: str

    def query_pairs(self) -> list[tuple[str, str]]:
        """Query parameters addressing the part."""
        return [("partNumber", str(self.part_number)), ("uploadId", self.upload_id)]


@dataclass(frozen=True)
class HeadObject:
    """Fetch object metadata."""


@dataclass(frozen=True)
class CopyObject:
    """Server-side copy into the request path."""

    from_: str
    """Source as `bucket/key`, already URI-encoded."""

    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteObject:
    """Delete an object."""


@dataclass(frozen=True)
class DeleteObjectTagging:
    """Remove all tags of an object."""


@dataclass(frozen=True)
class GetObject:
    """Download a whole object."""


@dataclass(frozen=True)
class GetObjectRange:
    """Download a byte range, `end` inclusive or open-ended when None."""

    start: int
    end: int | None = None


@dataclass(frozen=True)
class GetObjectTagging:
    """Read the tags of an object."""


@dataclass(frozen=True)
class PutObject:
    """Upload an object, or one part of a multipart upload when `multipart` is set."""

    content: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    multipart: Multipart | None = None


@dataclass(frozen=True)
class PutObjectTagging:
    """Replace the tags of an object."""

    tags: bytes
    """Rendered `<Tagging>` document."""


@dataclass(frozen=True)
class ListMultipartUploads:
    """List in-progress multipart uploads."""

    prefix: str | None = None
    delimiter: str | None = None
    key_marker: str | None = None
    max_uploads: int | None = None


@dataclass(frozen=True)
class ListObjects:
    """Legacy (v1) object listing."""

    prefix: str
    delimiter: str | None = None
    marker: str | None = None
    max_keys: int | None = None


@dataclass(frozen=True)
class ListObjectsV2:
    """Object listing with continuation tokens."""

    prefix: str
    delimiter: str | None = None
    continuation_token: str | None = None
    start_after: str | None = None
    max_keys: int | None = None


@dataclass(frozen=True)
class GetBucketLocation:
    """Read the bucket region."""


@dataclass(frozen=True)
class InitiateMultipartUpload:
    """Open a multipart upload session."""

    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadPart:
    """Upload one part of a multipart upload."""

    part_number: int
    content: bytes | bytearray
    upload_id: str


@dataclass(frozen=True)
class AbortMultipartUpload:
    """Discard a multipart upload and its parts."""

    upload_id: str


@dataclass(frozen=True)
class CompleteMultipartUpload:
    """Stitch the uploaded parts into the final object."""

    upload_id: str
    data: CompleteMultipartUploadData


type Command = (
    HeadObject
    | CopyObject
    | DeleteObject
    | DeleteObjectTagging
    | GetObject
    | GetObjectRange
    | GetObjectTagging
    | PutObject
    | PutObjectTagging
    | ListMultipartUploads
    | ListObjects
    | ListObjectsV2
    | GetBucketLocation
    | InitiateMultipartUpload
    | UploadPart
    | AbortMultipartUpload
    | CompleteMultipartUpload
)


def command_name(command: Command) -> str:
    """Operation name used for spans and logs."""
    return type(command).__name__


def http_method(command: Command) -> str:
    """HTTP method of a command."""
    match command:
        case (
            GetObject()
            | GetObjectRange()
            | ListObjects()
            | ListObjectsV2()
            | GetBucketLocation()
            | GetObjectTagging()
            | ListMultipartUploads()
        ):
            return "GET"
        case PutObject() | CopyObject() | PutObjectTagging() | UploadPart():
            return "PUT"
        case DeleteObject() | DeleteObjectTagging() | AbortMultipartUpload():
            return "DELETE"
        case InitiateMultipartUpload() | CompleteMultipartUpload():
            return "POST"
        case HeadObject():
            return "HEAD"
        case _:
            assert_never(command)


def body(command: Command) -> bytes | bytearray:
    """Exact bytes sent as the request body."""
    match command:
        case PutObject(content=content) | UploadPart(content=content):
            return content
        case PutObjectTagging(tags=tags):
            return tags
        case CompleteMultipartUpload(data=data):
            return data.to_xml()
        case (
            HeadObject()
            | CopyObject()
            | DeleteObject()
            | DeleteObjectTagging()
            | GetObject()
            | GetObjectRange()
            | GetObjectTagging()
            | ListMultipartUploads()
            | ListObjects()
            | ListObjectsV2()
            | GetBucketLocation()
            | InitiateMultipartUpload()
            | AbortMultipartUpload()
        ):
            return b""
        case _:
            assert_never(command)


def content_length(command: Command) -> int:
    """Body length, 0 for bodiless commands."""
    return len(body(command))


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def content_type(command: Command) -> str:
    """Content type of the request body.

    PutObject and InitiateMultipartUpload honour a caller supplied
    `content-type` header and default to `application/octet-stream`.
    """
    match command:
        case PutObject(headers=headers) | InitiateMultipartUpload(headers=headers):
            return _header(headers, "content-type") or DEFAULT_CONTENT_TYPE
        case CompleteMultipartUpload():
            return XML_CONTENT_TYPE
        case (
            HeadObject()
            | CopyObject()
            | DeleteObject()
            | DeleteObjectTagging()
            | GetObject()
            | GetObjectRange()
            | GetObjectTagging()
            | PutObjectTagging()
            | ListMultipartUploads()
            | ListObjects()
            | ListObjectsV2()
            | GetBucketLocation()
            | UploadPart()
            | AbortMultipartUpload()
        ):
            return FALLBACK_CONTENT_TYPE
        case _:
            assert_never(command)


def sha256(command: Command) -> str:
    """Hex SHA-256 of the body, the well-known empty hash for bodiless commands."""
    payload = body(command)
    if not payload:
        return EMPTY_PAYLOAD_SHA
    return hashlib.sha256(payload).hexdigest()


def content_md5(content: bytes | bytearray) -> str:
    """Base64 of the raw MD5 digest, as the `Content-MD5` header expects."""
    return base64.b64encode(hashlib.md5(content).digest()).decode("ascii")  # noqa: S324

"""Pydantic S3 response models."""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, Field


class Owner(BaseModel):
    """S3 object owner."""

    display_name: str | None = None
    id: str | None = None


class Object(BaseModel):
    """S3 object entry of a listing page."""

    key: str
    last_modified: str | None = None
    e_tag: str | None = None
    storage_class: str | None = None
    size: int = 0
    owner: Owner | None = None


class CommonPrefix(BaseModel):
    """Keys rolled up under a delimiter."""

    prefix: str


class ListBucketResult(BaseModel):
    """One page of a ListObjects (v1) or ListObjectsV2 response.

    `continuation_token` holds `ContinuationToken` (v2) or `Marker` (v1), and
    `next_continuation_token` holds `NextContinuationToken` (v2) or `NextMarker` (v1).
    The latter is None on the last page.
    """

    name: str
    delimiter: str | None = None
    max_keys: int | None = None
    prefix: str | None = None
    continuation_token: str | None = None
    encoding_type: str | None = None
    is_truncated: bool = False
    next_continuation_token: str | None = None
    contents: list[Object] = Field(default_factory=list)
    common_prefixes: list[CommonPrefix] = Field(default_factory=list)


class InitiateMultipartUploadResponse(BaseModel):
    """Result of InitiateMultipartUpload."""

    bucket: str
    key: str
    upload_id: str


class Initiator(BaseModel):
    """Principal that initiated a multipart upload."""

    display_name: str | None = None
    id: str | None = None


class MultipartUploadEntry(BaseModel):
    """In-progress multipart upload."""

    key: str
    upload_id: str
    initiated: str | None = None
    storage_class: str | None = None
    initiator: Initiator | None = None
    owner: Owner | None = None


class ListMultipartUploadsResult(BaseModel):
    """Result of ListMultipartUploads."""

    bucket: str
    key_marker: str | None = None
    upload_id_marker: str | None = None
    next_key_marker: str | None = None
    next_upload_id_marker: str | None = None
    prefix: str | None = None
    delimiter: str | None = None
    max_uploads: int | None = None
    is_truncated: bool = False
    uploads: list[MultipartUploadEntry] = Field(default_factory=list)
    common_prefixes: list[CommonPrefix] = Field(default_factory=list)


class Tag(BaseModel):
    """Object tag."""

    key: str
    value: str


class PutStreamResponse(BaseModel):
    """Outcome of a streaming upload."""

    status_code: int
    uploaded_bytes: int


def _header_int(headers: Mapping[str, str], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _header_bool(headers: Mapping[str, str], name: str) -> bool | None:
    value = headers.get(name)
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


class HeadObjectResult(BaseModel):
    """Object metadata returned by a HEAD request."""

    accept_ranges: str | None = None
    cache_control: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    content_language: str | None = None
    content_length: int | None = None
    content_type: str | None = None
    delete_marker: bool | None = None
    e_tag: str | None = None
    expiration: str | None = None
    expires: str | None = None
    last_modified: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    missing_meta: int | None = None
    object_lock_legal_hold_status: str | None = None
    object_lock_mode: str | None = None
    object_lock_retain_until_date: str | None = None
    parts_count: int | None = None
    replication_status: str | None = None
    request_charged: str | None = None
    restore: str | None = None
    sse_customer_algorithm: str | None = None
    sse_customer_key_md5: str | None = None
    ssekms_key_id: str | None = None
    server_side_encryption: str | None = None
    storage_class: str | None = None
    version_id: str | None = None
    website_redirect_location: str | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> HeadObjectResult:
        """Extract the metadata from response headers.

        Args:
            headers: Case-insensitive response headers (e.g. `httpx.Headers`).

        Returns:
            The result. Numeric or boolean headers that do not parse are left as None.

        """
        metadata = {
            name.lower().removeprefix("x-amz-meta-"): value
            for name, value in headers.items()
            if name.lower().startswith("x-amz-meta-")
        }
        return cls(
            accept_ranges=headers.get("accept-ranges"),
            cache_control=headers.get("cache-control"),
            content_disposition=headers.get("content-disposition"),
            content_encoding=headers.get("content-encoding"),
            content_language=headers.get("content-language"),
            content_length=_header_int(headers, "content-length"),
            content_type=headers.get("content-type"),
            delete_marker=_header_bool(headers, "x-amz-delete-marker"),
            e_tag=headers.get("etag"),
            expiration=headers.get("x-amz-expiration"),
            expires=headers.get("expires"),
            last_modified=headers.get("last-modified"),
            metadata=metadata,
            missing_meta=_header_int(headers, "x-amz-missing-meta"),
            object_lock_legal_hold_status=headers.get("x-amz-object-lock-legal-hold"),
            object_lock_mode=headers.get("x-amz-object-lock-mode"),
            object_lock_retain_until_date=headers.get("x-amz-object-lock-retain-until-date"),
            parts_count=_header_int(headers, "x-amz-mp-parts-count"),
            replication_status=headers.get("x-amz-replication-status"),
            request_charged=headers.get("x-amz-request-charged"),
            restore=headers.get("x-amz-restore"),
            sse_customer_algorithm=headers.get("x-amz-server-side-encryption-customer-algorithm"),
            sse_customer_key_md5=headers.get("x-amz-server-side-encryption-customer-key-md5"),
            ssekms_key_id=headers.get("x-amz-server-side-encryption-aws-kms-key-id"),
            server_side_encryption=headers.get("x-amz-server-side-encryption"),
            storage_class=headers.get("x-amz-storage-class"),
            version_id=headers.get("x-amz-version-id"),
            website_redirect_location=headers.get("x-amz-website-redirect-location"),
        )

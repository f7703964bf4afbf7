"""XML mapping between S3 documents and models.

S3 answers with documents in the `http://s3.amazonaws.com/doc/2006-03-01/`
namespace, while several S3-compatible stores omit it. Parsing strips any
namespace before matching tags.
"""

import xml.etree.ElementTree as ET
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ValidationError

from s3simple.exceptions import S3DecodeClientException
from s3simple.models import (
    CommonPrefix,
    InitiateMultipartUploadResponse,
    ListBucketResult,
    ListMultipartUploadsResult,
    MultipartUploadEntry,
    Object,
    Owner,
    Tag,
)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_document(body: bytes | str, root: str | None = None) -> ET.Element:
    """Parse a document and check its root tag.

    Args:
        body: The raw document.
        root: Expected root tag without namespace. Not checked when None.

    Returns:
        The root element.

    Raises:
        S3DecodeClientException: If the document is malformed or the root does not match.

    """
    try:
        element = ET.fromstring(body)
    except ET.ParseError as e:
        msg = f"malformed XML document: {e}"
        raise S3DecodeClientException(msg) from e
    if root is not None and _local(element.tag) != root:
        msg = f"expected <{root}> document, got <{_local(element.tag)}>"
        raise S3DecodeClientException(msg)
    return element


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _child(element: ET.Element, name: str) -> ET.Element | None:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _text(element: ET.Element, name: str) -> str | None:
    child = _child(element, name)
    if child is None:
        return None
    return child.text or ""


def _bool(element: ET.Element, name: str) -> bool:
    return (_text(element, name) or "").strip().lower() == "true"


def _validate[M: BaseModel](model: type[M], data: dict[str, Any]) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        msg = f"cannot decode {model.__name__}: {e}"
        raise S3DecodeClientException(msg) from e


def _owner(element: ET.Element | None) -> dict[str, Any] | None:
    if element is None:
        return None
    return {"display_name": _text(element, "DisplayName"), "id": _text(element, "ID")}


def _common_prefixes(element: ET.Element) -> list[CommonPrefix]:
    return [
        _validate(CommonPrefix, {"prefix": _text(item, "Prefix") or ""})
        for item in _children(element, "CommonPrefixes")
    ]


def parse_error(body: bytes | str) -> dict[str, str] | None:
    """Extract `Code`, `Message` and `RequestId` from an S3 `<Error>` document.

    Returns:
        The fields found, or None when the body is not an `<Error>` document.

    """
    try:
        element = ET.fromstring(body)
    except ET.ParseError:
        return None
    if _local(element.tag) != "Error":
        return None
    return {
        name: value
        for name in ("Code", "Message", "RequestId")
        if (value := _text(element, name)) is not None
    }


def parse_list_bucket_result(body: bytes | str) -> ListBucketResult:
    """Parse a ListObjects (v1) or ListObjectsV2 page."""
    element = parse_document(body, "ListBucketResult")
    continuation_token = _text(element, "ContinuationToken")
    if continuation_token is None:
        continuation_token = _text(element, "Marker") or None
    # an empty next token element ends the listing like a missing one
    next_token = _text(element, "NextContinuationToken") or _text(element, "NextMarker") or None
    contents = [
        _validate(
            Object,
            {
                "key": _text(item, "Key") or "",
                "last_modified": _text(item, "LastModified"),
                "e_tag": _text(item, "ETag"),
                "storage_class": _text(item, "StorageClass"),
                "size": _text(item, "Size") or 0,
                "owner": _owner(_child(item, "Owner")),
            },
        )
        for item in _children(element, "Contents")
    ]
    return _validate(
        ListBucketResult,
        {
            "name": _text(element, "Name") or "",
            "delimiter": _text(element, "Delimiter"),
            "max_keys": _text(element, "MaxKeys"),
            "prefix": _text(element, "Prefix"),
            "continuation_token": continuation_token,
            "encoding_type": _text(element, "EncodingType"),
            "is_truncated": _bool(element, "IsTruncated"),
            "next_continuation_token": next_token,
            "contents": contents,
            "common_prefixes": _common_prefixes(element),
        },
    )


def parse_initiate_multipart_upload(body: bytes | str) -> InitiateMultipartUploadResponse:
    """Parse the InitiateMultipartUploadResult document."""
    element = parse_document(body, "InitiateMultipartUploadResult")
    upload_id = _text(element, "UploadId")
    if not upload_id:
        msg = "missing UploadId in InitiateMultipartUploadResult"
        raise S3DecodeClientException(msg)
    return _validate(
        InitiateMultipartUploadResponse,
        {"bucket": _text(element, "Bucket") or "", "key": _text(element, "Key") or "", "upload_id": upload_id},
    )


def parse_list_multipart_uploads(body: bytes | str) -> ListMultipartUploadsResult:
    """Parse the ListMultipartUploadsResult document."""
    element = parse_document(body, "ListMultipartUploadsResult")
    uploads = []
    for item in _children(element, "Upload"):
        initiator = _owner(_child(item, "Initiator"))
        uploads.append(
            _validate(
                MultipartUploadEntry,
                {
                    "key": _text(item, "Key") or "",
                    "upload_id": _text(item, "UploadId") or "",
                    "initiated": _text(item, "Initiated"),
                    "storage_class": _text(item, "StorageClass"),
                    "initiator": initiator,
                    "owner": _owner(_child(item, "Owner")),
                },
            )
        )
    return _validate(
        ListMultipartUploadsResult,
        {
            "bucket": _text(element, "Bucket") or "",
            "key_marker": _text(element, "KeyMarker") or None,
            "upload_id_marker": _text(element, "UploadIdMarker") or None,
            "next_key_marker": _text(element, "NextKeyMarker") or None,
            "next_upload_id_marker": _text(element, "NextUploadIdMarker") or None,
            "prefix": _text(element, "Prefix"),
            "delimiter": _text(element, "Delimiter"),
            "max_uploads": _text(element, "MaxUploads"),
            "is_truncated": _bool(element, "IsTruncated"),
            "uploads": uploads,
            "common_prefixes": _common_prefixes(element),
        },
    )


def parse_tagging(body: bytes | str) -> list[Tag]:
    """Parse a `<Tagging>` document into its tags."""
    element = parse_document(body, "Tagging")
    tag_set = _child(element, "TagSet")
    if tag_set is None:
        return []
    return [
        _validate(Tag, {"key": _text(item, "Key") or "", "value": _text(item, "Value") or ""})
        for item in _children(tag_set, "Tag")
    ]


def parse_location_constraint(body: bytes | str) -> str:
    """Parse GetBucketLocation. An empty constraint is returned as an empty string."""
    element = parse_document(body, "LocationConstraint")
    return (element.text or "").strip()


def _serialize(element: ET.Element) -> bytes:
    return ET.tostring(element, encoding="utf-8", xml_declaration=False)


def build_complete_multipart_upload(parts: Iterable[tuple[int, str]]) -> bytes:
    """Render the CompleteMultipartUpload manifest.

    Args:
        parts: `(part_number, etag)` pairs in upload order.

    Returns:
        The document bytes, without declaration or whitespace.

    """
    root = ET.Element("CompleteMultipartUpload")
    for part_number, etag in parts:
        part = ET.SubElement(root, "Part")
        ET.SubElement(part, "PartNumber").text = str(part_number)
        ET.SubElement(part, "ETag").text = etag
    return _serialize(root)


def build_tagging(tags: Iterable[tuple[str, str]]) -> bytes:
    """Render a `<Tagging>` document for PutObjectTagging."""
    root = ET.Element("Tagging")
    tag_set = ET.SubElement(root, "TagSet")
    for key, value in tags:
        tag = ET.SubElement(tag_set, "Tag")
        ET.SubElement(tag, "Key").text = key
        ET.SubElement(tag, "Value").text = value
    return _serialize(root)

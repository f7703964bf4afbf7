"""S3 client exceptions.

Every failure raised by the client derives from `S3ClientException`.
HTTP failures are narrowed to a code specific subclass when the response
body carries an S3 `<Error>` document.
"""

from typing import Any


class S3ClientException(Exception):
    """Base exception for S3 client errors."""


class S3ConfigurationClientException(S3ClientException):
    """Raised when the endpoint, bucket, region or credentials are missing or unusable."""


class S3TransportClientException(S3ClientException):
    """Raised when the request never produced an HTTP response (connect, TLS, timeout)."""


class S3ValidationClientException(S3ClientException, ValueError):
    """Raised when arguments are rejected before any request is sent."""


class S3InvalidRangeClientException(S3ValidationClientException):
    """Raised when a byte range has `start >= end`."""


class S3DecodeClientException(S3ClientException):
    """Raised when a response body or header cannot be decoded."""


class S3MissingHeaderClientException(S3DecodeClientException):
    """Raised when a required response header is absent."""

    def __init__(self, header: str, context: str | None = None) -> None:
        """Initialize the exception.

        Args:
            header: Name of the missing header.
            context: What the header was required for.

        """
        self.header = header
        detail = f"missing {header} in response headers"
        if context:
            detail = f"{detail} ({context})"
        super().__init__(detail)


class S3HTTPClientException(S3ClientException):
    """Raised when S3 answers with a status outside of 2xx.

    Attributes:
        status_code: HTTP status of the response.
        body: Response body text, read in full.
        code: S3 error code (e.g. `NoSuchKey`), if the body carried one.
        message: S3 error message, if the body carried one.
        request_id: S3 request id, if the body carried one.

    """

    def __init__(
        self,
        status_code: int,
        body: str,
        code: str | None = None,
        message: str | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize the exception."""
        self.status_code = status_code
        self.body = body
        self.code = code
        self.message = message
        self.request_id = request_id
        super().__init__(f"Got HTTP {status_code} with content '{body}'")


class S3NoSuchBucketClientException(S3HTTPClientException):
    """Raised when the specified bucket does not exist."""


class S3NoSuchKeyClientException(S3HTTPClientException):
    """Raised when the specified object key does not exist."""


class S3NoSuchUploadClientException(S3HTTPClientException):
    """Raised when the multipart upload id is unknown, aborted or completed."""


class S3AccessDeniedClientException(S3HTTPClientException):
    """Raised when access is denied to the specified resource."""


class S3SignatureDoesNotMatchClientException(S3HTTPClientException):
    """Raised when the server computed a different request signature."""


class S3InvalidPartClientException(S3HTTPClientException):
    """Raised when a completion manifest names a part that was not uploaded."""


class S3InvalidPartOrderClientException(S3HTTPClientException):
    """Raised when a completion manifest is not in ascending part order."""


class S3EntityTooSmallClientException(S3HTTPClientException):
    """Raised when a non-final part is smaller than the S3 minimum."""


class S3PreconditionFailedClientException(S3HTTPClientException):
    """Raised when a precondition check fails."""


class S3InvalidRangeRequestClientException(S3HTTPClientException):
    """Raised when the server cannot satisfy the requested range."""


class S3RequestTimeoutClientException(S3HTTPClientException):
    """Raised when the server timed out waiting for the request."""


class S3InvalidRequestClientException(S3HTTPClientException):
    """Raised when the request is invalid."""


HTTP_EXCEPTION_MAP: dict[str, type[S3HTTPClientException]] = {
    "NoSuchBucket": S3NoSuchBucketClientException,
    "NoSuchKey": S3NoSuchKeyClientException,
    "NoSuchUpload": S3NoSuchUploadClientException,
    "AccessDenied": S3AccessDeniedClientException,
    "SignatureDoesNotMatch": S3SignatureDoesNotMatchClientException,
    "InvalidPart": S3InvalidPartClientException,
    "InvalidPartOrder": S3InvalidPartOrderClientException,
    "EntityTooSmall": S3EntityTooSmallClientException,
    "PreconditionFailed": S3PreconditionFailedClientException,
    "InvalidRange": S3InvalidRangeRequestClientException,
    "RequestTimeout": S3RequestTimeoutClientException,
    "InvalidRequest": S3InvalidRequestClientException,
    "NotImplemented": S3InvalidRequestClientException,  # MinIO may return this for unsupported features
}


class S3MultipartUploadClientException(S3ClientException):
    """Raised when a streaming multipart upload fails after initiation.

    The original failure is always chained as `__cause__`. When the abort issued
    afterwards fails as well, its exception is kept in `abort_exception` instead
    of replacing the original one.

    Attributes:
        key: Object key of the upload.
        upload_id: Upload id of the aborted session.
        part_number: Part that failed, or None when reading the source stream failed.
        abort_exception: Failure of the AbortMultipartUpload call, if any.

    """

    def __init__(
        self,
        key: str,
        upload_id: str,
        part_number: int | None,
        cause: BaseException,
        abort_exception: BaseException | None = None,
    ) -> None:
        """Initialize the exception."""
        self.key = key
        self.upload_id = upload_id
        self.part_number = part_number
        self.abort_exception = abort_exception
        stage = f"part {part_number}" if part_number is not None else "reading the source stream"
        detail = f"multipart upload {upload_id} of '{key}' failed at {stage}: {cause}"
        if abort_exception is not None:
            detail = f"{detail}; abort failed as well: {abort_exception}"
        super().__init__(detail)

    @property
    def aborted(self) -> bool:
        """Whether the upload was aborted cleanly."""
        return self.abort_exception is None


def http_exception_for(status_code: int, body: str, error: dict[str, Any] | None = None) -> S3HTTPClientException:
    """Build the most specific HTTP exception for a failed response.

    Args:
        status_code: HTTP status of the response.
        body: Response body text.
        error: Parsed `<Error>` fields (`Code`, `Message`, `RequestId`), if any.

    Returns:
        The exception instance, not raised.

    """
    error = error or {}
    code = error.get("Code")
    exception_class = HTTP_EXCEPTION_MAP.get(code or "", S3HTTPClientException)
    return exception_class(
        status_code,
        body,
        code=code,
        message=error.get("Message"),
        request_id=error.get("RequestId"),
    )

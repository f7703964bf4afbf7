"""Asynchronous S3 client with SigV4 signing and streaming multipart uploads."""

from s3simple.bucket import Bucket, S3Response
from s3simple.credentials import Credentials, Region
from s3simple.exceptions import (
    S3ClientException,
    S3ConfigurationClientException,
    S3DecodeClientException,
    S3HTTPClientException,
    S3InvalidRangeClientException,
    S3MissingHeaderClientException,
    S3MultipartUploadClientException,
    S3TransportClientException,
    S3ValidationClientException,
)
from s3simple.models import (
    CommonPrefix,
    HeadObjectResult,
    ListBucketResult,
    ListMultipartUploadsResult,
    Object,
    PutStreamResponse,
    Tag,
)
from s3simple.options import BucketOptions
from s3simple.transport import S3Transport

__all__ = [
    "Bucket",
    "BucketOptions",
    "CommonPrefix",
    "Credentials",
    "HeadObjectResult",
    "ListBucketResult",
    "ListMultipartUploadsResult",
    "Object",
    "PutStreamResponse",
    "Region",
    "S3ClientException",
    "S3ConfigurationClientException",
    "S3DecodeClientException",
    "S3HTTPClientException",
    "S3InvalidRangeClientException",
    "S3MissingHeaderClientException",
    "S3MultipartUploadClientException",
    "S3Response",
    "S3Transport",
    "S3TransportClientException",
    "S3ValidationClientException",
    "Tag",
]

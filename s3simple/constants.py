"""Protocol constants."""

# SHA-256 of the empty payload, sent verbatim for bodiless requests.
EMPTY_PAYLOAD_SHA = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

LONG_DATE_TIME = "%Y%m%dT%H%M%SZ"
SHORT_DATE = "%Y%m%d"

SIGNING_ALGORITHM = "AWS4-HMAC-SHA256"
SIGNING_SERVICE = "s3"
SIGNING_TERMINATOR = "aws4_request"

MIB = 1024 * 1024

# S3 rejects non-final parts smaller than 5 MiB.
MIN_CHUNK_SIZE = 5 * MIB
CHUNK_SIZE = 8 * MIB

# Chunks held in memory by a streaming upload: one being read, one being sent.
CHANNEL_CAPACITY = 2

S3_XML_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"

DEFAULT_CONTENT_TYPE = "application/octet-stream"
XML_CONTENT_TYPE = "application/xml"
FALLBACK_CONTENT_TYPE = "text/plain"

DEFAULT_REGION = "us-east-1"

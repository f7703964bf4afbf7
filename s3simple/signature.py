"""AWS Signature Version 4 for S3.

All functions are pure: the same request, timestamp, region and secret
always produce the same signature. The flow is

    canonical request -> string to sign -> signing key -> signature -> Authorization

See https://docs.aws.amazon.com/AmazonS3/latest/API/sig-v4-header-based-auth.html
"""

import hashlib
import hmac
from collections.abc import Mapping
from datetime import datetime
from urllib.parse import parse_qsl, quote

import httpx

from s3simple.constants import (
    LONG_DATE_TIME,
    SHORT_DATE,
    SIGNING_ALGORITHM,
    SIGNING_SERVICE,
    SIGNING_TERMINATOR,
)
from s3simple.credentials import Credentials, Region


def uri_encode(string: str, encode_slash: bool) -> str:
    """Percent-encode a string the way AWS canonicalizes it.

    Only `A-Z a-z 0-9 - _ . ~` are left as they are; every other byte of the
    UTF-8 encoding becomes `%XX`. Slashes are kept unless `encode_slash` is set.

    Args:
        string: The string to encode.
        encode_slash: Whether `/` is encoded too (query components) or kept (paths).

    Returns:
        The encoded string.

    """
    return quote(string, safe="" if encode_slash else "/")


def long_date(moment: datetime) -> str:
    """Format a timestamp as `YYYYMMDDTHHMMSSZ`."""
    return moment.strftime(LONG_DATE_TIME)


def short_date(moment: datetime) -> str:
    """Format a timestamp as `YYYYMMDD`."""
    return moment.strftime(SHORT_DATE)


def canonical_uri_string(url: httpx.URL) -> str:
    """Decode the URL path and re-encode it with the AWS character set."""
    return uri_encode(url.path, encode_slash=False)


def canonical_query_string(url: httpx.URL) -> str:
    """Sort query pairs by key, then value, and encode both sides.

    `?uploads` style flags become `uploads=`. An absent query yields an empty string.
    """
    # Pairs are sorted decoded. Query names built here are plain ASCII, so this is the
    # order of the encoded names too. A literal `+` reads as a space; `uri_encode` never emits one.
    pairs = parse_qsl(url.query.decode("ascii"), keep_blank_values=True)
    return "&".join(
        f"{uri_encode(key, encode_slash=True)}={uri_encode(value, encode_slash=True)}" for key, value in sorted(pairs)
    )


def canonical_header_string(headers: Mapping[str, str]) -> str:
    """Render `name:value` lines, names lower-cased and values trimmed, sorted."""
    lines = [f"{name.lower()}:{value.strip()}" for name, value in headers.items()]
    return "\n".join(sorted(lines))


def signed_header_string(headers: Mapping[str, str]) -> str:
    """List the lower-cased header names, sorted and joined with `;`."""
    return ";".join(sorted(name.lower() for name in headers))


def canonical_request(method: str, url: httpx.URL, headers: Mapping[str, str], payload_sha256: str) -> str:
    """Build the canonical request.

    Args:
        method: HTTP method.
        url: Fully qualified request URL, exactly as it will be sent.
        headers: Every header that takes part in the signature.
        payload_sha256: Hex SHA-256 of the body, also sent as `x-amz-content-sha256`.

    Returns:
        The canonical request string.

    """
    return "\n".join(
        [
            method.upper(),
            canonical_uri_string(url),
            canonical_query_string(url),
            canonical_header_string(headers),
            "",
            signed_header_string(headers),
            payload_sha256,
        ]
    )


def scope_string(moment: datetime, region: Region) -> str:
    """Credential scope: `date/region/s3/aws4_request`."""
    return f"{short_date(moment)}/{region.name}/{SIGNING_SERVICE}/{SIGNING_TERMINATOR}"


def string_to_sign(moment: datetime, region: Region, canonical_req: str) -> str:
    """Build the string to sign from a canonical request."""
    hashed_request = hashlib.sha256(canonical_req.encode("utf-8")).hexdigest()
    return "\n".join([SIGNING_ALGORITHM, long_date(moment), scope_string(moment, region), hashed_request])


def _hmac_sha256(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def signing_key(moment: datetime, secret: str, region: Region) -> bytes:
    """Derive the signing key from the secret through four chained HMACs."""
    date_key = _hmac_sha256(f"AWS4{secret}".encode(), short_date(moment))
    region_key = _hmac_sha256(date_key, region.name)
    service_key = _hmac_sha256(region_key, SIGNING_SERVICE)
    return _hmac_sha256(service_key, SIGNING_TERMINATOR)


def signature(key: bytes, to_sign: str) -> str:
    """Hex HMAC-SHA256 of the string to sign."""
    return hmac.new(key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


def authorization_header(
    access_key_id: str,
    moment: datetime,
    region: Region,
    signed_headers: str,
    request_signature: str,
) -> str:
    """Render the `Authorization` header value."""
    return (
        f"{SIGNING_ALGORITHM} Credential={access_key_id}/{scope_string(moment, region)},"
        f"SignedHeaders={signed_headers},Signature={request_signature}"
    )


def sign(
    method: str,
    url: httpx.URL,
    headers: Mapping[str, str],
    payload_sha256: str,
    moment: datetime,
    region: Region,
    credentials: Credentials,
) -> str:
    """Run the whole signing flow and return the `Authorization` header value.

    `headers` must already contain `x-amz-date` formatted from `moment`, and
    must not contain `Date` or `Authorization`.
    """
    canonical = canonical_request(method, url, headers, payload_sha256)
    to_sign = string_to_sign(moment, region, canonical)
    key = signing_key(moment, credentials.secret_value(), region)
    return authorization_header(
        credentials.access_key_id,
        moment,
        region,
        signed_header_string(headers),
        signature(key, to_sign),
    )

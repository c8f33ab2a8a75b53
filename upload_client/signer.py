"""
Module for signing S3 requests with AWS Signature Version 4.

The canonical request, string to sign and signature are computed by
botocore; this module stamps the headers that take part in the signature
with the timestamp and payload hash chosen by the request executor.
"""
from datetime import datetime

from botocore.auth import SIGV4_TIMESTAMP, S3SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import ReadOnlyCredentials

SERVICE_NAME = "s3"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"


def _replace_header(request: AWSRequest, name: str, value: str) -> None:
    # AWSRequest headers keep duplicates on assignment
    if name in request.headers:
        del request.headers[name]
    request.headers[name] = value


def sign_v4(request: AWSRequest, credentials: ReadOnlyCredentials, region: str,
            timestamp: datetime, content_sha256: str) -> str:
    """Sign a request in place and return its Authorization header.

    Besides ``Authorization`` the request gains ``X-Amz-Date``,
    ``X-Amz-Content-SHA256`` and, for temporary credentials,
    ``X-Amz-Security-Token``.

    Args:
        request: Fully addressed request (URL, headers and body)
        credentials: Access key, secret key and optional session token
        region: Region the signature is scoped to
        timestamp: UTC signing time
        content_sha256: Hex SHA-256 of the body or ``UNSIGNED-PAYLOAD``

    Returns:
        The Authorization header value
    """
    auth = S3SigV4Auth(credentials, SERVICE_NAME, region)
    request.context['timestamp'] = timestamp.strftime(SIGV4_TIMESTAMP)

    if 'Authorization' in request.headers:
        del request.headers['Authorization']
    _replace_header(request, 'X-Amz-Date', request.context['timestamp'])
    _replace_header(request, 'X-Amz-Content-SHA256', content_sha256)
    if credentials.token:
        _replace_header(request, 'X-Amz-Security-Token', credentials.token)

    canonical_request = auth.canonical_request(request)
    string_to_sign = auth.string_to_sign(request, canonical_request)
    signature = auth.signature(string_to_sign, request)
    signed_headers = auth.signed_headers(auth.headers_to_sign(request))
    authorization = (f"AWS4-HMAC-SHA256 Credential={auth.scope(request)}, "
                     f"SignedHeaders={signed_headers}, Signature={signature}")
    request.headers['Authorization'] = authorization
    return authorization

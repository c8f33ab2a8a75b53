"""
Module containing naming, addressing and hashing helpers.
"""
import base64
import hashlib
import ipaddress
import mimetypes
import re
from typing import Dict, Mapping, Optional

DEFAULT_REGION = "us-east-1"

META_HEADER_PREFIX = "x-amz-meta-"

SUPPORTED_HEADERS = {
    'content-type',
    'cache-control',
    'content-encoding',
    'content-disposition',
    'content-language',
    'x-amz-website-redirect-location',
}

AMAZON_ENDPOINTS = {'s3.amazonaws.com', 's3.cn-north-1.amazonaws.com.cn'}

_S3_REGIONS = [
    'af-south-1', 'ap-east-1', 'ap-south-1', 'ap-south-2',
    'ap-southeast-1', 'ap-southeast-2', 'ap-southeast-3',
    'ap-northeast-1', 'ap-northeast-2', 'ap-northeast-3',
    'ca-central-1', 'eu-central-1', 'eu-central-2', 'eu-north-1',
    'eu-south-1', 'eu-south-2', 'eu-west-1', 'eu-west-2', 'eu-west-3',
    'il-central-1', 'me-central-1', 'me-south-1', 'sa-east-1',
    'us-east-1', 'us-east-2', 'us-west-1', 'us-west-2',
    'us-gov-east-1', 'us-gov-west-1',
]

S3_ENDPOINTS: Dict[str, str] = {
    region: f"s3.{region}.amazonaws.com" for region in _S3_REGIONS
}
S3_ENDPOINTS['cn-north-1'] = 's3.cn-north-1.amazonaws.com.cn'
S3_ENDPOINTS['cn-northwest-1'] = 's3.cn-northwest-1.amazonaws.com.cn'

_BUCKET_NAME_RE = re.compile(r'^[a-z0-9][a-z0-9.-]+[a-z0-9]$')
_IPV4_LIKE_RE = re.compile(r'[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+')
_UNRESERVED = frozenset(
    'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~'
)
_ETAG_QUOTES = re.compile(r'^("|&quot;|&#34;)|("|&quot;|&#34;)$')


def is_valid_bucket_name(bucket: str) -> bool:
    """Check a bucket name against the S3 naming rules.

    Args:
        bucket: Bucket name to check

    Returns:
        True if the name is usable, False otherwise
    """
    if not isinstance(bucket, str):
        return False
    if len(bucket) < 3 or len(bucket) > 63:
        return False
    if '..' in bucket:
        return False
    if _IPV4_LIKE_RE.search(bucket):
        return False
    return bool(_BUCKET_NAME_RE.match(bucket))


def is_valid_prefix(prefix: str) -> bool:
    """Check that a key prefix is a string of at most 1024 characters."""
    return isinstance(prefix, str) and len(prefix) <= 1024


def is_valid_object_name(object_name: str) -> bool:
    """Check that an object name is a non-empty valid prefix."""
    return is_valid_prefix(object_name) and len(object_name) > 0


def is_valid_domain(host: str) -> bool:
    if not isinstance(host, str):
        return False
    if len(host) == 0 or len(host) > 255:
        return False
    if host[0] in '-_.' or host[-1] in '-_':
        return False
    return not any(char in host for char in '`~!@#$%^&*()+={}[]|\\"\';:><?/')


def is_valid_endpoint(endpoint: str) -> bool:
    """Check that an endpoint is a domain name or an IP address."""
    try:
        ipaddress.ip_address(endpoint)
        return True
    except ValueError:
        return is_valid_domain(endpoint)


def is_valid_port(port: int) -> bool:
    return isinstance(port, int) and not isinstance(port, bool) and 0 <= port <= 65535


def uri_escape(value: str) -> str:
    """Percent-encode every character outside the RFC 3986 unreserved set."""
    escaped = []
    for char in value:
        if char in _UNRESERVED:
            escaped.append(char)
            continue
        escaped.extend(f"%{byte:02X}" for byte in char.encode('utf-8'))
    return ''.join(escaped)


def uri_resource_escape(value: str) -> str:
    """Like uri_escape, but keeps path separators."""
    return uri_escape(value).replace('%2F', '/')


def is_amazon_endpoint(endpoint: str) -> bool:
    return endpoint in AMAZON_ENDPOINTS


def is_virtual_host_style(endpoint: str, scheme: str, bucket: str,
                          path_style: bool) -> bool:
    """Decide whether a bucket is addressed through a subdomain.

    Bucket names containing dots are always path style over https, as
    they break wildcard certificates. Amazon endpoints default to virtual
    host style; other endpoints use it only when path style is not pinned.

    Args:
        endpoint: Configured endpoint host
        scheme: ``http`` or ``https``
        bucket: Bucket name
        path_style: Whether the client is pinned to path style

    Returns:
        True for virtual-host style, False for path style
    """
    if scheme == 'https' and '.' in bucket:
        return False
    return is_amazon_endpoint(endpoint) or not path_style


def get_s3_endpoint(region: str) -> str:
    """Return the regional Amazon S3 endpoint, defaulting to the global one."""
    return S3_ENDPOINTS.get(region, 's3.amazonaws.com')


def sanitize_etag(etag: Optional[str]) -> str:
    """Strip the surrounding quotes (literal or entity encoded) from an ETag."""
    if not etag:
        return ''
    stripped = _ETAG_QUOTES.sub('', etag)
    while stripped != etag:
        etag, stripped = stripped, _ETAG_QUOTES.sub('', stripped)
    return stripped


def get_version_id(headers: Mapping[str, str]) -> Optional[str]:
    return headers.get('x-amz-version-id') or None


def is_amz_header(key: str) -> bool:
    lower = key.lower()
    return (lower.startswith(META_HEADER_PREFIX)
            or lower == 'x-amz-acl'
            or lower.startswith('x-amz-server-side-encryption'))


def is_supported_header(key: str) -> bool:
    return key.lower() in SUPPORTED_HEADERS


def is_storage_class_header(key: str) -> bool:
    return key.lower() == 'x-amz-storage-class'


def prepend_x_amz_meta(metadata: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Prefix user metadata keys with ``x-amz-meta-``.

    Keys that already are amz, supported or storage-class headers are
    passed through unchanged.

    Args:
        metadata: User supplied metadata

    Returns:
        Dictionary of request headers
    """
    if not metadata:
        return {}
    headers = {}
    for key, value in metadata.items():
        if is_amz_header(key) or is_supported_header(key) or is_storage_class_header(key):
            headers[key] = str(value)
        else:
            headers[META_HEADER_PREFIX + key] = str(value)
    return headers


def extract_metadata(headers: Mapping[str, str]) -> Dict[str, str]:
    """Collect user metadata and supported headers from a response."""
    metadata = {}
    for key, value in headers.items():
        lower = key.lower()
        if lower.startswith(META_HEADER_PREFIX):
            metadata[lower[len(META_HEADER_PREFIX):]] = value
        elif is_supported_header(key) or is_storage_class_header(key) or is_amz_header(key):
            metadata[key] = value
    return metadata


def insert_content_type(metadata: Optional[Mapping[str, str]],
                        file_path: str) -> Dict[str, str]:
    """Add a probed ``content-type`` unless the metadata already has one."""
    metadata = dict(metadata or {})
    if any(key.lower() == 'content-type' for key in metadata):
        return metadata
    metadata['content-type'] = probe_content_type(file_path)
    return metadata


def probe_content_type(path: str) -> str:
    content_type, _ = mimetypes.guess_type(str(path))
    return content_type or 'application/octet-stream'


def md5_base64(data: bytes) -> str:
    return base64.b64encode(hashlib.md5(data).digest()).decode('ascii')


def md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()

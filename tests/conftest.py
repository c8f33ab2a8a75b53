"""
Test fixtures for the upload client.
"""
from collections import deque
from typing import Dict, List, Optional, Union
from urllib.parse import parse_qsl, urlsplit

import pytest
from botocore.awsrequest import AWSRequest

from upload_client.client import UploadClient
from upload_client.config import ClientConfig
from upload_client.models import HttpResponse

S3_XMLNS = 'xmlns="http://s3.amazonaws.com/doc/2006-03-01/"'


class FakeTransport:
    """Records every request and answers from a queue of canned responses."""

    def __init__(self):
        self.requests: List[AWSRequest] = []
        self.responses = deque()
        self.closed = False

    def queue(self, status_code: Optional[int] = 200, body: Union[bytes, str] = b"",
              headers: Optional[Dict[str, str]] = None) -> None:
        if isinstance(body, str):
            body = body.encode('utf-8')
        self.responses.append(HttpResponse(
            status_code=status_code,
            headers={k.lower(): v for k, v in (headers or {}).items()},
            body=body,
        ))

    def queue_error(self, error: Exception) -> None:
        self.responses.append(error)

    async def send(self, request: AWSRequest) -> HttpResponse:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        response = self.responses.popleft()
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


def query_of(request: AWSRequest) -> Dict[str, str]:
    """Query parameters of a recorded request; bare sub-resources map to ''."""
    return dict(parse_qsl(urlsplit(request.url).query, keep_blank_values=True))


def path_of(request: AWSRequest) -> str:
    return urlsplit(request.url).path


def location_xml(region: str = "") -> str:
    return f'<LocationConstraint {S3_XMLNS}>{region}</LocationConstraint>'


def error_xml(code: str, message: str = "error", region: Optional[str] = None) -> str:
    region_tag = f"<Region>{region}</Region>" if region else ""
    return (f"<Error><Code>{code}</Code><Message>{message}</Message>{region_tag}"
            f"<RequestId>REQ123</RequestId><HostId>HOST456</HostId></Error>")


def uploads_xml(uploads=(), truncated: bool = False, next_key: str = "",
                next_upload_id: str = "") -> str:
    entries = "".join(
        f"<Upload><Key>{key}</Key><UploadId>{upload_id}</UploadId>"
        f"<Initiated>{initiated}</Initiated><StorageClass>STANDARD</StorageClass></Upload>"
        for key, upload_id, initiated in uploads
    )
    return (f"<ListMultipartUploadsResult {S3_XMLNS}><Bucket>test-bucket</Bucket>"
            f"<IsTruncated>{'true' if truncated else 'false'}</IsTruncated>"
            f"<NextKeyMarker>{next_key}</NextKeyMarker>"
            f"<NextUploadIdMarker>{next_upload_id}</NextUploadIdMarker>"
            f"{entries}</ListMultipartUploadsResult>")


def parts_xml(parts=(), truncated: bool = False, next_marker: int = 0) -> str:
    entries = "".join(
        f"<Part><PartNumber>{number}</PartNumber><ETag>&quot;{etag}&quot;</ETag>"
        f"<Size>{size}</Size><LastModified>2024-01-01T00:00:00.000Z</LastModified></Part>"
        for number, etag, size in parts
    )
    return (f"<ListPartsResult {S3_XMLNS}>"
            f"<IsTruncated>{'true' if truncated else 'false'}</IsTruncated>"
            f"<NextPartNumberMarker>{next_marker}</NextPartNumberMarker>"
            f"{entries}</ListPartsResult>")


def initiate_xml(upload_id: str) -> str:
    return (f"<InitiateMultipartUploadResult {S3_XMLNS}><Bucket>test-bucket</Bucket>"
            f"<Key>object</Key><UploadId>{upload_id}</UploadId>"
            f"</InitiateMultipartUploadResult>")


def complete_xml(etag: str) -> str:
    return (f"<CompleteMultipartUploadResult {S3_XMLNS}>"
            f"<Location>http://localhost:9000/test-bucket/object</Location>"
            f"<Bucket>test-bucket</Bucket><Key>object</Key><ETag>&quot;{etag}&quot;</ETag>"
            f"</CompleteMultipartUploadResult>")


@pytest.fixture
def transport():
    """Create a recording fake transport."""
    return FakeTransport()


@pytest.fixture
def config():
    """Create a config for a local plain-http server with a pinned region."""
    return ClientConfig(
        endpoint="localhost",
        port=9000,
        use_ssl=False,
        access_key="AKIAEXAMPLE",
        secret_key="secret-key-example",
        region="us-east-1",
    )


@pytest.fixture
def unpinned_config():
    """Create a config whose bucket regions must be discovered."""
    return ClientConfig(
        endpoint="localhost",
        port=9000,
        use_ssl=False,
        access_key="AKIAEXAMPLE",
        secret_key="secret-key-example",
    )


@pytest.fixture
def small_part_config():
    """Create a config with the smallest allowed part size."""
    return ClientConfig(
        endpoint="localhost",
        port=9000,
        use_ssl=False,
        access_key="AKIAEXAMPLE",
        secret_key="secret-key-example",
        region="us-east-1",
        part_size=5 * 1024 * 1024,
    )


@pytest.fixture
def client(config, transport):
    """Create a client wired to the fake transport."""
    return UploadClient(config, transport=transport)


@pytest.fixture
def unpinned_client(unpinned_config, transport):
    return UploadClient(unpinned_config, transport=transport)


@pytest.fixture
def small_part_client(small_part_config, transport):
    return UploadClient(small_part_config, transport=transport)

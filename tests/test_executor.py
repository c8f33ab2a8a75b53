"""
Tests for request addressing, signing and response validation.
"""
import io
import re

import pytest
from botocore.credentials import ReadOnlyCredentials

from upload_client.client import UploadClient
from upload_client.config import ClientConfig
from upload_client.credentials import StaticProvider
from upload_client.errors import CredentialsError, InvalidArgument, ProtocolViolation, ServerError, TransportError
from upload_client.executor import encode_query
from upload_client.helpers import sha256_hex
from upload_client.models import RequestDescriptor
from upload_client.signer import UNSIGNED_PAYLOAD
from conftest import error_xml, location_xml


def make_client(transport, **settings):
    settings.setdefault("access_key", "AKIAEXAMPLE")
    settings.setdefault("secret_key", "secret-key-example")
    return UploadClient(ClientConfig(**settings), transport=transport)


def test_encode_query_keeps_bare_subresources():
    assert encode_query({"uploads": None, "prefix": "a b/c"}) == "uploads&prefix=a%20b%2Fc"


@pytest.mark.parametrize("settings,bucket,expected_url", [
    ({"endpoint": "localhost", "port": 9000, "use_ssl": False},
     "test-bucket", "http://localhost:9000/test-bucket/dir/my%20file.txt"),
    ({"endpoint": "minio.example.com", "path_style": False},
     "test-bucket", "https://test-bucket.minio.example.com/dir/my%20file.txt"),
    ({"endpoint": "s3.amazonaws.com", "region": "eu-west-1"},
     "test-bucket", "https://test-bucket.s3.eu-west-1.amazonaws.com/dir/my%20file.txt"),
    ({"endpoint": "s3.amazonaws.com", "region": "eu-west-1"},
     "dotted.bucket", "https://s3.eu-west-1.amazonaws.com/dotted.bucket/dir/my%20file.txt"),
    ({"endpoint": "::1", "port": 9000, "use_ssl": False},
     "test-bucket", "http://[::1]:9000/test-bucket/dir/my%20file.txt"),
])
def test_address(transport, settings, bucket, expected_url):
    """Test virtual-host and path-style addressing."""
    client = make_client(transport, **settings)
    descriptor = RequestDescriptor(method="GET", bucket=bucket, object_name="dir/my file.txt")
    region = settings.get("region", "us-east-1")

    url, host, path = client.executor.address(descriptor, region)

    assert url == expected_url
    assert url.endswith(path)


def test_path_style_override_wins_over_virtual_host(transport):
    client = make_client(transport, endpoint="s3.amazonaws.com")
    descriptor = RequestDescriptor(method="GET", bucket="test-bucket",
                                   query={"location": None}, path_style=True)

    url, host, path = client.executor.address(descriptor, "us-east-1")

    assert url == "https://s3.us-east-1.amazonaws.com/test-bucket?location"
    assert host == "s3.us-east-1.amazonaws.com"


def test_accelerate_endpoint_replaces_amazon_host(transport):
    client = make_client(transport, endpoint="s3.amazonaws.com")
    client.set_s3_transfer_accelerate("s3-accelerate.amazonaws.com")
    descriptor = RequestDescriptor(method="PUT", bucket="test-bucket", object_name="key")

    url, _, _ = client.executor.address(descriptor, "us-east-1")

    assert url == "https://test-bucket.s3-accelerate.amazonaws.com/key"


def test_accelerate_rejects_dotted_bucket(transport):
    client = make_client(transport, endpoint="s3.amazonaws.com")
    client.set_s3_transfer_accelerate("s3-accelerate.amazonaws.com")
    descriptor = RequestDescriptor(method="PUT", bucket="dotted.bucket", object_name="key")

    with pytest.raises(InvalidArgument):
        client.executor.address(descriptor, "us-east-1")


@pytest.mark.asyncio
async def test_plain_http_request_signs_payload_hash(client, transport):
    """Test that authenticated plain-http requests carry the SHA-256 of the body."""
    transport.queue(headers={"ETag": '"abc"'})

    await client.executor.execute(
        RequestDescriptor(method="PUT", bucket="test-bucket", object_name="key"), b"hello")

    request = transport.requests[0]
    assert request.headers["X-Amz-Content-SHA256"] == sha256_hex(b"hello")
    assert request.headers["Content-Length"] == "5"
    assert request.headers["Host"] == "localhost:9000"
    assert request.headers["User-Agent"].startswith("upload-client/")
    assert "X-Amz-Date" in request.headers
    assert request.headers["Authorization"].startswith(
        "AWS4-HMAC-SHA256 Credential=AKIAEXAMPLE/")


@pytest.mark.asyncio
async def test_tls_request_uses_unsigned_payload(transport):
    """Test that authenticated https requests skip body hashing."""
    client = make_client(transport, endpoint="minio.example.com", region="us-east-1")
    transport.queue()

    await client.executor.execute(
        RequestDescriptor(method="PUT", bucket="test-bucket", object_name="key"), b"hello")

    request = transport.requests[0]
    assert request.headers["X-Amz-Content-SHA256"] == UNSIGNED_PAYLOAD
    assert request.headers["Host"] == "minio.example.com"


@pytest.mark.asyncio
async def test_anonymous_request_is_not_signed(transport):
    client = UploadClient(ClientConfig(endpoint="localhost", port=9000, use_ssl=False,
                                       region="us-east-1"), transport=transport)
    transport.queue()

    await client.executor.execute(RequestDescriptor(method="GET", bucket="test-bucket"))

    request = transport.requests[0]
    assert "Authorization" not in request.headers
    assert "X-Amz-Content-SHA256" not in request.headers
    assert not client.executor.enable_sha256


@pytest.mark.asyncio
async def test_session_token_is_sent(transport):
    client = make_client(transport, endpoint="localhost", region="us-east-1",
                         session_token="session-token")
    transport.queue()

    await client.executor.execute(RequestDescriptor(method="GET", bucket="test-bucket"))

    assert transport.requests[0].headers["X-Amz-Security-Token"] == "session-token"


@pytest.mark.asyncio
async def test_unexpected_status_invalidates_region_cache(unpinned_client, transport):
    """Test that a failed request drops the bucket's cached region."""
    unpinned_client.session.region_cache.set("test-bucket", "eu-west-1")
    transport.queue(404, error_xml("NoSuchKey", "The specified key does not exist."))

    with pytest.raises(ServerError) as exc_info:
        await unpinned_client.executor.execute(
            RequestDescriptor(method="GET", bucket="test-bucket", object_name="missing"))

    error = exc_info.value
    assert error.code == "NoSuchKey"
    assert error.status_code == 404
    assert error.request_id == "REQ123"
    assert error.host_id == "HOST456"
    assert unpinned_client.session.region_cache.get("test-bucket") is None

    transport.queue(body=location_xml("eu-west-1"))
    transport.queue()
    await unpinned_client.executor.execute(
        RequestDescriptor(method="GET", bucket="test-bucket", object_name="missing"))
    assert "location" in transport.requests[1].url


@pytest.mark.asyncio
@pytest.mark.parametrize("status,code", [
    (301, "MovedPermanently"),
    (307, "TemporaryRedirect"),
    (403, "AccessDenied"),
    (404, "NotFound"),
    (405, "MethodNotAllowed"),
    (501, "MethodNotAllowed"),
    (500, "UnknownError"),
])
async def test_empty_error_body_maps_status_to_code(client, transport, status, code):
    transport.queue(status, headers={"x-amz-request-id": "REQ9", "x-amz-bucket-region": "eu-west-1"})

    with pytest.raises(ServerError) as exc_info:
        await client.executor.execute(
            RequestDescriptor(method="HEAD", bucket="test-bucket", object_name="key"))

    assert exc_info.value.code == code
    assert exc_info.value.request_id == "REQ9"
    assert exc_info.value.bucket_region == "eu-west-1"


@pytest.mark.asyncio
async def test_missing_status_code_is_protocol_violation(client, transport):
    transport.queue(None)

    with pytest.raises(ProtocolViolation):
        await client.executor.execute(RequestDescriptor(method="GET", bucket="test-bucket"))


@pytest.mark.asyncio
async def test_transport_errors_propagate(client, transport):
    transport.queue_error(TransportError("connection refused"))

    with pytest.raises(TransportError):
        await client.executor.execute(RequestDescriptor(method="GET", bucket="test-bucket"))


@pytest.mark.asyncio
async def test_expected_status_other_than_200(client, transport):
    transport.queue(204)

    response = await client.executor.execute(
        RequestDescriptor(method="DELETE", bucket="test-bucket", object_name="key"),
        expected_status=(204,))

    assert response.status_code == 204
    assert transport.requests[0].headers["Content-Length"] == "0"


@pytest.mark.asyncio
async def test_credentials_provider_is_consulted_per_request(transport):
    """Test that a provider supplies the credentials of every request."""
    client = UploadClient(ClientConfig(endpoint="localhost", region="us-east-1"),
                          transport=transport)
    client.set_credentials_provider(StaticProvider("AKIAPROVIDED", "provided-secret"))
    transport.queue()

    await client.executor.execute(RequestDescriptor(method="GET", bucket="test-bucket"))

    assert "Credential=AKIAPROVIDED/" in transport.requests[0].headers["Authorization"]


@pytest.mark.asyncio
async def test_failing_provider_raises_credentials_error(transport):
    class BrokenProvider:
        def get_credentials(self) -> ReadOnlyCredentials:
            raise RuntimeError("metadata service unavailable")

    client = UploadClient(ClientConfig(endpoint="localhost", region="us-east-1"),
                          credentials_provider=BrokenProvider(), transport=transport)

    with pytest.raises(CredentialsError) as exc_info:
        await client.executor.execute(RequestDescriptor(method="GET", bucket="test-bucket"))

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert transport.requests == []


@pytest.mark.asyncio
async def test_trace_redacts_signature(client, transport):
    """Test that traced requests never reveal the signature."""
    stream = io.StringIO()
    client.trace_on(stream)
    transport.queue(headers={"ETag": '"abc"'})
    transport.queue(404, error_xml("NoSuchKey"))

    await client.executor.execute(
        RequestDescriptor(method="PUT", bucket="test-bucket", object_name="key"), b"data")
    with pytest.raises(ServerError):
        await client.executor.execute(
            RequestDescriptor(method="GET", bucket="test-bucket", object_name="key"))

    output = stream.getvalue()
    signature = re.search(r"Signature=([0-9a-f]+)",
                          transport.requests[0].headers["Authorization"]).group(1)
    assert signature not in output
    assert "Signature=**REDACTED**" in output
    assert "REQUEST: PUT /test-bucket/key" in output
    assert "RESPONSE: 200" in output
    assert '"code": "NoSuchKey"' in output

    client.trace_off()
    transport.queue()
    await client.executor.execute(RequestDescriptor(method="GET", bucket="test-bucket"))
    assert stream.getvalue() == output

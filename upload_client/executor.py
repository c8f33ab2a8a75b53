"""
Module for building, signing, sending and validating single S3 requests.
"""
import logging
import platform
from datetime import datetime, timezone
from typing import Dict, Iterable, Mapping, Optional, Tuple

from botocore.awsrequest import AWSRequest

from .config import ClientConfig
from .errors import InvalidArgument, ProtocolViolation, ServerError
from .helpers import (
    DEFAULT_REGION,
    get_s3_endpoint,
    is_amazon_endpoint,
    is_virtual_host_style,
    sha256_hex,
    uri_escape,
    uri_resource_escape,
)
from .models import HttpResponse, RequestDescriptor
from .region import RegionResolver
from .session import ClientSession
from .signer import UNSIGNED_PAYLOAD, sign_v4
from .tracer import HttpTracer
from .transport import HttpTransport
from .version import __version__
from .xml_codec import parse_error_envelope

logger = logging.getLogger(__name__)

USER_AGENT = (
    f"upload-client/{__version__} "
    f"({platform.system()}; {platform.machine()}) "
    f"python/{platform.python_version()}"
)

# Error codes used when the server sends no error document, e.g. for HEAD.
STATUS_ERRORS = {
    301: ('MovedPermanently', 'Moved Permanently'),
    307: ('TemporaryRedirect', 'Are you using the correct endpoint URL?'),
    403: ('AccessDenied', 'Valid and authorized credentials required'),
    404: ('NotFound', 'Not Found'),
    405: ('MethodNotAllowed', 'Method Not Allowed'),
    501: ('MethodNotAllowed', 'Method Not Allowed'),
}

_BODY_METHODS = {'PUT', 'POST', 'DELETE'}


def encode_query(query: Mapping[str, Optional[str]]) -> str:
    """Render query parameters, leaving valueless sub-resources bare."""
    pairs = []
    for key, value in query.items():
        if value is None:
            pairs.append(uri_escape(key))
        else:
            pairs.append(f"{uri_escape(key)}={uri_escape(str(value))}")
    return '&'.join(pairs)


class RequestExecutor:
    """Executes one request/response exchange with the storage server."""

    def __init__(self, config: ClientConfig, session: ClientSession,
                 transport: HttpTransport, tracer: Optional[HttpTracer] = None):
        """Initialize the executor.

        Args:
            config: Client configuration
            session: Mutable credentials and region cache
            transport: Transport used to send requests
            tracer: Optional tracer receiving every exchange
        """
        self._config = config
        self._session = session
        self._transport = transport
        self.tracer = tracer
        self.accelerate_endpoint = config.s3_accelerate_endpoint
        self.regions = RegionResolver(config, session.region_cache, self)

    @property
    def enable_sha256(self) -> bool:
        """Payloads are hashed only for signed requests over plain http."""
        return not self._session.anonymous and not self._config.use_ssl

    def _accelerate_host(self, bucket: Optional[str],
                         object_name: Optional[str]) -> Optional[str]:
        if not self.accelerate_endpoint or not bucket or not object_name:
            return None
        if '.' in bucket:
            raise InvalidArgument(
                f"Transfer Acceleration is not supported for non compliant bucket: {bucket}")
        return self.accelerate_endpoint

    def address(self, descriptor: RequestDescriptor, region: str) -> Tuple[str, str, str]:
        """Compute where a request goes.

        Args:
            descriptor: The request to address
            region: Region of the bucket, used to pick Amazon endpoints

        Returns:
            Tuple of (url, host header, path with query string)
        """
        config = self._config
        host = config.endpoint
        bucket = descriptor.bucket
        virtual_host = bool(bucket) and is_virtual_host_style(
            host, config.scheme, bucket, config.path_style)

        if is_amazon_endpoint(host):
            host = self._accelerate_host(bucket, descriptor.object_name) or get_s3_endpoint(region)

        object_path = uri_resource_escape(descriptor.object_name) if descriptor.object_name else ''
        if virtual_host and not descriptor.path_style:
            host = f"{bucket}.{host}"
            path = f"/{object_path}"
        elif bucket:
            path = f"/{bucket}/{object_path}" if object_path else f"/{bucket}"
        else:
            path = "/"

        query = encode_query(descriptor.query)
        if query:
            path = f"{path}?{query}"

        host_header = host
        if not config.default_port:
            bracketed = f"[{host}]" if ':' in host else host
            host_header = f"{bracketed}:{config.effective_port}"

        return f"{config.scheme}://{host_header}{path}", host_header, path

    async def execute(self, descriptor: RequestDescriptor, payload: bytes = b"",
                      expected_status: Iterable[int] = (200,)) -> HttpResponse:
        """Sign and send a request, validating the response status.

        Any unexpected status drops the bucket's cached region so the next
        request resolves it again, then raises the server's error.

        Args:
            descriptor: The request to send
            payload: Request body
            expected_status: Status codes that count as success

        Returns:
            The fully read response

        Raises:
            CredentialsError: If refreshing credentials fails
            ServerError: If the status is not expected
            ProtocolViolation: If the response has no status code
            TransportError: If the server could not be reached
        """
        expected = tuple(expected_status)
        credentials = await self._session.refresh_credentials()

        region = descriptor.region
        if not region:
            if descriptor.bucket:
                region = await self.regions.resolve_region(descriptor.bucket)
            else:
                region = self._config.region or DEFAULT_REGION

        url, host_header, path = self.address(descriptor, region)
        headers: Dict[str, str] = {'Host': host_header, 'User-Agent': USER_AGENT}
        headers.update({key: str(value) for key, value in descriptor.headers.items()})
        if descriptor.method in _BODY_METHODS and not any(
                key.lower() == 'content-length' for key in headers):
            headers['Content-Length'] = str(len(payload))

        request = AWSRequest(method=descriptor.method, url=url, headers=headers, data=payload)
        if credentials is not None:
            content_sha256 = sha256_hex(payload) if self.enable_sha256 else UNSIGNED_PAYLOAD
            sign_v4(request, credentials, region, datetime.now(timezone.utc), content_sha256)

        logger.debug(f"{descriptor.method} {path} (region {region})")
        response = await self._transport.send(request)

        if response.status_code is None:
            error = ProtocolViolation(f"Response to {descriptor.method} {path} has no status code")
            self._trace(descriptor.method, path, request, error=error)
            raise error

        if response.status_code not in expected:
            if self._session.region_cache.invalidate(descriptor.bucket):
                logger.warning(f"Dropped cached region of bucket {descriptor.bucket} "
                               f"after status {response.status_code}")
            error = self.server_error(response)
            self._trace(descriptor.method, path, request, response, error)
            raise error

        self._trace(descriptor.method, path, request, response)
        return response

    def _trace(self, method: str, path: str, request: AWSRequest,
               response: Optional[HttpResponse] = None,
               error: Optional[Exception] = None) -> None:
        if self.tracer is None:
            return
        self.tracer.trace(
            method, path, dict(request.headers.items()),
            status_code=response.status_code if response else None,
            response_headers=response.headers if response else None,
            error=error,
        )

    @staticmethod
    def server_error(response: HttpResponse) -> ServerError:
        """Translate a failed response into a ServerError.

        The XML error document is used when there is one; otherwise the
        code and message are derived from the status.

        Args:
            response: The failed response

        Returns:
            ServerError describing the failure
        """
        headers = response.headers
        request_id = headers.get('x-amz-request-id')
        host_id = headers.get('x-amz-id-2')
        bucket_region = headers.get('x-amz-bucket-region')

        fields = None
        if response.body.strip():
            try:
                fields = parse_error_envelope(response.body)
            except ProtocolViolation as e:
                logger.debug(f"Error response body is not an S3 error document: {e}")

        if fields is not None:
            return ServerError(
                code=fields.get('Code') or 'UnknownError',
                message=fields.get('Message', ''),
                status_code=response.status_code,
                region=fields.get('Region') or None,
                bucket_name=fields.get('BucketName'),
                object_name=fields.get('Key'),
                resource=fields.get('Resource'),
                request_id=fields.get('RequestId') or request_id,
                host_id=fields.get('HostId') or host_id,
                bucket_region=bucket_region,
            )

        code, message = STATUS_ERRORS.get(
            response.status_code, ('UnknownError', str(response.status_code)))
        return ServerError(code, message, status_code=response.status_code,
                           request_id=request_id, host_id=host_id,
                           bucket_region=bucket_region)

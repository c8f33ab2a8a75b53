"""
Module providing the asynchronous S3 upload client.
"""
import logging
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, TextIO, Union

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from .config import ClientConfig, load_config
from .credentials import CredentialProvider
from .errors import InvalidArgument, InvalidBucketName, InvalidObjectName, ServerError
from .executor import RequestExecutor
from .helpers import (
    DEFAULT_REGION,
    extract_metadata,
    get_version_id,
    is_valid_bucket_name,
    is_valid_object_name,
    sanitize_etag,
)
from .models import (
    BucketInfo,
    IncompleteUpload,
    ObjectStat,
    PreviousPart,
    RequestDescriptor,
    UploadedObjectInfo,
)
from .region import carries_region_hint
from .session import ClientSession
from .tracer import HttpTracer
from .transport import HttpTransport
from .uploader import MultipartUploader
from .xml_codec import build_create_bucket_configuration, parse_list_buckets

logger = logging.getLogger(__name__)

_MISSING_BUCKET_CODES = {'NoSuchBucket', 'NotFound'}


class UploadClient:
    """Asynchronous client for S3 compatible object storage.

    Use it as an async context manager so the connection pool is released::

        async with UploadClient(ClientConfig(endpoint="s3.amazonaws.com")) as client:
            await client.fput_object("my-bucket", "backup.tar", "/tmp/backup.tar")
    """

    def __init__(self, config: ClientConfig,
                 credentials_provider: Optional[CredentialProvider] = None,
                 transport: Optional[HttpTransport] = None):
        """Initialize the client.

        Args:
            config: Connection and upload settings
            credentials_provider: Optional provider consulted before every request
            transport: Optional transport; one is created and owned otherwise
        """
        self.config = config
        self.session = ClientSession(config, credentials_provider)
        self._owns_transport = transport is None
        self.transport = transport or HttpTransport()
        self.executor = RequestExecutor(config, self.session, self.transport)
        self.uploader = MultipartUploader(config, self.executor)

    @classmethod
    def from_config_file(cls, config_file: Union[str, Path], **kwargs) -> "UploadClient":
        """Create a client from a JSON configuration file."""
        return cls(ClientConfig.from_dict(load_config(config_file)), **kwargs)

    async def __aenter__(self) -> "UploadClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_transport:
            self.transport.close()

    # Settings

    def set_credentials_provider(self, provider: CredentialProvider) -> None:
        if not callable(getattr(provider, 'get_credentials', None)):
            raise InvalidArgument("Credentials provider must implement get_credentials()")
        self.session.set_provider(provider)

    def set_s3_transfer_accelerate(self, endpoint: Optional[str]) -> None:
        """Send object requests to Amazon through the given accelerate endpoint."""
        self.executor.accelerate_endpoint = endpoint

    def trace_on(self, stream: Optional[TextIO] = None) -> None:
        """Trace every HTTP exchange to a text stream, or to the logger."""
        self.executor.tracer = HttpTracer(stream)

    def trace_off(self) -> None:
        self.executor.tracer = None

    def calculate_part_size(self, size: int) -> int:
        return self.uploader.calculate_part_size(size)

    async def get_bucket_region(self, bucket: str) -> str:
        return await self.executor.regions.resolve_region(bucket)

    # Buckets

    async def make_bucket(self, bucket: str, region: Optional[str] = None,
                          object_locking: bool = False) -> None:
        """Create a bucket.

        When the default region was used and the server answers that the
        bucket's region is another one, the request is sent once more
        signed for that region.

        Args:
            bucket: Bucket name
            region: Region to create the bucket in
            object_locking: Enable object locking on the new bucket

        Raises:
            InvalidArgument: If the region conflicts with the configured region
            ServerError: If the bucket cannot be created
        """
        if not is_valid_bucket_name(bucket):
            raise InvalidBucketName(f"Invalid bucket name: {bucket}")
        if region and self.config.region and region != self.config.region:
            raise InvalidArgument(
                f"Configured region {self.config.region}, bucket region {region}")
        region = region or self.config.region or DEFAULT_REGION

        headers: Dict[str, str] = {}
        if object_locking:
            headers['x-amz-bucket-object-lock-enabled'] = 'true'
        payload = b""
        if region != DEFAULT_REGION:
            payload = build_create_bucket_configuration(region)

        signing = {'region': region}

        def adopt_hinted_region(retry_state: RetryCallState) -> None:
            hinted = retry_state.outcome.exception().region
            logger.warning(f"Creating bucket {bucket} rejected, retrying with region {hinted}")
            signing['region'] = hinted

        retrying = AsyncRetrying(
            stop=stop_after_attempt(2 if region == DEFAULT_REGION else 1),
            retry=retry_if_exception(carries_region_hint),
            before_sleep=adopt_hinted_region,
            reraise=True,
        )
        await retrying(self._create_bucket, bucket, headers, payload, signing)
        logger.info(f"Created bucket {bucket} in {signing['region']}")

    async def _create_bucket(self, bucket: str, headers: Dict[str, str], payload: bytes,
                             signing: Dict[str, str]) -> None:
        descriptor = RequestDescriptor(method='PUT', bucket=bucket, headers=dict(headers),
                                       region=signing['region'])
        await self.executor.execute(descriptor, payload)

    async def bucket_exists(self, bucket: str) -> bool:
        if not is_valid_bucket_name(bucket):
            raise InvalidBucketName(f"Invalid bucket name: {bucket}")
        try:
            await self.executor.execute(RequestDescriptor(method='HEAD', bucket=bucket))
        except ServerError as e:
            if e.code in _MISSING_BUCKET_CODES:
                return False
            raise
        return True

    async def remove_bucket(self, bucket: str) -> None:
        """Delete an empty bucket and forget its cached region."""
        if not is_valid_bucket_name(bucket):
            raise InvalidBucketName(f"Invalid bucket name: {bucket}")
        await self.executor.execute(RequestDescriptor(method='DELETE', bucket=bucket),
                                    expected_status=(204,))
        self.session.region_cache.invalidate(bucket)
        logger.info(f"Removed bucket {bucket}")

    async def list_buckets(self) -> List[BucketInfo]:
        descriptor = RequestDescriptor(method='GET', region=self.config.region or DEFAULT_REGION)
        response = await self.executor.execute(descriptor)
        return parse_list_buckets(response.body)

    # Objects

    async def put_object(self, bucket: str, object_name: str, data: Any,
                         size: Optional[int] = None,
                         metadata: Optional[Mapping[str, str]] = None) -> UploadedObjectInfo:
        return await self.uploader.put_object(bucket, object_name, data, size, metadata)

    async def fput_object(self, bucket: str, object_name: str, file_path: Union[str, Path],
                          metadata: Optional[Mapping[str, str]] = None) -> UploadedObjectInfo:
        return await self.uploader.fput_object(bucket, object_name, file_path, metadata)

    async def stat_object(self, bucket: str, object_name: str) -> ObjectStat:
        """Fetch the size, ETag and metadata of an object.

        Args:
            bucket: Bucket name
            object_name: Object name

        Returns:
            ObjectStat of the object
        """
        self._check_object(bucket, object_name)
        response = await self.executor.execute(
            RequestDescriptor(method='HEAD', bucket=bucket, object_name=object_name))
        headers = response.headers
        last_modified = None
        if headers.get('last-modified'):
            last_modified = parsedate_to_datetime(headers['last-modified'])
        return ObjectStat(
            size=int(headers.get('content-length', 0)),
            etag=sanitize_etag(headers.get('etag')),
            last_modified=last_modified,
            version_id=get_version_id(headers),
            metadata=extract_metadata(headers),
        )

    async def remove_object(self, bucket: str, object_name: str) -> None:
        self._check_object(bucket, object_name)
        await self.executor.execute(
            RequestDescriptor(method='DELETE', bucket=bucket, object_name=object_name),
            expected_status=(200, 204))

    @staticmethod
    def _check_object(bucket: str, object_name: str) -> None:
        if not is_valid_bucket_name(bucket):
            raise InvalidBucketName(f"Invalid bucket name: {bucket}")
        if not is_valid_object_name(object_name):
            raise InvalidObjectName(f"Invalid object name: {object_name}")

    # Multipart uploads

    def list_incomplete_uploads(self, bucket: str, prefix: str = "",
                                recursive: bool = False) -> AsyncIterator[IncompleteUpload]:
        return self.uploader.list_incomplete_uploads(bucket, prefix, recursive)

    async def remove_incomplete_upload(self, bucket: str, object_name: str) -> None:
        await self.uploader.remove_incomplete_upload(bucket, object_name)

    async def find_upload_id(self, bucket: str, object_name: str) -> Optional[str]:
        return await self.uploader.find_upload_id(bucket, object_name)

    async def list_parts(self, bucket: str, object_name: str,
                         upload_id: str) -> List[PreviousPart]:
        return await self.uploader.list_parts(bucket, object_name, upload_id)

    async def abort_multipart_upload(self, bucket: str, object_name: str,
                                     upload_id: str) -> None:
        await self.uploader.abort_multipart_upload(bucket, object_name, upload_id)

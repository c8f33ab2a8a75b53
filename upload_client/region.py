"""
Module for resolving and caching the region that owns a bucket.
"""
import logging
from typing import TYPE_CHECKING, Dict

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from .config import ClientConfig
from .errors import InvalidBucketName, ServerError
from .helpers import DEFAULT_REGION, is_valid_bucket_name
from .models import RequestDescriptor
from .session import RegionCache
from .xml_codec import parse_bucket_region

if TYPE_CHECKING:
    from .executor import RequestExecutor

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER_MALFORMED = "AuthorizationHeaderMalformed"


def carries_region_hint(exception: BaseException) -> bool:
    """Check if an error names the region the request should have used.

    Args:
        exception: The exception to check

    Returns:
        True for a malformed-authorization server error with a region
    """
    return (isinstance(exception, ServerError)
            and exception.code == AUTHORIZATION_HEADER_MALFORMED
            and bool(exception.region))


class RegionResolver:
    """Finds the region of a bucket, asking the server at most once."""

    def __init__(self, config: ClientConfig, cache: RegionCache,
                 executor: "RequestExecutor"):
        self._config = config
        self._cache = cache
        self._executor = executor

    async def resolve_region(self, bucket: str) -> str:
        """Resolve the region of a bucket.

        A configured region wins without any lookup. Otherwise the cache is
        consulted and, on a miss, the bucket location is queried with a
        request signed for the default region. When the server rejects that
        signature and names the right region, the query is repeated once
        with that region.

        Args:
            bucket: Bucket name

        Returns:
            Region name

        Raises:
            InvalidBucketName: If the bucket name is invalid
            ServerError: If the location query fails
        """
        if not is_valid_bucket_name(bucket):
            raise InvalidBucketName(f"Invalid bucket name: {bucket}")

        if self._config.region:
            return self._config.region

        cached = self._cache.get(bucket)
        if cached:
            return cached

        signing = {'region': DEFAULT_REGION}

        def adopt_hinted_region(retry_state: RetryCallState) -> None:
            hinted = retry_state.outcome.exception().region
            logger.warning(f"Location query for {bucket} rejected, retrying with region {hinted}")
            signing['region'] = hinted

        retrying = AsyncRetrying(
            stop=stop_after_attempt(2),
            retry=retry_if_exception(carries_region_hint),
            before_sleep=adopt_hinted_region,
            reraise=True,
        )
        return await retrying(self._query_location, bucket, signing)

    async def _query_location(self, bucket: str, signing: Dict[str, str]) -> str:
        descriptor = RequestDescriptor(
            method='GET',
            bucket=bucket,
            query={'location': None},
            region=signing['region'],
            path_style=True,
        )
        response = await self._executor.execute(descriptor)
        region = parse_bucket_region(response.body) or DEFAULT_REGION
        self._cache.set(bucket, region)
        logger.debug(f"Resolved region of bucket {bucket}: {region}")
        return region

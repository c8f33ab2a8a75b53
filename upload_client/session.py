"""
Module holding the mutable per-client state shared by every request.
"""
import asyncio
import logging
import threading
from typing import Dict, Optional

from botocore.credentials import ReadOnlyCredentials

from .config import ClientConfig
from .credentials import CredentialProvider
from .errors import CredentialsError

logger = logging.getLogger(__name__)


class RegionCache:
    """Thread-safe mapping of bucket name to resolved region."""

    def __init__(self):
        self._regions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, bucket: str) -> Optional[str]:
        with self._lock:
            return self._regions.get(bucket)

    def set(self, bucket: str, region: str) -> None:
        with self._lock:
            self._regions[bucket] = region

    def invalidate(self, bucket: Optional[str]) -> bool:
        """Remove the entry of a bucket.

        Args:
            bucket: Bucket whose region must be resolved again

        Returns:
            True if an entry was removed
        """
        if not bucket:
            return False
        with self._lock:
            return self._regions.pop(bucket, None) is not None


class ClientSession:
    """Credentials snapshot and region cache of one client.

    The configuration never changes after construction; everything that
    does change lives here and is guarded by a lock.
    """

    def __init__(self, config: ClientConfig,
                 provider: Optional[CredentialProvider] = None):
        """Initialize the session.

        Args:
            config: Client configuration supplying the static key pair
            provider: Optional provider refreshed before every signed request
        """
        self.region_cache = RegionCache()
        self._provider = provider
        self._credentials: Optional[ReadOnlyCredentials] = None
        if not config.anonymous:
            self._credentials = ReadOnlyCredentials(
                config.access_key, config.secret_key, config.session_token)
        self._refresh_lock = asyncio.Lock()

    @property
    def anonymous(self) -> bool:
        """True when requests are sent unsigned."""
        return self._provider is None and self._credentials is None

    @property
    def credentials(self) -> Optional[ReadOnlyCredentials]:
        return self._credentials

    def set_provider(self, provider: CredentialProvider) -> None:
        self._provider = provider

    async def refresh_credentials(self) -> Optional[ReadOnlyCredentials]:
        """Fetch fresh credentials from the provider, if one is configured.

        Returns:
            The credentials to sign with, or None for anonymous access

        Raises:
            CredentialsError: If the provider fails
        """
        if self._provider is None:
            return self._credentials

        async with self._refresh_lock:
            loop = asyncio.get_running_loop()
            try:
                credentials = await loop.run_in_executor(None, self._provider.get_credentials)
            except CredentialsError:
                raise
            except Exception as e:
                logger.error(f"Credential provider failed: {e}")
                raise CredentialsError(f"Unable to get credentials: {e}") from e
            self._credentials = credentials
            return credentials

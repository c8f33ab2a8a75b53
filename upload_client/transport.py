"""
Module for sending HTTP requests to the storage server.
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from botocore.awsrequest import AWSRequest
from botocore.exceptions import BotoCoreError
from botocore.httpsession import URLLib3Session

from .errors import TransportError
from .models import HttpResponse

logger = logging.getLogger(__name__)


class HttpTransport:
    """Sends signed requests over a pooled urllib3 session.

    The session is blocking, so every send runs on a worker thread and the
    awaiting coroutine is suspended until the response has been read.
    """

    def __init__(self, max_workers: int = 5, timeout: Optional[float] = 60,
                 verify: bool = True, max_pool_connections: int = 10):
        """Initialize the transport.

        Args:
            max_workers: Maximum number of concurrent request threads
            timeout: Socket timeout in seconds
            verify: Whether to verify TLS certificates
            max_pool_connections: Size of the urllib3 connection pool
        """
        self._http = URLLib3Session(
            verify=verify,
            timeout=timeout,
            max_pool_connections=max_pool_connections,
        )
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="upload-client-http")

    def _send(self, request: AWSRequest) -> HttpResponse:
        try:
            response = self._http.send(request.prepare())
        except BotoCoreError as e:
            logger.error(f"{request.method} {request.url} failed: {e}")
            raise TransportError(str(e)) from e
        return HttpResponse(
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=response.content or b"",
        )

    async def send(self, request: AWSRequest) -> HttpResponse:
        """Send a request and read the whole response.

        Args:
            request: Addressed and signed request

        Returns:
            HttpResponse with lower-cased header names

        Raises:
            TransportError: If the server could not be reached
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._send, request)

    def close(self) -> None:
        self._http.close()
        self._executor.shutdown(wait=True)

"""
Module for tracing HTTP exchanges with the storage server.
"""
import json
import logging
import re
from typing import Mapping, Optional, TextIO

from .errors import ServerError

logger = logging.getLogger(__name__)

_SIGNATURE_RE = re.compile(r'Signature=([0-9a-f]+)')


def redact_authorization(value: str) -> str:
    return _SIGNATURE_RE.sub('Signature=**REDACTED**', value)


class HttpTracer:
    """Writes request, response and error records for diagnostics.

    Records go to ``stream`` when one is given, otherwise to the module
    logger at DEBUG level.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream

    def _write(self, text: str) -> None:
        if self._stream is not None:
            self._stream.write(text)
        else:
            logger.debug(text.rstrip('\n'))

    @staticmethod
    def _format_headers(headers: Mapping[str, str]) -> str:
        lines = []
        for key, value in headers.items():
            if key.lower() == 'authorization':
                value = redact_authorization(str(value))
            lines.append(f"{key}: {value}\n")
        return ''.join(lines) + '\n'

    def trace(self, method: str, path: str, request_headers: Mapping[str, str],
              status_code: Optional[int] = None,
              response_headers: Optional[Mapping[str, str]] = None,
              error: Optional[Exception] = None) -> None:
        """Write one exchange.

        Args:
            method: HTTP method
            path: Request path including the query string
            request_headers: Headers that were sent
            status_code: Response status, if a response was received
            response_headers: Response headers, if a response was received
            error: Error raised for the exchange, if any
        """
        record = f"REQUEST: {method} {path}\n" + self._format_headers(request_headers)
        if status_code is not None:
            record += f"RESPONSE: {status_code}\n"
            record += self._format_headers(response_headers or {})
        if error is not None:
            record += "ERROR BODY:\n"
            if isinstance(error, ServerError):
                record += json.dumps(error.to_dict(), indent='\t') + "\n"
            else:
                record += f"{error}\n"
        self._write(record)

"""
Module for reading upload sources and cutting them into fixed-size blocks.
"""
import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, List, Optional, Union

from .errors import InvalidArgument

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 1024 * 1024

BytesLike = Union[bytes, bytearray, memoryview]


class BlockChunker:
    """Cuts a byte stream into blocks of exactly ``block_size`` bytes.

    The final block is whatever remains; it is never padded.
    """

    def __init__(self, block_size: int):
        if block_size <= 0:
            raise ValueError(f"block_size must be positive, got {block_size}")
        self.block_size = block_size
        self._buffer = bytearray()

    def feed(self, data: BytesLike) -> List[bytes]:
        """Add data and return every block that is now complete."""
        self._buffer.extend(data)
        blocks = []
        while len(self._buffer) >= self.block_size:
            blocks.append(bytes(self._buffer[:self.block_size]))
            del self._buffer[:self.block_size]
        return blocks

    def flush(self) -> Optional[bytes]:
        """Return the trailing partial block, if any."""
        if not self._buffer:
            return None
        block = bytes(self._buffer)
        self._buffer.clear()
        return block


def check_source(source: Any) -> None:
    """Raise InvalidArgument unless the source is something read_source can consume."""
    if isinstance(source, (str, bytes, bytearray, memoryview)):
        return
    if any(hasattr(source, attr) for attr in ('read', '__aiter__', '__iter__')):
        return
    raise InvalidArgument(f"Unsupported upload source: {type(source).__name__}")


async def read_source(source: Any, read_size: int = DEFAULT_READ_SIZE) -> AsyncIterator[bytes]:
    """Iterate over the bytes of an upload source.

    Supported sources are bytes-like objects, strings (UTF-8 encoded),
    file-like objects with a blocking or async ``read`` method, async
    iterables and plain iterables of bytes. Blocking reads run on the
    default executor so the event loop keeps running.

    Args:
        source: The source to read
        read_size: Bytes requested per read call

    Yields:
        Non-empty byte strings in source order
    """
    check_source(source)
    if isinstance(source, str):
        source = source.encode('utf-8')
    if isinstance(source, (bytes, bytearray, memoryview)):
        if len(source):
            yield bytes(source)
        return

    read = getattr(source, 'read', None)
    if read is not None:
        loop = asyncio.get_running_loop()
        is_async = inspect.iscoroutinefunction(read)
        while True:
            if is_async:
                data = await read(read_size)
            else:
                data = await loop.run_in_executor(None, read, read_size)
            if not data:
                return
            yield data.encode('utf-8') if isinstance(data, str) else bytes(data)

    if hasattr(source, '__aiter__'):
        async for data in source:
            if data:
                yield bytes(data)
        return

    if hasattr(source, '__iter__'):
        for data in source:
            if data:
                yield bytes(data)
        return


async def read_all(source: Any) -> bytes:
    """Read a whole source into memory."""
    buffer = bytearray()
    async for data in read_source(source):
        buffer.extend(data)
    return bytes(buffer)

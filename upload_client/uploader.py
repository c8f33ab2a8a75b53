"""
Module for uploading objects, resuming interrupted multipart uploads.
"""
import asyncio
import hashlib
import io
import logging
import os
from base64 import b64encode
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

from .chunker import BlockChunker, check_source, read_all, read_source
from .config import ClientConfig, MAX_PARTS_COUNT
from .errors import InvalidArgument, InvalidBucketName, InvalidObjectName, ServerError
from .executor import RequestExecutor
from .helpers import (
    get_version_id,
    insert_content_type,
    is_valid_bucket_name,
    is_valid_object_name,
    is_valid_prefix,
    md5_base64,
    prepend_x_amz_meta,
    sanitize_etag,
)
from .models import (
    IncompleteUpload,
    ListMultipartUploadsResult,
    ListPartsResult,
    PartResult,
    PreviousPart,
    RequestDescriptor,
    UploadedObjectInfo,
    UploadSession,
    UploadState,
)
from .sizing import calculate_part_size
from .xml_codec import (
    build_complete_multipart,
    parse_complete_multipart,
    parse_initiate_multipart,
    parse_list_multipart_uploads,
    parse_list_parts,
)

logger = logging.getLogger(__name__)

MAX_UPLOADS_PER_PAGE = 1000

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _check_names(bucket: str, object_name: Optional[str] = None) -> None:
    if not is_valid_bucket_name(bucket):
        raise InvalidBucketName(f"Invalid bucket name: {bucket}")
    if object_name is not None and not is_valid_object_name(object_name):
        raise InvalidObjectName(f"Invalid object name: {object_name}")


def _source_size(source: Any) -> Optional[int]:
    """Size of the data left in a seekable file, or None when unknown."""
    fileno = getattr(source, 'fileno', None)
    tell = getattr(source, 'tell', None)
    if fileno is None or tell is None:
        return None
    try:
        return os.fstat(fileno()).st_size - tell()
    except (OSError, io.UnsupportedOperation):
        return None


class MultipartUploader:
    """Uploads objects in one request or as a resumable multipart upload."""

    def __init__(self, config: ClientConfig, executor: RequestExecutor):
        """Initialize the uploader.

        Args:
            config: Client configuration
            executor: Executor used for every request
        """
        self._config = config
        self._executor = executor

    def calculate_part_size(self, size: int) -> int:
        return calculate_part_size(size, self._config)

    async def put_object(self, bucket: str, object_name: str, data: Any,
                         size: Optional[int] = None,
                         metadata: Optional[Mapping[str, str]] = None) -> UploadedObjectInfo:
        """Upload an object from bytes, a file object or an (async) iterable.

        Objects whose size is known and fits in one part are sent in a
        single request; everything else goes through a multipart upload,
        which resumes an earlier unfinished upload of the same object.

        Args:
            bucket: Bucket name
            object_name: Object name
            data: Object content
            size: Content length, if known
            metadata: User metadata and supported headers

        Returns:
            UploadedObjectInfo of the stored object
        """
        _check_names(bucket, object_name)
        check_source(data)
        headers = prepend_x_amz_meta(metadata)

        if isinstance(data, str):
            data = data.encode('utf-8')
        if isinstance(data, (bytes, bytearray, memoryview)):
            size = len(data)
        elif size is None:
            size = _source_size(data)

        if size is not None and (isinstance(size, bool) or not isinstance(size, int) or size < 0):
            raise InvalidArgument(f"Invalid size: {size!r}")

        part_size = self.calculate_part_size(size if size is not None else self._config.max_object_size)
        if size is not None and size <= part_size:
            buffer = await read_all(data)
            return await self.upload_buffer(bucket, object_name, headers, buffer)
        return await self.upload_stream(bucket, object_name, headers, data, part_size)

    async def fput_object(self, bucket: str, object_name: str, file_path: Union[str, Path],
                          metadata: Optional[Mapping[str, str]] = None) -> UploadedObjectInfo:
        """Upload a local file, probing its content type when not given.

        Args:
            bucket: Bucket name
            object_name: Object name
            file_path: Path to the file to upload
            metadata: User metadata and supported headers

        Returns:
            UploadedObjectInfo of the stored object
        """
        _check_names(bucket, object_name)
        file_path = Path(file_path)
        metadata = insert_content_type(metadata, str(file_path))

        loop = asyncio.get_running_loop()
        size = (await loop.run_in_executor(None, file_path.stat)).st_size
        with open(file_path, 'rb') as f:
            return await self.put_object(bucket, object_name, f, size, metadata)

    async def upload_buffer(self, bucket: str, object_name: str,
                            headers: Dict[str, str], data: bytes) -> UploadedObjectInfo:
        """Upload an object in a single PUT.

        Args:
            bucket: Bucket name
            object_name: Object name
            headers: Request headers, metadata already prefixed
            data: Whole object content

        Returns:
            UploadedObjectInfo with the sanitized ETag
        """
        headers = dict(headers)
        headers['Content-MD5'] = md5_base64(data)
        descriptor = RequestDescriptor(method='PUT', bucket=bucket, object_name=object_name,
                                       headers=headers)
        response = await self._executor.execute(descriptor, data)
        logger.info(f"Uploaded {bucket}/{object_name} ({len(data)} bytes)")
        return UploadedObjectInfo(etag=sanitize_etag(response.headers.get('etag')),
                                  version_id=get_version_id(response.headers))

    async def upload_stream(self, bucket: str, object_name: str, headers: Dict[str, str],
                            source: Any, part_size: int) -> UploadedObjectInfo:
        """Upload an object as a multipart upload.

        An unfinished upload of the same object is resumed: parts already on
        the server whose ETag matches the MD5 of the new block are not sent
        again. On failure the upload is left on the server so that a later
        call can resume it.

        Args:
            bucket: Bucket name
            object_name: Object name
            headers: Headers for the initiate request
            source: Object content
            part_size: Size of every part but the last

        Returns:
            UploadedObjectInfo of the completed object
        """
        check_source(source)
        session = UploadSession(bucket=bucket, object_name=object_name)
        try:
            upload_id = await self.find_upload_id(bucket, object_name)
            if upload_id is None:
                self._transition(session, UploadState.STARTING)
                session.upload_id = await self.initiate_multipart_upload(
                    bucket, object_name, headers)
            else:
                self._transition(session, UploadState.RESUMING)
                session.upload_id = upload_id
                session.resumed = True
                previous = await self.list_parts(bucket, object_name, upload_id)
                session.previous_parts = {part.part_number: part for part in previous}
                logger.info(f"Resuming upload {upload_id} of {bucket}/{object_name} "
                            f"with {len(previous)} stored parts")

            self._transition(session, UploadState.UPLOADING)
            await self._transfer(session, source, part_size)

            self._transition(session, UploadState.COMPLETING)
            result = await self.complete_multipart_upload(
                bucket, object_name, session.upload_id, session.parts)
        except Exception as e:
            logger.error(f"Multipart upload of {bucket}/{object_name} failed: {e}")
            self._transition(session, UploadState.FAILED)
            raise

        self._transition(session, UploadState.DONE)
        logger.info(f"Uploaded {bucket}/{object_name} in {len(session.parts)} parts "
                    f"({session.uploaded_parts} sent, {session.skipped_parts} reused)")
        return result

    def _transition(self, session: UploadSession, state: UploadState) -> None:
        logger.debug(f"Upload {session.bucket}/{session.object_name}: "
                     f"{session.state.value} -> {state.value}")
        session.state = state

    async def _transfer(self, session: UploadSession, source: Any, part_size: int) -> None:
        """Run the feeder and the part consumer until the source is drained."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        feeder = asyncio.ensure_future(self._feed(source, part_size, queue))
        consumer = asyncio.ensure_future(self._consume(session, queue))
        try:
            await asyncio.gather(feeder, consumer)
        except BaseException:
            feeder.cancel()
            consumer.cancel()
            await asyncio.gather(feeder, consumer, return_exceptions=True)
            raise

    async def _feed(self, source: Any, part_size: int, queue: asyncio.Queue) -> None:
        chunker = BlockChunker(part_size)
        produced = False
        async for data in read_source(source):
            for block in chunker.feed(data):
                await queue.put(block)
                produced = True
        last = chunker.flush()
        if last is not None or not produced:
            # an empty source still becomes one (empty) part
            await queue.put(last or b"")
        await queue.put(None)

    async def _consume(self, session: UploadSession, queue: asyncio.Queue) -> None:
        part_number = 0
        while True:
            block = await queue.get()
            if block is None:
                return
            part_number += 1
            if part_number > MAX_PARTS_COUNT:
                raise InvalidArgument(
                    f"Upload of {session.object_name} needs more than {MAX_PARTS_COUNT} parts")

            md5 = hashlib.md5(block)
            previous = session.previous_parts.get(part_number)
            if previous is not None and previous.etag == md5.hexdigest():
                logger.debug(f"Part {part_number} of {session.object_name} already uploaded")
                session.parts.append(PartResult(part_number, previous.etag))
                session.skipped_parts += 1
                continue

            part = await self.upload_part(
                session.bucket, session.object_name, session.upload_id, part_number, block,
                content_md5=b64encode(md5.digest()).decode('ascii'))
            session.parts.append(part)
            session.uploaded_parts += 1

    async def upload_part(self, bucket: str, object_name: str, upload_id: str,
                          part_number: int, data: bytes,
                          content_md5: Optional[str] = None) -> PartResult:
        """Upload one part of a multipart upload.

        Args:
            bucket: Bucket name
            object_name: Object name
            upload_id: Multipart upload ID
            part_number: Part number, starting at 1
            data: Part data bytes
            content_md5: Base64 MD5 of the data, computed when not given

        Returns:
            PartResult with the unquoted ETag
        """
        descriptor = RequestDescriptor(
            method='PUT',
            bucket=bucket,
            object_name=object_name,
            headers={'Content-MD5': content_md5 or md5_base64(data)},
            query={'partNumber': str(part_number), 'uploadId': upload_id},
        )
        response = await self._executor.execute(descriptor, data)
        etag = sanitize_etag(response.headers.get('etag'))
        logger.debug(f"Uploaded part {part_number} of {object_name} ({len(data)} bytes)")
        return PartResult(part_number=part_number, etag=etag)

    async def initiate_multipart_upload(self, bucket: str, object_name: str,
                                        headers: Optional[Dict[str, str]] = None) -> str:
        """Start a multipart upload and return its upload id."""
        descriptor = RequestDescriptor(method='POST', bucket=bucket, object_name=object_name,
                                       headers=dict(headers or {}), query={'uploads': None})
        response = await self._executor.execute(descriptor)
        upload_id = parse_initiate_multipart(response.body)
        logger.info(f"Initiated upload {upload_id} of {bucket}/{object_name}")
        return upload_id

    async def complete_multipart_upload(self, bucket: str, object_name: str, upload_id: str,
                                        parts: List[PartResult]) -> UploadedObjectInfo:
        """Assemble the uploaded parts into the final object.

        Args:
            bucket: Bucket name
            object_name: Object name
            upload_id: Multipart upload ID
            parts: Parts of the object

        Returns:
            UploadedObjectInfo of the assembled object

        Raises:
            ServerError: If the server reports an error in the response body
            ProtocolViolation: If the response body cannot be decoded
        """
        ordered = sorted(parts, key=lambda part: part.part_number)
        descriptor = RequestDescriptor(method='POST', bucket=bucket, object_name=object_name,
                                       headers={'Content-Type': 'application/xml'},
                                       query={'uploadId': upload_id})
        response = await self._executor.execute(descriptor, build_complete_multipart(ordered))

        result = parse_complete_multipart(response.body)
        if result.error_code:
            raise ServerError(result.error_code, result.error_message or '',
                              status_code=response.status_code,
                              bucket_name=bucket, object_name=object_name,
                              request_id=response.headers.get('x-amz-request-id'))
        return UploadedObjectInfo(etag=result.etag, version_id=get_version_id(response.headers))

    async def abort_multipart_upload(self, bucket: str, object_name: str, upload_id: str) -> None:
        _check_names(bucket, object_name)
        descriptor = RequestDescriptor(method='DELETE', bucket=bucket, object_name=object_name,
                                       query={'uploadId': upload_id})
        await self._executor.execute(descriptor, expected_status=(204,))
        logger.info(f"Aborted upload {upload_id} of {bucket}/{object_name}")

    async def list_incomplete_uploads_query(self, bucket: str, prefix: str = "",
                                            key_marker: str = "", upload_id_marker: str = "",
                                            delimiter: str = "") -> ListMultipartUploadsResult:
        """Fetch one page of in-progress multipart uploads.

        Args:
            bucket: Bucket name
            prefix: Only list keys starting with this prefix
            key_marker: Key to continue after
            upload_id_marker: Upload id to continue after
            delimiter: Group keys sharing a prefix up to this delimiter

        Returns:
            ListMultipartUploadsResult page
        """
        query: Dict[str, Optional[str]] = {
            'uploads': None,
            'prefix': prefix,
            'max-uploads': str(MAX_UPLOADS_PER_PAGE),
        }
        if delimiter:
            query['delimiter'] = delimiter
        if key_marker:
            query['key-marker'] = key_marker
        if upload_id_marker:
            query['upload-id-marker'] = upload_id_marker
        response = await self._executor.execute(
            RequestDescriptor(method='GET', bucket=bucket, query=query))
        return parse_list_multipart_uploads(response.body)

    async def find_upload_id(self, bucket: str, object_name: str) -> Optional[str]:
        """Find the most recently initiated unfinished upload of an object.

        Args:
            bucket: Bucket name
            object_name: Object name

        Returns:
            The upload id, or None when the object has no unfinished upload
        """
        _check_names(bucket, object_name)
        latest: Optional[IncompleteUpload] = None
        key_marker = upload_id_marker = ""
        while True:
            page = await self.list_incomplete_uploads_query(
                bucket, object_name, key_marker, upload_id_marker)
            for upload in page.uploads:
                if upload.key != object_name:
                    continue
                if latest is None or (upload.initiated or _EPOCH) > (latest.initiated or _EPOCH):
                    latest = upload
            if not page.is_truncated:
                break
            key_marker = page.next_key_marker
            upload_id_marker = page.next_upload_id_marker

        return latest.upload_id if latest else None

    async def list_parts_query(self, bucket: str, object_name: str, upload_id: str,
                               part_number_marker: int = 0) -> ListPartsResult:
        query: Dict[str, Optional[str]] = {'uploadId': upload_id}
        if part_number_marker:
            query['part-number-marker'] = str(part_number_marker)
        response = await self._executor.execute(
            RequestDescriptor(method='GET', bucket=bucket, object_name=object_name, query=query))
        return parse_list_parts(response.body)

    async def list_parts(self, bucket: str, object_name: str, upload_id: str) -> List[PreviousPart]:
        """List every part stored for an upload, following pagination."""
        _check_names(bucket, object_name)
        parts: List[PreviousPart] = []
        marker = 0
        while True:
            page = await self.list_parts_query(bucket, object_name, upload_id, marker)
            parts.extend(page.parts)
            if not page.is_truncated:
                return parts
            marker = page.next_part_number_marker

    async def list_incomplete_uploads(self, bucket: str, prefix: str = "",
                                      recursive: bool = False) -> AsyncIterator[IncompleteUpload]:
        """Iterate over unfinished uploads, with the size of their stored parts.

        Args:
            bucket: Bucket name
            prefix: Only list keys starting with this prefix
            recursive: List every key instead of grouping by ``/``

        Yields:
            IncompleteUpload records; grouped prefixes only carry ``key``
        """
        _check_names(bucket)
        if not is_valid_prefix(prefix):
            raise InvalidArgument(f"Invalid prefix: {prefix!r}")
        delimiter = "" if recursive else "/"
        key_marker = upload_id_marker = ""
        while True:
            page = await self.list_incomplete_uploads_query(
                bucket, prefix, key_marker, upload_id_marker, delimiter)
            for common_prefix in page.prefixes:
                yield IncompleteUpload(key=common_prefix, upload_id="")
            for upload in page.uploads:
                parts = await self.list_parts(bucket, upload.key, upload.upload_id)
                upload.size = sum(part.size for part in parts)
                yield upload
            if not page.is_truncated:
                return
            key_marker = page.next_key_marker
            upload_id_marker = page.next_upload_id_marker

    async def remove_incomplete_upload(self, bucket: str, object_name: str) -> None:
        """Abort the latest unfinished upload of an object, if there is one."""
        upload_id = await self.find_upload_id(bucket, object_name)
        if upload_id is None:
            logger.debug(f"No unfinished upload of {bucket}/{object_name}")
            return
        await self.abort_multipart_upload(bucket, object_name, upload_id)

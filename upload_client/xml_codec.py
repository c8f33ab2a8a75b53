"""
Module for encoding S3 request bodies and decoding S3 response bodies.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
from urllib.parse import unquote_plus
from xml.etree import ElementTree as ET

from .errors import ProtocolViolation
from .helpers import sanitize_etag
from .models import (
    BucketInfo,
    CompleteMultipartResult,
    IncompleteUpload,
    ListMultipartUploadsResult,
    ListPartsResult,
    PartResult,
    PreviousPart,
)

logger = logging.getLogger(__name__)

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"


def _parse(body: bytes, expected_root: Optional[str] = None) -> ET.Element:
    """Parse an XML document and drop namespaces from every tag.

    Args:
        body: Raw XML bytes
        expected_root: Root tag the document must have, if any

    Returns:
        Root element

    Raises:
        ProtocolViolation: If the document is malformed or has the wrong root
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise ProtocolViolation(f"Malformed XML response: {e}") from e

    for element in root.iter():
        if isinstance(element.tag, str) and '}' in element.tag:
            element.tag = element.tag.split('}', 1)[1]

    if expected_root and root.tag != expected_root:
        raise ProtocolViolation(f'Missing tag: "{expected_root}", got "{root.tag}"')
    return root


def _text(element: ET.Element, tag: str, default: Optional[str] = None) -> Optional[str]:
    value = element.findtext(tag)
    if value is None:
        return default
    return value.strip()


def _bool(element: ET.Element, tag: str) -> bool:
    return (_text(element, tag) or '').lower() == 'true'


def _time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logger.debug(f"Unparsable timestamp in response: {value}")
        return None
    # Zone-less timestamps are UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_bucket_region(body: bytes) -> str:
    """Read the region from a ``GET ?location`` response.

    An empty constraint means the default region; the legacy ``EU`` value
    stands for ``eu-west-1``. Returns an empty string for the former so the
    caller can apply its default.
    """
    root = _parse(body, 'LocationConstraint')
    region = (root.text or '').strip()
    if region == 'EU':
        return 'eu-west-1'
    return region


def parse_error_envelope(body: bytes) -> Dict[str, str]:
    """Read the fields of an S3 ``<Error>`` document.

    Returns:
        Mapping of child tag to text, e.g. ``{'Code': ..., 'Message': ...}``
    """
    root = _parse(body, 'Error')
    return {child.tag: (child.text or '').strip() for child in root}


def parse_initiate_multipart(body: bytes) -> str:
    """Return the upload id from an ``InitiateMultipartUploadResult``."""
    root = _parse(body, 'InitiateMultipartUploadResult')
    upload_id = _text(root, 'UploadId')
    if not upload_id:
        raise ProtocolViolation('Missing tag: "UploadId"')
    return upload_id


def parse_list_multipart_uploads(body: bytes) -> ListMultipartUploadsResult:
    root = _parse(body, 'ListMultipartUploadsResult')
    result = ListMultipartUploadsResult(
        is_truncated=_bool(root, 'IsTruncated'),
        next_key_marker=_text(root, 'NextKeyMarker', ''),
        next_upload_id_marker=_text(root, 'NextUploadIdMarker', ''),
    )
    encoded = _text(root, 'EncodingType') == 'url'

    for prefix in root.findall('CommonPrefixes'):
        value = _text(prefix, 'Prefix', '')
        result.prefixes.append(unquote_plus(value) if encoded else value)

    for upload in root.findall('Upload'):
        key = _text(upload, 'Key', '')
        result.uploads.append(IncompleteUpload(
            key=unquote_plus(key) if encoded else key,
            upload_id=_text(upload, 'UploadId', ''),
            initiated=_time(_text(upload, 'Initiated')),
            storage_class=_text(upload, 'StorageClass'),
            initiator_id=_text(upload, 'Initiator/ID'),
            owner_id=_text(upload, 'Owner/ID'),
        ))
    return result


def parse_list_parts(body: bytes) -> ListPartsResult:
    root = _parse(body, 'ListPartsResult')
    marker = _text(root, 'NextPartNumberMarker')
    result = ListPartsResult(
        is_truncated=_bool(root, 'IsTruncated'),
        next_part_number_marker=int(marker) if marker else 0,
    )
    for part in root.findall('Part'):
        result.parts.append(PreviousPart(
            part_number=int(_text(part, 'PartNumber', '0')),
            etag=sanitize_etag(_text(part, 'ETag', '')),
            size=int(_text(part, 'Size', '0')),
            last_modified=_time(_text(part, 'LastModified')),
        ))
    return result


def parse_complete_multipart(body: bytes) -> CompleteMultipartResult:
    """Decode the body of a completed multipart upload.

    The server reports some completion failures as an ``<Error>`` document
    inside a 200 response; those are returned with ``error_code`` set.

    Raises:
        ProtocolViolation: If the body is empty or neither a result nor an error
    """
    if not body or not body.strip():
        raise ProtocolViolation("Empty CompleteMultipartUpload response")
    root = _parse(body)

    if root.tag == 'CompleteMultipartUploadResult':
        etag = _text(root, 'ETag')
        if etag is None:
            raise ProtocolViolation('Missing tag: "ETag"')
        return CompleteMultipartResult(
            location=_text(root, 'Location'),
            bucket=_text(root, 'Bucket'),
            key=_text(root, 'Key'),
            etag=sanitize_etag(etag),
        )
    if root.tag == 'Error':
        code = _text(root, 'Code')
        if not code:
            raise ProtocolViolation("CompleteMultipartUpload error without a code")
        return CompleteMultipartResult(error_code=code,
                                       error_message=_text(root, 'Message', ''))
    raise ProtocolViolation(f'Unexpected CompleteMultipartUpload root "{root.tag}"')


def parse_list_buckets(body: bytes) -> List[BucketInfo]:
    root = _parse(body, 'ListAllMyBucketsResult')
    return [
        BucketInfo(name=_text(bucket, 'Name', ''),
                   creation_date=_time(_text(bucket, 'CreationDate')))
        for bucket in root.findall('Buckets/Bucket')
    ]


def build_complete_multipart(parts: Iterable[PartResult]) -> bytes:
    """Build the ``CompleteMultipartUpload`` body for the given parts."""
    root = ET.Element('CompleteMultipartUpload', xmlns=S3_NAMESPACE)
    for part in parts:
        element = ET.SubElement(root, 'Part')
        ET.SubElement(element, 'PartNumber').text = str(part.part_number)
        ET.SubElement(element, 'ETag').text = part.etag
    return ET.tostring(root, encoding='utf-8')


def build_create_bucket_configuration(region: str) -> bytes:
    root = ET.Element('CreateBucketConfiguration', xmlns=S3_NAMESPACE)
    ET.SubElement(root, 'LocationConstraint').text = region
    return ET.tostring(root, encoding='utf-8')

"""
Module containing data models for the upload client.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Mapping, Optional


@dataclass
class RequestDescriptor:
    """Describes a single S3 request before it is addressed and signed.

    A query value of None renders as a bare sub-resource (``?uploads``).
    """
    method: str
    bucket: Optional[str] = None
    object_name: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, Optional[str]] = field(default_factory=dict)
    region: Optional[str] = None
    path_style: bool = False


@dataclass
class HttpResponse:
    """A fully read HTTP response. Header names are lower case."""
    status_code: Optional[int]
    headers: Mapping[str, str]
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')


@dataclass
class UploadedObjectInfo:
    """Result of a successful object upload."""
    etag: str
    version_id: Optional[str] = None


@dataclass
class PreviousPart:
    """A part stored server-side by an earlier, unfinished upload."""
    part_number: int
    etag: str
    size: int
    last_modified: Optional[datetime] = None


@dataclass
class PartResult:
    """A part that belongs to the object being completed."""
    part_number: int
    etag: str


class UploadState(Enum):
    """Lifecycle of one multipart upload invocation."""
    INIT = "init"
    RESUMING = "resuming"
    STARTING = "starting"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class UploadSession:
    """Server-side multipart upload being driven by the engine."""
    bucket: str
    object_name: str
    upload_id: Optional[str] = None
    previous_parts: Dict[int, PreviousPart] = field(default_factory=dict)
    parts: List[PartResult] = field(default_factory=list)
    state: UploadState = UploadState.INIT
    resumed: bool = False
    skipped_parts: int = 0
    uploaded_parts: int = 0


@dataclass
class IncompleteUpload:
    """An in-progress multipart upload as listed by the server."""
    key: str
    upload_id: str
    initiated: Optional[datetime] = None
    storage_class: Optional[str] = None
    initiator_id: Optional[str] = None
    owner_id: Optional[str] = None
    size: int = 0


@dataclass
class ListMultipartUploadsResult:
    """One page of ``GET ?uploads``."""
    uploads: List[IncompleteUpload] = field(default_factory=list)
    prefixes: List[str] = field(default_factory=list)
    is_truncated: bool = False
    next_key_marker: str = ""
    next_upload_id_marker: str = ""


@dataclass
class ListPartsResult:
    """One page of ``GET ?uploadId``."""
    parts: List[PreviousPart] = field(default_factory=list)
    is_truncated: bool = False
    next_part_number_marker: int = 0


@dataclass
class CompleteMultipartResult:
    """Parsed body of ``POST ?uploadId``.

    A completion can fail after a 200 status, in which case the body is an
    error document and ``error_code`` is set instead of ``etag``.
    """
    location: Optional[str] = None
    bucket: Optional[str] = None
    key: Optional[str] = None
    etag: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class ObjectStat:
    """Metadata returned by a HEAD object request."""
    size: int
    etag: str
    last_modified: Optional[datetime] = None
    version_id: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class BucketInfo:
    name: str
    creation_date: Optional[datetime] = None

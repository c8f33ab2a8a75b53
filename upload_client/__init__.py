from .client import UploadClient
from .config import ClientConfig, load_config
from .credentials import Boto3SessionProvider, CredentialProvider, StaticProvider
from .errors import (
    CredentialsError,
    InvalidArgument,
    InvalidBucketName,
    InvalidEndpoint,
    InvalidObjectName,
    ProtocolViolation,
    ServerError,
    TransportError,
    UploadClientError,
)
from .models import IncompleteUpload, ObjectStat, PreviousPart, UploadedObjectInfo
from .sizing import calculate_part_size
from .version import __version__

__all__ = [
    "UploadClient",
    "ClientConfig",
    "load_config",
    "Boto3SessionProvider",
    "CredentialProvider",
    "StaticProvider",
    "CredentialsError",
    "InvalidArgument",
    "InvalidBucketName",
    "InvalidEndpoint",
    "InvalidObjectName",
    "ProtocolViolation",
    "ServerError",
    "TransportError",
    "UploadClientError",
    "IncompleteUpload",
    "ObjectStat",
    "PreviousPart",
    "UploadedObjectInfo",
    "calculate_part_size",
]

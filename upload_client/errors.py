"""
Module containing the error types raised by the upload client.
"""
from typing import Optional


class UploadClientError(Exception):
    """Base class for every error raised by the upload client."""


class InvalidArgument(UploadClientError):
    """A parameter or size violation detected before any I/O."""


class InvalidEndpoint(InvalidArgument):
    """The configured endpoint is not a valid domain or IP address."""


class InvalidBucketName(InvalidArgument):
    """The bucket name does not follow the S3 naming rules."""


class InvalidObjectName(InvalidArgument):
    """The object name is empty or too long."""


class ProtocolViolation(UploadClientError):
    """The server answered with something the protocol does not allow."""


class TransportError(UploadClientError):
    """The request could not be delivered to the server."""


class CredentialsError(UploadClientError):
    """The credential provider failed to produce credentials."""


class ServerError(UploadClientError):
    """Structured error returned by the storage server."""

    def __init__(self, code: str, message: str,
                 status_code: Optional[int] = None,
                 region: Optional[str] = None,
                 bucket_name: Optional[str] = None,
                 object_name: Optional[str] = None,
                 resource: Optional[str] = None,
                 request_id: Optional[str] = None,
                 host_id: Optional[str] = None,
                 bucket_region: Optional[str] = None):
        """Initialize the server error.

        Args:
            code: S3 error code, e.g. ``NoSuchBucket``
            message: Human readable error message
            status_code: HTTP status of the failed response
            region: Corrective region embedded in the error body
            bucket_name: Bucket named by the error body
            object_name: Object key named by the error body
            resource: Resource named by the error body
            request_id: Value of ``x-amz-request-id``
            host_id: Value of ``x-amz-id-2``
            bucket_region: Value of ``x-amz-bucket-region``
        """
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.status_code = status_code
        self.region = region
        self.bucket_name = bucket_name
        self.object_name = object_name
        self.resource = resource
        self.request_id = request_id
        self.host_id = host_id
        self.bucket_region = bucket_region

    def to_dict(self) -> dict:
        """Serialize the error for trace records."""
        return {
            'code': self.code,
            'message': self.message,
            'status_code': self.status_code,
            'region': self.region,
            'bucket_name': self.bucket_name,
            'object_name': self.object_name,
            'resource': self.resource,
            'request_id': self.request_id,
            'host_id': self.host_id,
            'bucket_region': self.bucket_region,
        }

"""
Module for providing credentials to signed requests.
"""
import logging
from typing import Optional, Protocol

import boto3
from botocore.credentials import ReadOnlyCredentials

from .errors import CredentialsError

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    """Source of credentials, consulted before every signed request."""

    def get_credentials(self) -> ReadOnlyCredentials:
        ...


class StaticProvider:
    """Provider returning a fixed key pair."""

    def __init__(self, access_key: str, secret_key: str,
                 session_token: Optional[str] = None):
        self._credentials = ReadOnlyCredentials(access_key, secret_key, session_token)

    def get_credentials(self) -> ReadOnlyCredentials:
        return self._credentials


class Boto3SessionProvider:
    """Provider backed by the boto3 credential chain.

    Environment variables, shared config files, SSO and instance metadata
    are all resolved by boto3. Refreshable credentials (assumed roles,
    instance profiles) are refreshed by botocore when they near expiry.
    """

    def __init__(self, profile_name: Optional[str] = None,
                 session: Optional[boto3.session.Session] = None):
        """Initialize the provider.

        Args:
            profile_name: Optional shared config profile to use
            session: Optional pre-built boto3 session
        """
        self._session = session or boto3.session.Session(profile_name=profile_name)

    def get_credentials(self) -> ReadOnlyCredentials:
        credentials = self._session.get_credentials()
        if credentials is None:
            raise CredentialsError("No credentials found in the boto3 credential chain")
        # frozen credentials cannot change halfway through signing
        return credentials.get_frozen_credentials()

"""AWS credential resolution and RDS auth token signing collaborators."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable

import boto3
from botocore.exceptions import NoCredentialsError

CredentialsProvider = Any


@runtime_checkable
class CredentialResolver(Protocol):
    """Resolves reusable AWS credentials for a region."""

    async def resolve(self, region: str | None) -> CredentialsProvider:
        """Return an opaque credentials provider usable by a :class:`TokenSigner`."""


@runtime_checkable
class TokenSigner(Protocol):
    """Produces a short-lived database auth token."""

    async def sign(
        self,
        endpoint: str,
        region: str | None,
        db_user: str,
        credentials: CredentialsProvider,
    ) -> str:
        """Return a token bound to ``endpoint`` (``host:port``) and ``db_user``."""


class Boto3CredentialResolver:
    """Resolves credentials through the boto3 default provider chain.

    The chain (environment, shared profile files, container and instance
    metadata, web identity) is owned by botocore. The returned value is a
    :class:`boto3.session.Session` bound to the region.
    """

    def __init__(self, *, profile_name: str | None = None) -> None:
        self._profile_name = profile_name

    async def resolve(self, region: str | None) -> boto3.session.Session:
        return await asyncio.to_thread(self._resolve, region)

    def _resolve(self, region: str | None) -> boto3.session.Session:
        session = boto3.session.Session(region_name=region, profile_name=self._profile_name)
        if session.get_credentials() is None:
            raise NoCredentialsError()
        return session


class Boto3TokenSigner:
    """Signs RDS IAM auth tokens with ``rds.generate_db_auth_token``.

    Presigning happens locally, so no request leaves the process.
    """

    async def sign(
        self,
        endpoint: str,
        region: str | None,
        db_user: str,
        credentials: boto3.session.Session,
    ) -> str:
        return await asyncio.to_thread(self._sign, endpoint, region, db_user, credentials)

    def _sign(
        self,
        endpoint: str,
        region: str | None,
        db_user: str,
        session: boto3.session.Session,
    ) -> str:
        host, port = split_endpoint(endpoint)
        region_name = region or session.region_name
        client = session.client("rds", region_name=region_name)
        return client.generate_db_auth_token(
            DBHostname=host,
            Port=port,
            DBUsername=db_user,
            Region=region_name,
        )


def split_endpoint(endpoint: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts; the port is mandatory."""

    host, separator, port = endpoint.rpartition(":")
    if not separator or not host or not port.isdigit():
        raise ValueError(f"endpoint '{endpoint}' must be in host:port form")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


__all__ = [
    "Boto3CredentialResolver",
    "Boto3TokenSigner",
    "CredentialResolver",
    "CredentialsProvider",
    "TokenSigner",
    "split_endpoint",
]

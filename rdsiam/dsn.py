"""Connection string parsing and credential rewriting."""

from __future__ import annotations

import logging
from urllib.parse import unquote, urlsplit

from .models import ConnectionDescriptor, RDSIAMError, Scheme

LOG = logging.getLogger(__name__)

SUPPORTED_SCHEMES = tuple(scheme.value for scheme in Scheme)


class UnsupportedSchemeError(RDSIAMError):
    """Raised when a connection string uses a scheme other than postgres:// or mysql://."""

    def __init__(self, scheme: str) -> None:
        accepted = " and ".join(f"{name}://" for name in SUPPORTED_SCHEMES)
        super().__init__(
            f"RDS IAM authentication is only supported for {accepted} connection strings (got {scheme or 'no'} scheme)"
        )
        self.scheme = scheme


class MalformedConnectionStringError(RDSIAMError):
    """Raised when a connection string cannot be parsed."""


def parse_descriptor(raw: str) -> ConnectionDescriptor:
    """Parse ``raw`` into a :class:`ConnectionDescriptor`.

    The error messages never echo ``raw`` back since it may carry a password.
    """

    scheme_name, separator, _ = raw.partition("://")
    if not separator:
        raise MalformedConnectionStringError("connection string is not in scheme://host form")
    scheme = _scheme_for(scheme_name)
    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError as exc:
        raise MalformedConnectionStringError(f"failed to parse {scheme.value} connection string authority") from exc

    userinfo, has_userinfo, hostinfo = parts.netloc.rpartition("@")
    host, colon, port_text = hostinfo.rpartition(":")
    # No port, or a bracketed IPv6 literal without one. An empty port ("host:") counts as no port.
    if not colon or "]" in port_text:
        host = hostinfo
    if not host:
        raise MalformedConnectionStringError(f"{scheme.value} connection string has no host")

    username: str | None = None
    password: str | None = None
    if has_userinfo:
        raw_user, has_password, raw_password = userinfo.partition(":")
        username = unquote(raw_user)
        if has_password:
            password = unquote(raw_password)

    return ConnectionDescriptor(
        scheme=scheme,
        host=host,
        port=port,
        username=username,
        password=password,
        path=parts.path,
        query=parts.query,
        fragment=parts.fragment,
        authority=hostinfo,
    )


def parse_for_credential_swap(raw: str, configured_user: str | None = None) -> tuple[str, str]:
    """Return ``(endpoint, rewritten)`` with the password stripped from ``raw``.

    A non-empty ``configured_user`` replaces the embedded username.
    """

    scheme_name = raw.partition(":")[0]
    if scheme_name not in SUPPORTED_SCHEMES:
        raise UnsupportedSchemeError(scheme_name)
    rewritten, endpoint = _update_credentials(raw, username=configured_user or None, password=None)
    return endpoint, rewritten


def inject_secret(connection_string: str, secret: str) -> str:
    """Set the password component of ``connection_string`` to ``secret``."""

    try:
        rewritten, _ = _update_credentials(connection_string, username=None, password=secret)
    except MalformedConnectionStringError:
        LOG.warning("Failed to parse connection string for secret injection")
        raise
    return rewritten


def _update_credentials(raw: str, *, username: str | None, password: str | None) -> tuple[str, str]:
    descriptor = parse_descriptor(raw)
    final_username = username if username is not None else (descriptor.username or "")
    if password is not None:
        descriptor = descriptor.with_credentials(final_username, password)
    elif final_username or descriptor.username is not None:
        descriptor = descriptor.with_credentials(final_username, None)
    return descriptor.to_string(), descriptor.endpoint


def _scheme_for(name: str) -> Scheme:
    try:
        return Scheme(name)
    except ValueError:
        raise UnsupportedSchemeError(name) from None


__all__ = [
    "MalformedConnectionStringError",
    "SUPPORTED_SCHEMES",
    "UnsupportedSchemeError",
    "inject_secret",
    "parse_descriptor",
    "parse_for_credential_swap",
]

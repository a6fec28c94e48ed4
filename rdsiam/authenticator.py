"""Self-refreshing AWS RDS IAM credential provider."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .config import RDSIAMConfig
from .credentials import Boto3CredentialResolver, Boto3TokenSigner, CredentialResolver, TokenSigner
from .dsn import MalformedConnectionStringError, inject_secret, parse_descriptor, parse_for_credential_swap
from .models import RDSIAMError

LOG = logging.getLogger(__name__)


class CredentialResolutionError(RDSIAMError):
    """Raised when AWS credentials cannot be resolved for the configured region."""


class TokenSigningError(RDSIAMError):
    """Raised when an RDS auth token cannot be generated."""


class SecretInjectionError(RDSIAMError):
    """Raised when the token cannot be written into the base connection string."""


@dataclass(frozen=True, slots=True)
class _TokenState:
    token: str
    refreshed_at: float


class RDSIAMAuthenticator:
    """Owns the cached token for one database target and refreshes it when stale.

    There is no background timer: whoever asks for a connection string after
    the refresh interval has elapsed pays for the refresh. Concurrent callers
    may each refresh; the last one to finish wins, which is harmless because
    any token is usable within its validity window.
    """

    def __init__(
        self,
        config: RDSIAMConfig,
        endpoint: str,
        base_connection_string: str,
        *,
        db_user: str | None = None,
        resolver: CredentialResolver | None = None,
        signer: TokenSigner | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._endpoint = endpoint
        self._base_connection_string = base_connection_string
        self._db_user = db_user or config.db_user or ""
        self._resolver = resolver or Boto3CredentialResolver()
        self._signer = signer or Boto3TokenSigner()
        self._clock = clock
        self._state: _TokenState | None = None

    @property
    def config(self) -> RDSIAMConfig:
        return self._config

    @property
    def endpoint(self) -> str:
        """The ``host:port`` the token is signed for."""

        return self._endpoint

    @property
    def db_user(self) -> str:
        return self._db_user

    @property
    def refresh_interval(self) -> float:
        """Staleness window in seconds."""

        return self._config.token_refresh_interval.total_seconds()

    @property
    def last_refresh(self) -> float | None:
        """Clock reading of the last successful refresh, ``None`` before the first."""

        state = self._state
        return state.refreshed_at if state else None

    def is_stale(self) -> bool:
        return self._is_stale(self._state)

    def _is_stale(self, state: _TokenState | None) -> bool:
        if state is None:
            return True
        return self._clock() - state.refreshed_at > self.refresh_interval

    async def refresh(self) -> None:
        """Fetch a new token; on failure the previous token stays in place."""

        await self._refresh()

    async def _refresh(self) -> _TokenState:
        region = self._config.region
        try:
            credentials = await self._resolver.resolve(region)
        except Exception as exc:
            LOG.warning("Failed to resolve AWS credentials for region %s: %s", region or "<default>", exc)
            raise CredentialResolutionError(
                f"failed to resolve AWS credentials for region '{region or '<default>'}': {exc}"
            ) from exc

        try:
            token = await self._signer.sign(self._endpoint, region, self._db_user, credentials)
        except Exception as exc:
            LOG.warning("Failed to build RDS IAM auth token for %s: %s", self._endpoint, exc)
            raise TokenSigningError(f"failed to build RDS IAM auth token for '{self._endpoint}': {exc}") from exc

        state = _TokenState(token=token, refreshed_at=self._clock())
        self._state = state
        LOG.debug("Refreshed RDS IAM auth token for %s as %s", self._endpoint, self._db_user)
        return state

    async def current_token(self) -> str:
        """Return the cached token, refreshing it first when stale."""

        state = self._state
        if self._is_stale(state):
            state = await self._refresh()
        return state.token

    async def get_current_connection_string(self) -> str:
        """Return the base connection string with a usable token as its password."""

        token = await self.current_token()
        try:
            return inject_secret(self._base_connection_string, token)
        except MalformedConnectionStringError as exc:
            raise SecretInjectionError(
                f"failed to inject RDS IAM token into connection string for '{self._endpoint}'"
            ) from exc


async def build(
    connection_string: str,
    config: RDSIAMConfig,
    *,
    resolver: CredentialResolver | None = None,
    signer: TokenSigner | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> tuple[str, RDSIAMAuthenticator | None]:
    """Swap the password in ``connection_string`` for an RDS IAM token.

    Returns the rewritten connection string and the authenticator that keeps
    it fresh. When IAM authentication is disabled the connection string is
    returned unchanged together with ``None``, and no AWS call is made.
    """

    if not config.enabled:
        return connection_string, None

    endpoint, base_connection_string = parse_for_credential_swap(connection_string, config.db_user)
    descriptor = parse_descriptor(base_connection_string)
    if not descriptor.username:
        raise MalformedConnectionStringError(
            "RDS IAM authentication needs a database user: set dbuser or put one in the connection string"
        )
    if descriptor.port is None:
        endpoint = f"{descriptor.host}:{descriptor.scheme.default_port}"

    authenticator = RDSIAMAuthenticator(
        config,
        endpoint,
        base_connection_string,
        db_user=descriptor.username,
        resolver=resolver,
        signer=signer,
        clock=clock,
    )
    rewritten = await authenticator.get_current_connection_string()
    LOG.info("AWS RDS IAM authentication enabled for SQL database at %s", endpoint)
    return rewritten, authenticator


__all__ = [
    "CredentialResolutionError",
    "RDSIAMAuthenticator",
    "SecretInjectionError",
    "TokenSigningError",
    "build",
]

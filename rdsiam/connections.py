"""Connectors that inject a fresh IAM token into every new physical connection."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping

import aiomysql
import asyncpg

from .authenticator import RDSIAMAuthenticator, build
from .config import RDSIAMConfig
from .credentials import CredentialResolver, TokenSigner
from .dsn import parse_descriptor
from .models import Scheme

LOG = logging.getLogger(__name__)

DriverConnect = Callable[..., Awaitable[Any]]


async def connect_asyncpg(dsn: str, **kwargs: Any) -> asyncpg.Connection:
    return await asyncpg.connect(dsn, **kwargs)


async def connect_aiomysql(dsn: str, **kwargs: Any) -> aiomysql.Connection:
    """Open a MySQL connection; aiomysql takes keyword arguments rather than a DSN."""

    descriptor = parse_descriptor(dsn)
    kwargs.setdefault("host", descriptor.host.strip("[]"))
    kwargs.setdefault("port", descriptor.port or Scheme.MYSQL.default_port)
    if descriptor.username is not None:
        kwargs.setdefault("user", descriptor.username)
    if descriptor.password is not None:
        kwargs.setdefault("password", descriptor.password)
    if descriptor.database:
        kwargs.setdefault("db", descriptor.database)
    return await aiomysql.connect(**kwargs)


DRIVERS: Mapping[str, DriverConnect] = {
    "postgres": connect_asyncpg,
    "postgresql": connect_asyncpg,
    "pgx": connect_asyncpg,
    "mysql": connect_aiomysql,
}


class RDSIAMConnector:
    """Opens physical connections with a connection string fetched just before dialing.

    Nothing is cached between opens, so a connection created long after the
    pool (scale-up, replacement of an evicted connection) still gets an
    unexpired token. Instances are also usable as asyncpg's
    ``create_pool(connect=...)`` hook.
    """

    def __init__(self, authenticator: RDSIAMAuthenticator, driver: DriverConnect) -> None:
        self._authenticator = authenticator
        self._driver = driver

    @property
    def authenticator(self) -> RDSIAMAuthenticator:
        return self._authenticator

    @property
    def driver(self) -> DriverConnect:
        return self._driver

    async def connect(self, **kwargs: Any) -> Any:
        """Refresh the token if needed, then open a connection through the driver."""

        dsn = await self._authenticator.get_current_connection_string()
        LOG.debug("Opening connection to %s with RDS IAM credentials", self._authenticator.endpoint)
        return await self._driver(dsn, **kwargs)

    async def __call__(self, *_stale_dsn: Any, **kwargs: Any) -> Any:
        # The pool hands over the DSN it was created with; it may hold an expired token.
        kwargs.pop("dsn", None)
        return await self.connect(**kwargs)


def create_connector(driver_name: str, authenticator: RDSIAMAuthenticator) -> RDSIAMConnector:
    """Bind ``authenticator`` to the driver registered under ``driver_name``."""

    try:
        driver = DRIVERS[driver_name.lower()]
    except KeyError:
        raise ValueError(
            f"Unsupported driver '{driver_name}'; expected one of: {', '.join(sorted(DRIVERS))}."
        ) from None
    return RDSIAMConnector(authenticator, driver)


async def create_pool(
    connection_string: str,
    config: RDSIAMConfig,
    *,
    resolver: CredentialResolver | None = None,
    signer: TokenSigner | None = None,
    **pool_kwargs: Any,
) -> asyncpg.Pool:
    """Create an asyncpg pool whose new connections always carry a fresh token."""

    if config.enabled and connection_string.partition(":")[0] == Scheme.MYSQL.value:
        raise ValueError("create_pool only supports postgres:// targets; use create_connector for mysql://")
    rewritten, authenticator = await build(connection_string, config, resolver=resolver, signer=signer)
    if authenticator is None:
        return await asyncpg.create_pool(connection_string, **pool_kwargs)
    connector = create_connector(Scheme.POSTGRES.value, authenticator)
    return await asyncpg.create_pool(rewritten, connect=connector, **pool_kwargs)


__all__ = [
    "DRIVERS",
    "DriverConnect",
    "RDSIAMConnector",
    "connect_aiomysql",
    "connect_asyncpg",
    "create_connector",
    "create_pool",
]

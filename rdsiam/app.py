"""Command line check for RDS IAM database connectivity."""

from __future__ import annotations

import argparse
import asyncio
import inspect
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

import aiomysql
import asyncpg
from pydantic import ValidationError

from .authenticator import build
from .config import CONFIG_FILE, StorageConfig, load_config
from .connections import DRIVERS, create_connector
from .models import RDSIAMError

LOG = logging.getLogger(__name__)


async def check_connection(config: StorageConfig) -> None:
    """Open and close one physical connection using the configured target."""

    connection_string = config.sql.connection
    if not connection_string:
        raise ValueError("No SQL connection string configured (set sql.connection or RDSIAM_SQL_CONNECTION).")
    driver_name = connection_string.partition(":")[0].lower()
    rewritten, authenticator = await build(connection_string, config.sql.rdsiam)
    if authenticator is None:
        try:
            driver = DRIVERS[driver_name]
        except KeyError:
            raise ValueError(f"Unsupported driver '{driver_name}'.") from None
        conn = await driver(rewritten)
    else:
        conn = await create_connector(driver_name, authenticator).connect()
    await _close(conn)
    LOG.info("Connection check succeeded")


async def _close(conn: Any) -> None:
    result = conn.close()
    if inspect.isawaitable(result):
        await result


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rdsiam",
        description="Open one database connection using AWS RDS IAM authentication.",
    )
    parser.add_argument("--config", type=Path, default=CONFIG_FILE, help=f"Config file (default: {CONFIG_FILE})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the connection check; returns the process exit status."""

    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        config = load_config(args.config)
        asyncio.run(check_connection(config))
    except (RDSIAMError, ValidationError, ValueError) as exc:
        LOG.error("%s", exc)
        return 1
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError, aiomysql.MySQLError) as exc:
        LOG.error("Connection check failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

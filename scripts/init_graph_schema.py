"""Create the ownership graph's constraints and indexes, or run versioned migrations.

Usage:
  python scripts/init_graph_schema.py                  # idempotent bootstrap
  python scripts/init_graph_schema.py --migrate        # apply pending migrations
  python scripts/init_graph_schema.py --rollback-to 1  # roll back to version 1
"""

from __future__ import annotations

import argparse
import asyncio

from ownergraph.config import get_settings
from ownergraph.graph_db.connection import Neo4jConnection
from ownergraph.graph_db.schema import (
    current_version,
    init_schema,
    migrate_down,
    migrate_up,
    schema_statements,
)
from ownergraph.utils.logging import setup_logging


async def main(args: argparse.Namespace) -> None:
    setup_logging(log_level="INFO", log_format="console")

    conn = Neo4jConnection(get_settings())
    await conn.connect()

    try:
        if args.rollback_to is not None:
            rolled_back = await migrate_down(conn, args.rollback_to)
            print(f"Rolled back migrations {rolled_back}; now at version {await current_version(conn)}.")
        elif args.migrate:
            applied = await migrate_up(conn)
            print(f"Applied migrations {applied}; now at version {await current_version(conn)}.")
        else:
            applied = await init_schema(conn)
            print(f"Applied {applied} of {len(schema_statements())} schema statements.")
    finally:
        await conn.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialize or migrate the Neo4j schema")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--migrate", action="store_true", help="Apply pending migrations")
    group.add_argument("--rollback-to", type=int, default=None, help="Roll back to this version")
    asyncio.run(main(parser.parse_args()))

"""Delete all nodes and relationships in the configured Neo4j database."""

from __future__ import annotations

import argparse
import asyncio

from ownergraph.config import get_settings
from ownergraph.graph_db.connection import Neo4jConnection
from ownergraph.graph_db.store import GraphStore
from ownergraph.utils.logging import setup_logging


async def main(confirmed: bool) -> None:
    setup_logging(log_level="INFO", log_format="console")

    if not confirmed:
        print("Refusing to clear the graph without --yes.")
        return

    settings = get_settings()
    conn = Neo4jConnection(settings)
    await conn.connect()

    try:
        await GraphStore(conn).clear_all()
        print(f"All nodes and relationships deleted from {settings.NEO4J_DATABASE}.")
    finally:
        await conn.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Delete every node and relationship")
    parser.add_argument("--yes", action="store_true", help="Confirm the deletion")
    asyncio.run(main(parser.parse_args().yes))

"""Scan a GitHub organization's CODEOWNERS files and optionally load them into Neo4j.

Usage:
  # Token and organization from the environment (GITHUB_TOKEN, GITHUB_ORG)
  python scripts/scan_org.py

  # Explicit organization, limits and JSON output
  python scripts/scan_org.py --org my-org --max-repos 200 --output scan.json

  # Also write the ownership graph to Neo4j
  python scripts/scan_org.py --org my-org --persist
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from pydantic import ValidationError

from ownergraph.config import get_settings
from ownergraph.graph_db.connection import Neo4jConnection
from ownergraph.graph_db.store import GraphStore
from ownergraph.services.scan_service import OrgGraphWriter, ScanResult, ScanService
from ownergraph.utils.exceptions import OwnerGraphError
from ownergraph.utils.logging import setup_logging


def print_summary(result: ScanResult) -> None:
    summary = result.summary
    if summary is None:
        return
    print(f"=== Scan Summary: {result.organization} ===")
    print(f"Repositories:          {summary.total_repos}")
    print(f"With CODEOWNERS:       {summary.repos_with_codeowners}")
    print(f"Teams:                 {summary.total_teams}")
    print(f"Unique owners:         {len(summary.unique_owners)}")
    print(f"API calls used:        {summary.api_calls_used}")
    if summary.truncated:
        print("Warning: the round-trip limit was reached before every page was read.")
    if result.output_file:
        print(f"Saved to:              {result.output_file}")
    if result.graph_report is not None:
        report = result.graph_report
        print(f"Graph operations:      {report.operations_applied}")
        print(f"Failed batches:        {report.failed_batches}/{report.total_batches}")


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    setup_logging(log_level=settings.LOG_LEVEL, log_format="console")

    try:
        config = settings.scan_config(
            token=args.token,
            organization=args.org,
            max_repos=args.max_repos,
            max_teams=args.max_teams,
            output_file=args.output,
        )
    except ValidationError as exc:
        print(f"Invalid scan configuration:\n{exc}", file=sys.stderr)
        return 2

    conn: Neo4jConnection | None = None
    writer = None
    if args.persist:
        conn = Neo4jConnection(settings)
        try:
            await conn.connect()
        except OwnerGraphError as exc:
            print(f"Neo4j unavailable: {exc}", file=sys.stderr)
            return 1
        writer = OrgGraphWriter(
            GraphStore(conn),
            batch_size=settings.BATCH_SIZE,
            max_concurrency=settings.MAX_CONCURRENT_BATCHES,
        )

    try:
        result = await ScanService(settings, graph_writer=writer).scan(config, persist=args.persist)
    finally:
        if conn is not None:
            await conn.close()

    print_summary(result)
    if not result.success:
        error = result.error or {}
        print(f"Scan failed: [{error.get('code')}] {error.get('message')}", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Scan a GitHub organization's CODEOWNERS")
    parser.add_argument("--org", default=None, help="Organization login (default: GITHUB_ORG)")
    parser.add_argument("--token", default=None, help="GitHub token (default: GITHUB_TOKEN)")
    parser.add_argument("--max-repos", type=int, default=None, help="0 = unlimited")
    parser.add_argument("--max-teams", type=int, default=None, help="0 = unlimited")
    parser.add_argument("--output", default=None, help="Write the scan result as JSON")
    parser.add_argument("--persist", action="store_true", help="Write the ownership graph to Neo4j")
    sys.exit(asyncio.run(run(parser.parse_args())))


if __name__ == "__main__":
    main()

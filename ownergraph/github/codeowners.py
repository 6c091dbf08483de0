"""CODEOWNERS parsing and owner classification. Pure functions, no I/O."""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from ownergraph.github.models import CodeownersEntry, Repository


def parse_codeowners(content: str) -> list[CodeownersEntry]:
    """Parse CODEOWNERS text into entries, preserving file order.

    Blank lines and ``#`` comments are skipped, as are lines with a pattern
    but no owner.
    """
    entries: list[CodeownersEntry] = []
    if not content:
        return entries

    for line_no, line in enumerate(content.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        parts = stripped.split()
        if len(parts) < 2:
            continue

        entries.append(CodeownersEntry(pattern=parts[0], owners=parts[1:], line=line_no))

    return entries


def extract_unique_owners(entries: Iterable[CodeownersEntry]) -> list[str]:
    """Every owner named by ``entries``, each exactly once (first-seen order)."""
    seen: dict[str, None] = {}
    for entry in entries:
        for owner in entry.owners:
            seen.setdefault(owner, None)
    return list(seen)


def is_team_owner(owner: str) -> bool:
    """``@org/team`` names a team; ``@user`` and email owners do not."""
    return owner.startswith("@") and "/" in owner


def team_slug(owner: str) -> str:
    cleaned = owner.removeprefix("@")
    parts = cleaned.split("/")
    if len(parts) >= 2:
        return parts[1]
    return cleaned


def user_login(owner: str) -> str:
    return owner.removeprefix("@")


def pattern_coverage(repos: Iterable[Repository]) -> dict[str, int]:
    """How many times each pattern appears across the repositories' CODEOWNERS files."""
    counts: Counter[str] = Counter()
    for repo in repos:
        if not repo.codeowners_content:
            continue
        for entry in parse_codeowners(repo.codeowners_content):
            counts[entry.pattern] += 1
    return dict(counts)

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

_QUERY_FILE = re.compile(r"^query(\d*)\.sql$")

GENERIC_QUERY_NUMBER = -1


@dataclass(frozen=True)
class QueryFile:
    """A canned read-only SQL report: `queryN.sql`, or the generic `query.sql`."""

    name: str
    number: int
    path: Path

    @property
    def label(self) -> str:
        if self.number == GENERIC_QUERY_NUMBER:
            return f"Query (generic) ({self.name})"
        return f"Query {self.number} ({self.name})"

    def description(self) -> str:
        description, _ = split_query_text(self.path.read_text(encoding="utf-8"))
        return " ".join(description)


@dataclass(frozen=True)
class QueryResult:
    description: list[str]
    columns: list[str]
    rows: list[tuple[Any, ...]]


def discover_query_files(query_dir: Path) -> list[QueryFile]:
    """Numbered query files under `query_dir`, sorted by number."""
    if not query_dir.is_dir():
        return []

    found: list[QueryFile] = []
    for path in query_dir.rglob("*.sql"):
        match = _QUERY_FILE.match(path.name)
        if not match:
            continue
        number = int(match.group(1)) if match.group(1) else GENERIC_QUERY_NUMBER
        found.append(QueryFile(name=path.name, number=number, path=path))

    return sorted(found, key=lambda q: (q.number, q.name))


def split_query_text(content: str) -> tuple[list[str], str]:
    """Leading `--` comment lines are the description; the rest is the SQL."""
    description: list[str] = []
    lines = content.splitlines()
    index = 0
    while index < len(lines) and lines[index].strip().startswith("--"):
        description.append(lines[index].strip()[2:].strip())
        index += 1
    return description, "\n".join(lines[index:]).strip()


async def run_query_file(engine: AsyncEngine, query_file: QueryFile) -> QueryResult:
    description, sql = split_query_text(query_file.path.read_text(encoding="utf-8"))
    if not sql:
        raise ValueError(f"Query file {query_file.name} is empty")

    async with engine.connect() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text("SET TRANSACTION READ ONLY"))
        result = await conn.execute(text(sql))
        columns = list(result.keys())
        rows = [tuple(row) for row in result.all()]
        await conn.rollback()

    return QueryResult(description=description, columns=columns, rows=rows)

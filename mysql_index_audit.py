"""
MySQL index audit tool.

Reads catalog metadata from `information_schema` and reports index design
problems: indexes covered by a wider index, foreign-key-like columns without
any index, and composite indexes whose column order does not follow
decreasing selectivity. Invoke as
`python mysql_index_audit.py --adapter mysql --user ... --password ... --host ...`.

The tool is strictly read-only. It names the problems it finds and never
produces or executes DDL.
"""
from __future__ import annotations

import argparse
import csv
import json
import os
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Engine, Row
from sqlalchemy.exc import SQLAlchemyError


# --------------------------------------------------------------------------------------
# Configuration
# --------------------------------------------------------------------------------------
CONFIG: Dict[str, Any] = {
    "SOURCE": {
        "drivername": "mysql+mysqlconnector",
        # Catalog queries only ever touch information_schema.
        "database": "information_schema",
        "default_port": 3306,
    },
    "CONNECTION": {
        "POOL_RECYCLE_SECONDS": 180,
        "POOL_SIZE": 1,
        "MAX_OVERFLOW": 1,
        # Server default is 1024 bytes, which truncates GROUP_CONCAT on wide indexes.
        "GROUP_CONCAT_MAX_LEN": 1048576,
    },
    "SCOPE": {
        "INCLUDE_SCHEMAS": None,  # regex or None
        "EXCLUDE_SCHEMAS": None,
        "INCLUDE_TABLES": None,
        "EXCLUDE_TABLES": None,
        "SKIP_SYSTEM_SCHEMAS": True,
        "SYSTEM_SCHEMAS": {"information_schema", "mysql", "performance_schema", "sys"},
    },
    # Naming heuristic: a column is foreign-key-like when this marker occurs anywhere in its name.
    "FOREIGN_KEY_MARKER": "_id",
    "PRIMARY_INDEX_NAME": "PRIMARY",
    "OUTPUT": {
        "BASE_PATH": None,  # directory for artifacts, or None to only print
    },
}


# --------------------------------------------------------------------------------------
# Utility helpers
# --------------------------------------------------------------------------------------
def qualifies(scope_regex: Optional[str], value: str) -> bool:
    """Helper to evaluate regex filters while treating None as pass-through."""
    if scope_regex is None:
        return True
    return re.search(scope_regex, value) is not None


def in_scope(schema: str, table: str) -> bool:
    scope = CONFIG["SCOPE"]
    if scope.get("SKIP_SYSTEM_SCHEMAS") and schema.lower() in scope["SYSTEM_SCHEMAS"]:
        return False
    if not qualifies(scope.get("INCLUDE_SCHEMAS"), schema):
        return False
    if not qualifies(scope.get("INCLUDE_TABLES"), table):
        return False
    if scope.get("EXCLUDE_SCHEMAS") and re.search(scope["EXCLUDE_SCHEMAS"], schema):
        return False
    if scope.get("EXCLUDE_TABLES") and re.search(scope["EXCLUDE_TABLES"], table):
        return False
    return True


def looks_like_foreign_key(column_name: str) -> bool:
    """Naming-convention test for foreign keys.

    A plain substring match: `customer_id`, `legacy_id_card` and `old_identifier` all
    qualify, `id`, `id_card` and `customerid` do not. False positives and negatives are
    expected and are not errors.
    """
    return CONFIG["FOREIGN_KEY_MARKER"] in column_name


def parse_cardinality(raw: Optional[str]) -> Optional[Tuple[int, ...]]:
    """Parse a comma separated cardinality list as produced by GROUP_CONCAT.

    Returns None when statistics are missing or any entry is not an integer.
    """
    if raw is None or raw == "":
        return None
    values: List[int] = []
    for part in str(_as_text(raw)).split(","):
        try:
            values.append(int(part))
        except ValueError:
            return None
    return tuple(values)


def _as_text(value: Any) -> Optional[str]:
    # mysql-connector can hand back GROUP_CONCAT results as bytearray.
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    return value


def _format_columns(columns: Sequence[str]) -> str:
    return "(" + ", ".join(columns) + ")"


# --------------------------------------------------------------------------------------
# Schema model
# --------------------------------------------------------------------------------------
class SchemaContractError(ValueError):
    """The snapshot breaks a structural invariant; analysis cannot be trusted."""


@dataclass(frozen=True)
class Column:
    db_name: str
    table_name: str
    name: str
    type: str
    nullable: bool

    def __str__(self) -> str:
        return f"{self.db_name}.{self.table_name}.{self.name}"


@dataclass(frozen=True)
class Index:
    db_name: str
    table_name: str
    name: str
    is_unique: bool
    columns: Tuple[str, ...]
    cardinality: Optional[Tuple[int, ...]] = None

    def __post_init__(self) -> None:
        if not self.columns:
            raise SchemaContractError(f"Index {self} has no columns")
        # Accept lists from callers but store tuples so the index stays hashable.
        object.__setattr__(self, "columns", tuple(self.columns))
        if self.cardinality is not None:
            object.__setattr__(self, "cardinality", tuple(self.cardinality))

    def __str__(self) -> str:
        return f"{self.db_name}.{self.table_name}.{self.name}"

    @property
    def is_primary(self) -> bool:
        return self.name == CONFIG["PRIMARY_INDEX_NAME"]

    @property
    def has_complete_cardinality(self) -> bool:
        return self.cardinality is not None and len(self.cardinality) == len(self.columns)


@dataclass
class Table:
    db_name: str
    name: str
    columns: List[Column] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.db_name}.{self.name}"

    @property
    def primary_index(self) -> Optional[Index]:
        for index in self.indexes:
            if index.is_primary:
                return index
        return None


@dataclass
class Database:
    name: str
    tables: List[Table] = field(default_factory=list)

    def __str__(self) -> str:
        return self.name

    def get_table(self, name: str) -> Optional[Table]:
        for table in self.tables:
            if table.name == name:
                return table
        return None


@dataclass
class Schema:
    """Snapshot of catalog metadata. Database names are unique, and so are table names per database."""

    databases: List[Database] = field(default_factory=list)

    def get_database(self, name: str) -> Optional[Database]:
        for db in self.databases:
            if db.name == name:
                return db
        return None

    def iter_tables(self) -> Iterable[Table]:
        for db in self.databases:
            yield from db.tables

    def validate(self) -> None:
        _ensure_unique((db.name for db in self.databases), "database", "snapshot")
        for db in self.databases:
            _ensure_unique((t.name for t in db.tables), "table", str(db))
            for table in db.tables:
                _ensure_unique((c.name for c in table.columns), "column", str(table))
                _ensure_unique((i.name for i in table.indexes), "index", str(table))


def _ensure_unique(names: Iterable[str], kind: str, owner: str) -> None:
    seen = set()
    for name in names:
        if name in seen:
            raise SchemaContractError(f"Duplicate {kind} {name!r} in {owner}")
        seen.add(name)


@dataclass(frozen=True)
class NotGoodItem:
    name: str
    detail: Optional[str] = None

    def __str__(self) -> str:
        if self.detail:
            return f"{self.name}: {self.detail}"
        return self.name


# --------------------------------------------------------------------------------------
# MySQL client
# --------------------------------------------------------------------------------------
def build_url(user: str, password: str, host: str) -> URL:
    """Build a SQLAlchemy URL for the catalog database; `host` may carry a `:port` suffix."""
    source = CONFIG["SOURCE"]
    hostname, _, port = host.partition(":")
    return URL.create(
        source["drivername"],
        username=user,
        password=password,
        host=hostname or "localhost",
        port=int(port) if port else source["default_port"],
        database=source["database"],
    )


def configure_session(dbapi_connection: Any, connection_record: Any) -> None:
    """Raise the GROUP_CONCAT limit on every new pooled connection."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute(f"SET SESSION group_concat_max_len = {int(CONFIG['CONNECTION']['GROUP_CONCAT_MAX_LEN'])}")
    finally:
        cursor.close()


class MySqlClient:
    """Thin wrapper around SQLAlchemy for catalog reads with a small, short-lived pool."""

    def __init__(self, url: Any) -> None:
        conn_cfg = CONFIG["CONNECTION"]
        self.engine: Engine = create_engine(
            url,
            pool_recycle=conn_cfg["POOL_RECYCLE_SECONDS"],
            pool_size=conn_cfg["POOL_SIZE"],
            max_overflow=conn_cfg["MAX_OVERFLOW"],
        )
        event.listen(self.engine, "connect", configure_session)

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Row]:
        with self.engine.connect() as conn:
            return list(conn.execute(text(sql), params or {}).fetchall())

    def close(self) -> None:
        self.engine.dispose()


# --------------------------------------------------------------------------------------
# Metadata reader
# --------------------------------------------------------------------------------------
class MetadataReader:
    """Loads columns and indexes from information_schema into a Schema snapshot."""

    COLUMNS_SQL = """
    SELECT table_schema, table_name, column_name, column_type, is_nullable
    FROM information_schema.columns
    ORDER BY table_schema, table_name, ordinal_position
    """

    # Columns and cardinality are concatenated in key order so one row describes one index.
    INDEXES_SQL = """
    SELECT
        table_schema,
        table_name,
        index_name,
        non_unique,
        GROUP_CONCAT(column_name ORDER BY seq_in_index SEPARATOR ','),
        GROUP_CONCAT(cardinality ORDER BY seq_in_index SEPARATOR ',')
    FROM information_schema.statistics
    GROUP BY table_schema, table_name, index_name, non_unique
    ORDER BY table_schema, table_name, non_unique, index_name
    """

    def __init__(self, client: MySqlClient) -> None:
        self.client = client

    def list_columns(self) -> List[Tuple[Any, ...]]:
        return [tuple(r) for r in self.client.execute(self.COLUMNS_SQL)]

    def list_indexes(self) -> List[Tuple[Any, ...]]:
        return [tuple(r) for r in self.client.execute(self.INDEXES_SQL)]

    def load_schema(self) -> Schema:
        return build_schema(self.list_columns(), self.list_indexes(), in_scope)


def build_schema(
    column_rows: Iterable[Sequence[Any]],
    index_rows: Iterable[Sequence[Any]],
    scope: Optional[Callable[[str, str], bool]] = None,
) -> Schema:
    """Assemble a Schema from raw catalog rows.

    Column rows are `(schema, table, column, column_type, is_nullable)`; index
    rows are `(schema, table, index, non_unique, columns_csv, cardinality_csv)`.
    Databases and tables are created on first sight, in row order. Indexes
    built only from expressions (MySQL functional key parts) have no column
    names and are left out of the snapshot.
    """
    schema = Schema()
    current: Optional[Table] = None

    def table_for(db_name: str, table_name: str) -> Table:
        nonlocal current
        # Catalog rows arrive grouped by table, so lookups only happen when the table changes.
        if current is not None and current.db_name == db_name and current.name == table_name:
            return current
        db = schema.get_database(db_name)
        if db is None:
            db = Database(name=db_name)
            schema.databases.append(db)
        table = db.get_table(table_name)
        if table is None:
            table = Table(db_name=db_name, name=table_name)
            db.tables.append(table)
        current = table
        return table

    for db_name, table_name, column_name, column_type, is_nullable in column_rows:
        if scope is not None and not scope(db_name, table_name):
            continue
        table_for(db_name, table_name).columns.append(
            Column(
                db_name=db_name,
                table_name=table_name,
                name=column_name,
                type=column_type,
                nullable=str(is_nullable).upper() == "YES",
            )
        )

    for db_name, table_name, index_name, non_unique, columns_csv, cardinality_csv in index_rows:
        if scope is not None and not scope(db_name, table_name):
            continue
        columns = tuple(c for c in (_as_text(columns_csv) or "").split(",") if c)
        if not columns:
            print(f"[WARN] Skipping index {db_name}.{table_name}.{index_name}: no named columns (expression index)")
            continue
        table_for(db_name, table_name).indexes.append(
            Index(
                db_name=db_name,
                table_name=table_name,
                name=index_name,
                is_unique=int(non_unique) == 0,
                columns=columns,
                cardinality=parse_cardinality(_as_text(cardinality_csv)),
            )
        )

    return schema


# --------------------------------------------------------------------------------------
# Detectors
# --------------------------------------------------------------------------------------
def sort_indexes_by_width(indexes: Iterable[Index]) -> List[Index]:
    """Widest index first; ties by name so the order does not depend on catalog enumeration."""
    return sorted(indexes, key=lambda i: (-len(i.columns), i.name))


@dataclass
class Overwrap:
    anchor: Index
    covered: List[Index] = field(default_factory=list)

    @property
    def is_redundant(self) -> bool:
        return bool(self.covered)


class OverwrapDetector:
    """Groups indexes under the first wider index whose column set contains them."""

    def __init__(self, table: Table) -> None:
        self.table = table

    def detect(self) -> List[Overwrap]:
        groups: List[Overwrap] = []
        primary = self.table.primary_index
        for index in sort_indexes_by_width(self.table.indexes):
            # The primary key is neither reported nor used as an anchor.
            if index is primary:
                continue
            for group in groups:
                if set(index.columns).issubset(group.anchor.columns):
                    group.covered.append(index)
                    break
            else:
                groups.append(Overwrap(anchor=index))
        return groups


@dataclass
class ForeignKeyCoverage:
    foreign_indexes: List[Index] = field(default_factory=list)
    unindexed_columns: List[Column] = field(default_factory=list)


class ForeignKeyDetector:
    """Finds foreign-key-like columns that do not appear in any index."""

    def __init__(self, table: Table) -> None:
        self.table = table

    def detect(self) -> ForeignKeyCoverage:
        indexed = set()
        foreign_indexes: List[Index] = []
        for index in sort_indexes_by_width(self.table.indexes):
            fk_columns = [c for c in index.columns if looks_like_foreign_key(c)]
            if fk_columns:
                indexed.update(fk_columns)
                foreign_indexes.append(index)

        unindexed = [
            col for col in self.table.columns
            if looks_like_foreign_key(col.name) and col.name not in indexed
        ]
        return ForeignKeyCoverage(foreign_indexes=foreign_indexes, unindexed_columns=unindexed)


def cardinality_deltas(values: Sequence[int]) -> List[int]:
    """Distinct values contributed by each key column.

    Cumulative cardinality should never shrink as the prefix grows; when stale
    statistics say otherwise the step is clamped to zero.
    """
    deltas: List[int] = []
    previous = 0
    for position, value in enumerate(values):
        deltas.append(value if position == 0 else max(value - previous, 0))
        previous = value
    return deltas


class CardinalityOrderDetector:
    """Flags composite indexes where a later column adds more distinct values than the one before it."""

    def __init__(self, table: Table) -> None:
        self.table = table

    @staticmethod
    def is_checkable(index: Index) -> bool:
        return index.has_complete_cardinality and len(index.cardinality) > 1

    @staticmethod
    def has_bad_order(values: Sequence[int]) -> bool:
        deltas = cardinality_deltas(values)
        for k in range(1, len(deltas)):
            if deltas[k - 1] < deltas[k]:
                return True
        return False

    def detect(self) -> List[Index]:
        return [
            index for index in self.table.indexes
            if self.is_checkable(index) and self.has_bad_order(index.cardinality)
        ]

    def incomplete(self) -> List[Index]:
        """Indexes whose statistics are present but do not match the key length."""
        return [
            index for index in self.table.indexes
            if index.cardinality is not None and len(index.cardinality) != len(index.columns)
        ]


# --------------------------------------------------------------------------------------
# Analysis engine
# --------------------------------------------------------------------------------------
@dataclass
class TableAnalysis:
    table: Table
    overwraps: List[Overwrap]
    foreign_keys: ForeignKeyCoverage
    bad_cardinality_indexes: List[Index]

    @property
    def covered_count(self) -> int:
        return sum(len(o.covered) for o in self.overwraps if o.is_redundant)


@dataclass
class AnalysisResult:
    tables: List[TableAnalysis] = field(default_factory=list)


class IndexAnalyzer:
    """Runs every detector against every table of a snapshot."""

    def __init__(self, schema: Schema) -> None:
        self.schema = schema

    def analyze_table(self, table: Table) -> TableAnalysis:
        return TableAnalysis(
            table=table,
            overwraps=OverwrapDetector(table).detect(),
            foreign_keys=ForeignKeyDetector(table).detect(),
            bad_cardinality_indexes=CardinalityOrderDetector(table).detect(),
        )

    def analyze(self) -> AnalysisResult:
        self.schema.validate()
        return AnalysisResult(tables=[self.analyze_table(t) for t in self.schema.iter_tables()])


# --------------------------------------------------------------------------------------
# Report assembler
# --------------------------------------------------------------------------------------
class ReportAssembler:
    """Flattens detector output into NotGoodItems: overwrap, then foreign key, then cardinality order."""

    def __init__(self, result: AnalysisResult) -> None:
        self.result = result

    def build(self) -> List[NotGoodItem]:
        return self.overwrap_items() + self.foreign_key_items() + self.cardinality_items()

    def overwrap_items(self) -> List[NotGoodItem]:
        items: List[NotGoodItem] = []
        for analysis in self.result.tables:
            for group in (g for g in analysis.overwraps if g.is_redundant):
                for index in group.covered:
                    items.append(
                        NotGoodItem(
                            name=f"Index {index} is covered by another index {group.anchor}",
                            detail=f"{_format_columns(index.columns)} within {_format_columns(group.anchor.columns)}",
                        )
                    )
        return items

    def foreign_key_items(self) -> List[NotGoodItem]:
        items: List[NotGoodItem] = []
        for analysis in self.result.tables:
            for col in analysis.foreign_keys.unindexed_columns:
                nullability = "nullable" if col.nullable else "not null"
                items.append(
                    NotGoodItem(
                        name=f"Column {col} seems foreign key but not indexed",
                        detail=f"type {col.type}, {nullability}",
                    )
                )
        return items

    def cardinality_items(self) -> List[NotGoodItem]:
        items: List[NotGoodItem] = []
        for analysis in self.result.tables:
            for index in analysis.bad_cardinality_indexes:
                values = list(index.cardinality or ())
                items.append(
                    NotGoodItem(
                        name=f"Index {index} has bad cardinality order",
                        detail=f"cardinality {values} deltas {cardinality_deltas(values)}",
                    )
                )
        return items

    def summary_rows(self) -> List[List[Any]]:
        return [
            [
                a.table.db_name,
                a.table.name,
                a.covered_count,
                len(a.foreign_keys.unindexed_columns),
                len(a.bad_cardinality_indexes),
            ]
            for a in self.result.tables
        ]


# --------------------------------------------------------------------------------------
# Artifact writer
# --------------------------------------------------------------------------------------
class ArtifactWriter:
    """Writes findings as JSON, per-table counts as CSV and a markdown report."""

    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def write_findings(self, items: List[NotGoodItem]) -> None:
        payload = [{"name": i.name, "detail": i.detail} for i in items]
        (self.base_path / "findings.json").write_text(json.dumps(payload, indent=2))

    def write_summary(self, rows: List[List[Any]]) -> None:
        with (self.base_path / "summary.csv").open("w", newline="") as fh:
            writer = csv.writer(fh)
            writer.writerow(["database", "table", "covered_indexes", "unindexed_foreign_keys", "bad_cardinality_indexes"])
            for row in rows:
                writer.writerow(row)

    def write_report(self, assembler: ReportAssembler) -> None:
        sections = [
            ("Covered Indexes", assembler.overwrap_items()),
            ("Unindexed Foreign Keys", assembler.foreign_key_items()),
            ("Bad Cardinality Order", assembler.cardinality_items()),
        ]
        lines = ["# Index Audit Report", ""]
        for title, items in sections:
            lines.append(f"## {title}")
            if items:
                lines.extend(f"- {item}" for item in items)
            else:
                lines.append("- None found.")
            lines.append("")
        (self.base_path / "report.md").write_text("\n".join(lines))


# --------------------------------------------------------------------------------------
# Runner
# --------------------------------------------------------------------------------------
class Runner:
    """Loads one snapshot, analyzes it and prints every finding."""

    def __init__(self, url: Any, output_base: Optional[str] = None) -> None:
        self.url = url
        self.output_root: Optional[Path] = None
        if output_base:
            ts = datetime.utcnow().strftime("run_%Y%m%d_%H%M%S")
            self.output_root = Path(output_base) / ts

    def load(self) -> Schema:
        client = MySqlClient(self.url)
        try:
            return MetadataReader(client).load_schema()
        finally:
            client.close()

    def run(self) -> List[NotGoodItem]:
        host = getattr(self.url, "host", None) or "configured source"
        print(f"[INFO] Connecting to {host}")
        schema = self.load()
        table_count = sum(1 for _ in schema.iter_tables())
        print(f"[INFO] Loaded {table_count} tables from {len(schema.databases)} databases")
        return self.analyze(schema)

    def analyze(self, schema: Schema) -> List[NotGoodItem]:
        for table in schema.iter_tables():
            for index in CardinalityOrderDetector(table).incomplete():
                print(f"[WARN] Skipping cardinality check for {index}: statistics incomplete")

        assembler = ReportAssembler(IndexAnalyzer(schema).analyze())
        items = assembler.build()
        for item in items:
            print(item)

        if self.output_root is not None:
            writer = ArtifactWriter(self.output_root)
            writer.write_findings(items)
            writer.write_summary(assembler.summary_rows())
            writer.write_report(assembler)
            print(f"[INFO] Run complete. Artifacts at {self.output_root}")
        else:
            print(f"[INFO] Run complete. {len(items)} findings")
        return items


def _configure_test_source(args: argparse.Namespace) -> None:
    """Point the run at the dockerized MySQL demo fixture when requested."""

    args.user = "root"
    args.password = os.getenv("MYSQL_ROOT_PASSWORD", "YourStrong!Passw0rd")
    args.host = "localhost:3306"


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Audit MySQL index design from catalog metadata.")
    parser.add_argument("--adapter", required=True, choices=["mysql"], help="Catalog adapter to use.")
    parser.add_argument("--user", default="", help="Database user.")
    parser.add_argument("--password", default="", help="Database password.")
    parser.add_argument("--host", default="localhost", help="Database host, optionally host:port (default: %(default)s)")
    parser.add_argument("--include-schemas", default=None, help="Regex of schemas to audit.")
    parser.add_argument("--exclude-schemas", default=None, help="Regex of schemas to skip.")
    parser.add_argument(
        "--include-system-schemas",
        action="store_true",
        help="Also audit information_schema, mysql, performance_schema and sys.",
    )
    parser.add_argument("--output", default=CONFIG["OUTPUT"]["BASE_PATH"], help="Directory for JSON/CSV/markdown artifacts.")
    parser.add_argument(
        "mode",
        nargs="?",
        choices=["test"],
        help="Use 'test' to run against the dockerized index_demo database.",
    )
    return parser.parse_args(argv)


def _apply_scope(args: argparse.Namespace) -> None:
    scope = CONFIG["SCOPE"]
    scope["INCLUDE_SCHEMAS"] = args.include_schemas
    scope["EXCLUDE_SCHEMAS"] = args.exclude_schemas
    scope["SKIP_SYSTEM_SCHEMAS"] = not args.include_system_schemas


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = _parse_args(argv)
    if args.mode == "test":
        _configure_test_source(args)
    _apply_scope(args)
    url = build_url(args.user, args.password, args.host)
    try:
        Runner(url, args.output).run()
    except SQLAlchemyError as exc:
        print(f"[ERROR] Failed reading catalog metadata from {args.host}: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()

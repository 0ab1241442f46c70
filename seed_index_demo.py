"""Seed the index_demo database into a running Docker MySQL server.

Usage is intentionally minimal to match the three-step workflow:

1. Start MySQL via Docker (compose or `docker run`).
2. Run this script once; if the database already exists, nothing happens.
3. Run `python mysql_index_audit.py --adapter mysql test`.
"""
from __future__ import annotations

import argparse
import os
import sys

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import InterfaceError, OperationalError

from index_demo_dataset_sql import INDEX_DEMO_DATASET_SQL


DEFAULT_HOST = "localhost"
DEFAULT_PORT = 3306
DEFAULT_PASSWORD = os.environ.get("MYSQL_ROOT_PASSWORD", "YourStrong!Passw0rd")


def build_engine(host: str, port: int, password: str):
    url = URL.create("mysql+mysqlconnector", username="root", password=password, host=host, port=port)
    return create_engine(url, connect_args={"connection_timeout": 30})


def database_exists(engine) -> bool:
    sql = "SELECT schema_name FROM information_schema.schemata WHERE schema_name = :name"
    with engine.connect() as conn:
        return conn.execute(text(sql), {"name": "index_demo"}).scalar() is not None


def split_statements(sql_text: str):
    statement = []
    for line in sql_text.splitlines():
        if not line.strip():
            continue
        statement.append(line)
        if line.rstrip().endswith(";"):
            yield "\n".join(statement).rstrip().rstrip(";")
            statement = []
    if statement:
        yield "\n".join(statement)


def seed(engine) -> None:
    if database_exists(engine):
        print("index_demo already present; nothing to do.")
        return

    print("Seeding index_demo...")
    with engine.begin() as conn:
        for i, statement in enumerate(split_statements(INDEX_DEMO_DATASET_SQL), start=1):
            print(f"Executing statement {i}...", flush=True)
            conn.exec_driver_sql(statement)
    print("Seeding complete.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the index_demo database into Docker MySQL.")
    parser.add_argument("--host", default=DEFAULT_HOST, help="MySQL host (default: %(default)s)")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="MySQL port (default: %(default)s)")
    parser.add_argument(
        "--password", default=DEFAULT_PASSWORD, help="root password (default: env MYSQL_ROOT_PASSWORD or YourStrong!Passw0rd)")

    args = parser.parse_args()
    engine = build_engine(args.host, args.port, args.password)
    try:
        seed(engine)
    except (InterfaceError, OperationalError) as exc:
        print("[ERROR] Could not connect to MySQL. Ensure the container is running and the root password matches.")
        print(f"Details: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()

from __future__ import annotations

import argparse

from alert_engine.alerts.catalog import seed_alert_types
from alert_engine.db.base import Base
from alert_engine.db.session import configure_engine, get_engine, get_session_factory


def main() -> int:
    parser = argparse.ArgumentParser(description="Insert the default alert type catalog.")
    parser.add_argument(
        "--database-url",
        help="Override DATABASE_URL for this run.",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables first (SQLite development databases).",
    )
    args = parser.parse_args()

    if args.database_url:
        configure_engine(args.database_url)
    if args.create_schema:
        Base.metadata.create_all(bind=get_engine())

    with get_session_factory()() as session:
        created = seed_alert_types(session)

    print(f"Seeded {created} alert type(s).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

# carebill/db/init_db.py
from __future__ import annotations

import argparse

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from carebill.db.session import engine
from carebill.db.base import Base


def print_tables(bind: Engine) -> set:
    names = sorted(inspect(bind).get_table_names())
    print("Existing tables:", names)
    return set(names)


def run(fresh: bool = False, bind: Engine = engine) -> set:
    if fresh:
        print("WARNING: Dropping ALL tables (dev only) …")
        Base.metadata.drop_all(bind=bind)

    print("Creating all missing tables …")
    Base.metadata.create_all(bind=bind)

    return print_tables(bind)


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Initialize the billing DB (create tables).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    args = parser.parse_args(argv)
    run(fresh=args.fresh)


if __name__ == "__main__":
    main()

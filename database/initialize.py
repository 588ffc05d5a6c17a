from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

# The models import registers the tables with SQLAlchemy's metadata.
from database import models  # noqa: F401
from database.session import Base, resolve_database_url, engine as default_engine


logger = logging.getLogger(__name__)


def init_database(*, drop_existing: bool = False, bind: Optional[Engine] = None) -> List[str]:
    """Create the webhook tables on ``bind`` (the configured engine by default)."""
    target = bind or default_engine
    try:
        if drop_existing:
            logger.warning("Dropping existing tables before re-creating schema.")
            Base.metadata.drop_all(bind=target)
        Base.metadata.create_all(bind=target)
    except SQLAlchemyError as exc:
        logger.exception("Failed to initialise database schema: %s", exc)
        raise

    tables = sorted(Base.metadata.tables)
    logger.info("Database schema initialised: %s", ", ".join(tables))
    return tables


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Initialise the marketplace webhook tables (listings, transactions, payouts, credits ledger)."
    )
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating the schema.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Target database URL; defaults to DATABASE_URL.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    args = _parse_args(argv)
    bind = None
    if args.database_url:
        url, connect_args = resolve_database_url(args.database_url)
        bind = create_engine(url, future=True, connect_args=connect_args)
    init_database(drop_existing=args.drop_existing, bind=bind)


if __name__ == "__main__":
    main()

"""
Create the coordination tables.

    python -m coordinator.db.init_db [--database-url URL]
"""

import argparse
import logging

from sqlalchemy import create_engine

from coordinator.config import DATABASE_URL, LOG_LEVEL
from coordinator.db.database import init_db


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Create the coordination_events and coordination_triggers tables"
    )
    parser.add_argument(
        "--database-url",
        default=DATABASE_URL,
        help="SQLAlchemy URL (default: DATABASE_URL from the environment)"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    engine = create_engine(args.database_url)
    try:
        init_db(bind=engine)
    finally:
        engine.dispose()
    print(f"Coordination tables ready at {engine.url}")


if __name__ == "__main__":
    main()

"""
Database engine initialisation and connectivity checks.
"""

import sys

from sqlalchemy import create_engine, text

from pbac.config import get_env


def init_engine(db_uri: str = None):
    """Create a SQLAlchemy engine and verify the connection."""
    db_uri = db_uri or get_env("DB_URI")
    engine = create_engine(db_uri, echo=False, future=True, pool_pre_ping=True)
    if not check_connection(engine):
        print("ERROR: could not connect to DB", file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def check_connection(engine) -> bool:
    """Run ``SELECT 1``; False on any failure."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return False
    return True

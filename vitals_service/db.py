# vitals_service/db.py

import os
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

# 1. Load the Connection String
# Service-specific URL first, then the shared DATABASE_URL / PG_DSN
DATABASE_URL = (
    os.getenv("VITALS_DATABASE_URL") or os.getenv("DATABASE_URL") or os.getenv("PG_DSN")
)
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is not set")

# 2. Create the Engine
# pool_pre_ping=True ensures we don't use stale connections after a DB restart
engine = create_engine(DATABASE_URL, pool_pre_ping=True)


# 3. Initialize Database
def init_db() -> None:
    """
    Creates the vital_signs, vital_ranges and vital_alerts tables.
    """
    from vitals_service.models import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


# 4. FastAPI Session Dependency
def get_session() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a database session.
    Automatically closes the session after the request is finished.
    """
    with Session(engine) as session:
        yield session


# 5. Clean Cleanup
def close_db_connection() -> None:
    engine.dispose()

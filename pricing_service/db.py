# pricing_service/db.py

import os
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

# 1. Load Config
# Service-specific URL first, then the shared DATABASE_URL / PG_DSN
DATABASE_URL = (
    os.getenv("PRICING_DATABASE_URL") or os.getenv("DATABASE_URL") or os.getenv("PG_DSN")
)
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is not set")

# 2. Create Engine
# pool_pre_ping=True reconnects if the DB drops idle connections
engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=False)


# 3. Initialization
def init_db() -> None:
    """
    Creates the 'services' and 'service_items' tables if they don't exist.
    The table models must be imported before this runs.
    """
    from pricing_service.models import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


# 4. Dependency for FastAPI
def get_session() -> Generator[Session, None, None]:
    """
    Yields a database session. Used in FastAPI routes via Depends(get_session).
    """
    with Session(engine) as session:
        yield session


def close_db_connection() -> None:
    engine.dispose()

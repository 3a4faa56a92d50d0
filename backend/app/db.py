from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from .config import DATABASE_URL

if DATABASE_URL is None:
    raise RuntimeError("DATABASE_URL (or SUPABASE_DB_URL) must be set")

if DATABASE_URL.startswith("sqlite"):
    # Single shared connection so an in-memory database survives across threads
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def insert_for(db: Session, table):
    """
    Return a dialect-specific INSERT for `table` so callers can use
    on_conflict_do_nothing / on_conflict_do_update.
    """
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Conditional inserts are not supported on dialect {name!r}")

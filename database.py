"""
Engine, session factory and declarative base shared by the API and the seeding script.
"""
import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not configured. Please check env files")


def engine_options(url: str) -> dict:
    """
    Keyword arguments for create_engine.

    SQLite connections are shared between the request threads; server
    databases get a pre-pinged, recycled pool sized from DB_POOL_SIZE and
    DB_MAX_OVERFLOW.
    """
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}

    return {
        "pool_size": int(os.getenv("DB_POOL_SIZE", "20")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# users, events, registrations, team members, certificates, logins and revoked tokens
Base = declarative_base()


def init_db(reset: bool = False):
    """Create missing tables; with reset=True every table is dropped first."""
    import models  # registers the tables on Base

    if reset:
        models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

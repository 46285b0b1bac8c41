"""
Database configuration and session management for SQLAlchemy.
"""
import logging
import os
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from dotenv import load_dotenv

from models import Base, User, DeviceSession, UserRole
from validation import DEFAULT_ADDRESS

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# Get DATABASE_URL from environment, with fallback
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sakura.db")
DB_ECHO = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")

OWNER_USERNAME = os.getenv("OWNER_USERNAME", "owner")
OWNER_PASSWORD = os.getenv("OWNER_PASSWORD", "owner123")


def make_engine(url: str, echo: bool = False, **kwargs) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections are shared with the FastAPI worker threads, so the
    same-thread check is disabled for that dialect.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)  # Verify connections before using
    return create_engine(url, echo=echo, **kwargs)


# Create engine
engine = make_engine(DATABASE_URL, echo=DB_ECHO)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = None, session_factory=None, seed_catalog: bool = True):
    """
    Create tables, the device session row, the owner account and the default menu.

    Safe to call on every start: existing rows are left alone.
    """
    # Imported here so hashing settings are read after .env is loaded
    from auth import hash_password
    from catalog import Catalog

    bind = bind or engine
    session_factory = session_factory or SessionLocal

    Base.metadata.create_all(bind=bind)

    with session_factory() as db:
        if db.get(DeviceSession, 1) is None:
            db.add(DeviceSession(id=1, is_logged_in=False, current_username=""))

        owner = db.query(User).filter(User.username == OWNER_USERNAME).first()
        if owner is None:
            db.add(User(
                username=OWNER_USERNAME,
                email="",
                password_hash=hash_password(OWNER_PASSWORD),
                full_name="Restaurant Owner",
                address=DEFAULT_ADDRESS,
                phone="",
                role=UserRole.OWNER.value,
            ))
            logger.info("Created owner account '%s'", OWNER_USERNAME)
        db.commit()

    if seed_catalog:
        Catalog(session_factory).seed_defaults()

"""Database engine and session factory"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bourso_desk.config import settings


def build_engine(url: str):
    """SQLite for the desktop default, pooled connections for anything else"""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=5,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

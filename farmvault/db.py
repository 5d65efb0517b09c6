from __future__ import annotations

import logging
from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from farmvault.config import settings

logger = logging.getLogger(__name__)

engine = create_engine(
    settings.database_url_normalized,
    pool_pre_ping=True,
    pool_recycle=300,
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        logger.exception('Rolling back request session')
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    from farmvault.models import Base

    Base.metadata.create_all(bind=engine)
    logger.info('Database tables initialized')

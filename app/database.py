"""
Database engine, session factory and the request-scoped session dependency.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import get_settings
from .logging_config import db_logger

settings = get_settings()

connect_args = {}
if settings.database_url.startswith("sqlite"):
    # SQLite connections are shared with the threadpool FastAPI runs sync routes in
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    pool_pre_ping=True,
)
db_logger.info("Database engine created", dialect=engine.dialect.name)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

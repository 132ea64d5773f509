import logging
import math
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Owns the connection pool and session factory for one app instance."""

    def __init__(self, url: str, read_timeout: float = 5.0, **engine_options) -> None:
        self.url = url
        self.read_timeout = read_timeout
        self.connected = False

        connect_args = dict(engine_options.pop("connect_args", {}))
        if url.startswith("postgresql"):
            # libpq takes whole seconds; reads set their own statement_timeout
            connect_args.setdefault("connect_timeout", max(1, math.ceil(read_timeout)))
            engine_options.setdefault("pool_timeout", read_timeout)
            engine_options.setdefault("pool_pre_ping", True)
        elif url.startswith("sqlite"):
            connect_args.setdefault("check_same_thread", False)

        self.engine = create_engine(url, connect_args=connect_args, **engine_options)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            info={"read_timeout": read_timeout},
        )

    def open(self) -> None:
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            logger.error("Failed to connect to database: %s", exc)
            self.connected = False
            return
        self.connected = True
        logger.info("Database connected (%s)", self.engine.url.render_as_string(hide_password=True))

    def close(self) -> None:
        self.engine.dispose()
        self.connected = False
        logger.info("Database connections closed")

    def session(self) -> Session:
        return self.SessionLocal()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Dependency to get the database session
def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()

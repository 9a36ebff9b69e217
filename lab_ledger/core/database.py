from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from lab_ledger.core.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.DB_TIMEOUT_SECONDS,
            }
        }
    timeout_ms = int(settings.DB_TIMEOUT_SECONDS * 1000)
    return {
        "pool_pre_ping": True,
        "connect_args": {
            "connect_timeout": max(1, int(settings.DB_TIMEOUT_SECONDS)),
            "options": f"-c statement_timeout={timeout_ms}",
        },
    }


engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

if engine.dialect.name == "sqlite":
    # pysqlite defers BEGIN until the first write, which lets two writers
    # deadlock on lock upgrade. Take the write lock up front instead.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

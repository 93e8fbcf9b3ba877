from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session

from config import settings


def make_engine(url=None, echo=False):
    url = url or settings.DATABASE_URL
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False, "timeout": 30})

    # hand transaction control to SQLAlchemy so every unit of work starts with
    # BEGIN IMMEDIATE and holds the write lock from its first read
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = make_engine()


def init_db(bind=None):
    import models  # noqa: F401  registers the tables on SQLModel.metadata
    SQLModel.metadata.create_all(bind or engine)


def get_session(bind=None):
    return Session(bind or engine, expire_on_commit=False)

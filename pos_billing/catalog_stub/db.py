from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import settings

# Base para los modelos del catálogo de desarrollo
Base = declarative_base()


def make_engine(url: str = None):
    url = url or settings.catalog_db_url
    kwargs = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            # una sola conexión compartida para que la BD en memoria sobreviva
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_conn, _):
            cur = dbapi_conn.cursor()
            try:
                cur.execute("PRAGMA foreign_keys=ON;")
                cur.execute("PRAGMA busy_timeout=30000;")
            finally:
                cur.close()

    return engine


def make_sessionmaker(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from pdv.core.config import settings

# Base para modelos del almacen remoto (lo importa pdv.api)
Base = declarative_base()


def make_engine(url: str, **kwargs):
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        # Engine con timeout alto (contencion ligera)
        connect_args = {"check_same_thread": False, "timeout": 60, **connect_args}
    engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True, **kwargs)

    if url.startswith("sqlite"):
        # PRAGMAs por conexion
        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_conn, _):
            cur = dbapi_conn.cursor()
            try:
                if ":memory:" not in url and url.rstrip("/") != "sqlite:":
                    cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA busy_timeout=60000;")
                cur.execute("PRAGMA foreign_keys=ON;")
                cur.execute("PRAGMA synchronous=NORMAL;")
            finally:
                cur.close()

    return engine


def make_session_factory(bind):
    return sessionmaker(autocommit=False, autoflush=False, bind=bind, expire_on_commit=False)


engine = make_engine(settings.database_url)
SessionLocal = make_session_factory(engine)


def init_db(bind=None) -> None:
    # importa modelos antes de create_all
    from pdv.models import cash, customer, ledger, product, sale  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)



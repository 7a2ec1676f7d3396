"""引擎与会话工厂。扫码记录与资产状态都在同一个库里，默认本地 SQLite。"""
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings


class Base(DeclarativeBase):
    pass


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(url: str) -> Engine:
    # SQLite 连接会被请求线程与地址补全线程共用
    connect_args = {"check_same_thread": False} if _is_sqlite(url) else {}
    eng = create_engine(url, echo=False, pool_pre_ping=True, connect_args=connect_args)
    if _is_sqlite(url):
        @event.listens_for(eng, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            # 后台回写地址与前台扫码并发写入时等待锁
            cur.execute("PRAGMA busy_timeout=5000")
            cur.close()
    return eng


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """FastAPI 依赖：每个请求一个会话。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

"""
测试夹具：应用实例、HTTP 客户端、DB 会话、可控的单调时钟。
使用临时 SQLite 文件，须在导入 fleetscan 之前设置环境变量；每个测试前清空数据表与扫码会话。
"""
import os
import tempfile
from typing import Generator

_TEST_DB_DIR = tempfile.mkdtemp(prefix="fleetscan_test_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ["GEOCODER_URL"] = ""
os.environ["ENABLED_MODES"] = "single,bulk,link"
os.environ["PRIMARY_CODE_PREFIXES"] = "S0,E0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from fleetscan import models
from fleetscan.database import SessionLocal
from fleetscan.main import create_app
from fleetscan.scan_session import CaptureSession, ScanMode


class FakeClock:
    """可手动推进的单调时钟。"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture(scope="session")
def app():
    return create_app()


@pytest.fixture(scope="session")
def client(app) -> TestClient:
    return TestClient(app=app, base_url="http://test")


@pytest.fixture(autouse=True)
def _clean_state(app):
    """每个测试前清空数据表并关闭扫码会话。"""
    sess = SessionLocal()
    try:
        sess.query(models.ScanEvent).delete()
        sess.query(models.AssetState).delete()
        sess.query(models.AssetKind).delete()
        sess.commit()
    finally:
        sess.close()
    app.state.capture_sessions.close()
    yield


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """每个测试一个独立 DB 会话，用后关闭。"""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock(app) -> FakeClock:
    """注入到会话注册表的假时钟，需在打开会话前生效。"""
    fake = FakeClock()
    app.state.capture_sessions.clock = fake
    return fake


@pytest.fixture
def make_session(clock):
    """直接构造会话（不经 HTTP），解码端冷却关闭，防抖窗口取默认值。"""

    def _make(mode: str = "single", enricher=None) -> CaptureSession:
        return CaptureSession(
            ScanMode(mode),
            clock=clock,
            primary_prefixes=["S0", "E0"],
            lockouts={},
            bulk_min_interval=0.6,
            link_min_interval=0.25,
            enricher=enricher,
        )

    return _make


@pytest.fixture
def open_capture(client: TestClient):
    """打开扫码会话（HTTP），返回会话 JSON。"""

    def _open(mode: str) -> dict:
        r = client.post("/api/capture/session", json={"mode": mode})
        assert r.status_code == 201, (r.status_code, r.text)
        return r.json()

    return _open


@pytest.fixture
def scan(client: TestClient, clock: FakeClock):
    """推进时钟后提交一次扫码，默认推进 2 秒以越过所有冷却窗口。"""

    def _scan(payload: str, advance: float = 2.0, **location) -> dict:
        clock.advance(advance)
        r = client.post("/api/capture/scans", json={"payload": payload, **location})
        assert r.status_code == 200, (r.status_code, r.text)
        return r.json()

    return _scan

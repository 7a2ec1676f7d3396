import logging

from fastapi import FastAPI

from .database import Base, engine
from . import models  # noqa: F401  注册模型到 Base.metadata
from . import routes_assets, routes_capture, routes_scans
from .enrichment import AddressEnricher, build_default_resolver
from .scan_session import CaptureSessionRegistry

_logger = logging.getLogger(__name__)

_DOCS_TITLE = "车队扫码登记 - API 文档"
_DOCS_DESCRIPTION = (
    "手持扫码枪的扫码处理：单次扫码（带位置与照片）、批量扫码（本轮去重）、"
    "车辆与 IoT 模块两步关联；以及扫码记录、资产最新状态的查询与导出。"
)


def create_app() -> FastAPI:
    # 创建所有表（单机部署直接建表）
    Base.metadata.create_all(bind=engine)

    app = FastAPI(
        title=_DOCS_TITLE,
        description=_DOCS_DESCRIPTION,
        version="0.1.0",
    )

    enricher = AddressEnricher(build_default_resolver())
    if enricher.resolver is None:
        _logger.info("未配置 GEOCODER_URL，单次扫码不补全地址")
    app.state.address_enricher = enricher
    app.state.capture_sessions = CaptureSessionRegistry(enricher=enricher)

    @app.on_event("shutdown")
    def _shutdown_enricher():
        app.state.capture_sessions.close()
        enricher.shutdown(wait=False)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    @app.get("/")
    async def root():
        return {"message": "车队扫码登记 API 在线"}

    app.include_router(routes_capture.router)
    app.include_router(routes_scans.router)
    app.include_router(routes_assets.router)

    return app


app = create_app()

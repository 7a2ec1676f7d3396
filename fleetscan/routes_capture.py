from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from . import schemas
from .config import get_enabled_modes
from .database import get_db
from .scan_session import CaptureSession, CaptureSessionRegistry, ScanResult

router = APIRouter(prefix="/api/capture", tags=["capture"])


def get_capture_registry(request: Request) -> CaptureSessionRegistry:
    return request.app.state.capture_sessions


def _session_to_read(session: CaptureSession) -> schemas.CaptureSessionRead:
    return schemas.CaptureSessionRead(
        id=session.id,
        mode=session.mode.value,
        link_step=session.link_step.value,
        pending_primary_id=session.pending_primary_id,
        hint=session.hint_text(),
        enabled_modes=get_enabled_modes(),
    )


def _result_to_read(result: ScanResult) -> schemas.ScanResultRead:
    return schemas.ScanResultRead(
        outcome=result.outcome.value,
        mode=result.mode.value,
        link_step=result.link_step.value,
        hint=result.hint,
        feedback=schemas.FeedbackRead(**asdict(result.feedback)),
        normalized=result.normalized,
        secondary_id=result.secondary_id,
        record_id=result.record_id,
        photo_requested=result.photo_requested,
        link_summary=result.link_summary,
    )


def _require_session(registry: CaptureSessionRegistry) -> CaptureSession:
    session = registry.current()
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="没有打开的扫码会话，请先进入扫码界面",
        )
    return session


@router.post(
    "/session",
    response_model=schemas.CaptureSessionRead,
    status_code=status.HTTP_201_CREATED,
)
def open_capture_session(
    payload: schemas.CaptureSessionOpen,
    registry: CaptureSessionRegistry = Depends(get_capture_registry),
):
    """进入扫码界面：新建会话（已有会话会被关闭）。模式未启用时回退到第一个启用的模式。"""
    return _session_to_read(registry.open(payload.mode))


@router.get("/session", response_model=schemas.CaptureSessionRead)
def get_capture_session(registry: CaptureSessionRegistry = Depends(get_capture_registry)):
    return _session_to_read(_require_session(registry))


@router.put("/session/mode", response_model=schemas.CaptureSessionRead)
def switch_capture_mode(
    payload: schemas.CaptureModeUpdate,
    registry: CaptureSessionRegistry = Depends(get_capture_registry),
):
    """切换扫码模式；（重新）进入批量模式会清空本轮去重记忆。"""
    _require_session(registry)
    return _session_to_read(registry.switch_mode(payload.mode))


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
def close_capture_session(registry: CaptureSessionRegistry = Depends(get_capture_registry)):
    """离开扫码界面：销毁会话，内存状态全部丢弃。"""
    if not registry.close():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="没有打开的扫码会话")
    return None


@router.post("/scans", response_model=schemas.ScanResultRead)
def process_scan(
    payload: schemas.ScanRequest,
    db: Session = Depends(get_db),
    registry: CaptureSessionRegistry = Depends(get_capture_registry),
):
    """处理一次解码结果，返回结果枚举及前端所需的提示/反馈。"""
    session = _require_session(registry)
    result = session.process(db, payload.payload, payload.latitude, payload.longitude)
    return _result_to_read(result)

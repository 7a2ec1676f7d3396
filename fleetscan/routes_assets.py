from io import BytesIO
from typing import List
from urllib.parse import urlencode

import qrcode
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from . import models, schemas, scan_writer
from .config import settings
from .database import get_db
from .geo import nearest_asset

router = APIRouter(prefix="/api/assets", tags=["assets"])


def _state_to_read(db: Session, s: models.AssetState) -> schemas.AssetStateRead:
    return schemas.AssetStateRead.model_validate(s).model_copy(
        update={"kind": scan_writer.resolve_asset_kind(db, s.asset_id)}
    )


@router.get("", response_model=List[schemas.AssetStateRead])
def list_assets(
    located_only: bool = Query(False, description="只返回位置已知的资产（地图用）"),
    db: Session = Depends(get_db),
):
    """资产最新状态列表，按最近扫码时间倒序。"""
    query = db.query(models.AssetState)
    if located_only:
        query = query.filter(
            (models.AssetState.last_latitude != 0) | (models.AssetState.last_longitude != 0)
        )
    states = query.order_by(models.AssetState.last_timestamp.desc()).all()
    return [_state_to_read(db, s) for s in states]


@router.get("/nearest", response_model=schemas.NearestAssetRead)
def get_nearest_asset(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    db: Session = Depends(get_db),
):
    """离给定位置最近的资产及距离（米）；没有位置已知的资产时各字段为空。"""
    found = nearest_asset(db.query(models.AssetState).all(), latitude, longitude)
    if found is None:
        return schemas.NearestAssetRead()
    state, meters = found
    return schemas.NearestAssetRead(
        asset_id=state.asset_id,
        display_name=state.display_name,
        distance_meters=meters,
        kind=scan_writer.resolve_asset_kind(db, state.asset_id),
    )


@router.get("/{asset_id}", response_model=schemas.AssetStateRead)
def get_asset(asset_id: str, db: Session = Depends(get_db)):
    state = scan_writer.get_asset_state(db, asset_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="资产不存在")
    return _state_to_read(db, state)


@router.get("/{asset_id}/latest-scan", response_model=schemas.LatestScanRead)
def get_latest_scan(asset_id: str, db: Session = Depends(get_db)):
    """该资产最近一次带照片的单次扫码（地图气泡用）。"""
    rec = (
        db.query(models.ScanEvent)
        .filter(
            models.ScanEvent.asset_id == asset_id,
            models.ScanEvent.category == models.CATEGORY_SINGLE,
            models.ScanEvent.photo_data.is_not(None),
        )
        .order_by(models.ScanEvent.timestamp.desc())
        .first()
    )
    if rec is None:
        return schemas.LatestScanRead(asset_id=asset_id)
    return schemas.LatestScanRead(
        asset_id=asset_id,
        record_id=rec.id,
        timestamp=rec.timestamp,
        has_photo=True,
    )


@router.put("/{asset_id}/kind", response_model=schemas.AssetKindRead)
def set_asset_kind(
    asset_id: str,
    payload: schemas.AssetKindUpdate,
    db: Session = Depends(get_db),
):
    """人工设定资产类型（覆盖按前缀推断的结果）。"""
    try:
        row = scan_writer.set_asset_kind(db, asset_id, payload.kind)
    except scan_writer.ScanPersistenceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="保存失败，请稍后重试")
    state = scan_writer.get_asset_state(db, asset_id)
    return schemas.AssetKindRead(
        asset_id=asset_id,
        display_name=state.display_name if state else None,
        kind=row.kind,
    )


@router.get("/{asset_id}/qrcode")
def get_asset_qrcode(asset_id: str):
    """
    返回资产标签二维码 PNG，内容为 {BASE_URL}/app?id=<资产编号>，
    扫码后规范化即得回资产编号。
    """
    code = (asset_id or "").strip()
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="资产编号不能为空")
    qr_value = f"{settings.BASE_URL.rstrip('/')}/app?{urlencode({'id': code})}"
    img = qrcode.make(qr_value)
    buf = BytesIO()
    # 兼容 PIL 与 pypng 等后端：PIL 用 format="PNG"，pypng 只支持 .save(buf)
    try:
        img.save(buf, format="PNG")
    except TypeError:
        img.save(buf)
    buf.seek(0)
    return Response(
        content=buf.read(),
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="asset_{code}_qrcode.png"'},
    )

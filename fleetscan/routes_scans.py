import csv
from io import BytesIO, StringIO
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, Response, UploadFile, status
from sqlalchemy.orm import Session

from . import models, schemas, scan_writer
from .config import settings
from .database import get_db
from .time_utils import epoch_seconds

router = APIRouter(prefix="/api/scans", tags=["scans"])

# 导出文件名中的模式名
_EXPORT_MODE_NAMES = {
    models.CATEGORY_SINGLE: "single",
    models.CATEGORY_BULK: "bulk",
    models.CATEGORY_LINK: "link",
}


def _check_category(category: str) -> str:
    c = (category or "").strip().lower()
    if c not in models.SCAN_CATEGORIES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="category 须为 single / bulk / link",
        )
    return c


def _scans_query(db: Session, category: Optional[str] = None, asset_id: Optional[str] = None):
    query = db.query(models.ScanEvent)
    if category:
        query = query.filter(models.ScanEvent.category == category)
    if asset_id:
        query = query.filter(models.ScanEvent.asset_id == asset_id.strip())
    return query.order_by(models.ScanEvent.timestamp.desc())


def _event_to_read(db: Session, e: models.ScanEvent) -> schemas.ScanEventRead:
    return schemas.ScanEventRead.model_validate(e).model_copy(
        update={
            "has_photo": e.photo_data is not None,
            "kind": scan_writer.resolve_asset_kind(db, e.asset_id),
        }
    )


def _get_event_or_404(db: Session, record_id: str) -> models.ScanEvent:
    event = db.get(models.ScanEvent, record_id)
    if not event:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="记录不存在")
    return event


def _save_or_503(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except scan_writer.ScanPersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="保存失败，请稍后重试",
        )


@router.get("", response_model=List[schemas.ScanEventRead])
def list_scans(
    category: str = Query(..., description="single / bulk / link"),
    asset_id: Optional[str] = Query(None, description="资产编号"),
    limit: int = Query(100, ge=1, le=500, description="每页条数"),
    offset: int = Query(0, ge=0, description="偏移量，用于分页"),
    db: Session = Depends(get_db),
):
    """按类别返回扫码记录，时间倒序。"""
    c = _check_category(category)
    records = _scans_query(db, c, asset_id).offset(offset).limit(limit).all()
    return [_event_to_read(db, r) for r in records]


@router.get("/count")
def count_scans(
    category: str = Query(..., description="single / bulk / link"),
    db: Session = Depends(get_db),
):
    c = _check_category(category)
    return {"total": _scans_query(db, c).count()}


def _fetch_lines(db: Session, category: str) -> List[str]:
    records = _scans_query(db, category).limit(settings.EXPORT_MAX_RECORDS).all()
    return scan_writer.category_lines(records)


@router.get("/lines")
def scan_lines(
    category: str = Query(..., description="single / bulk / link"),
    db: Session = Depends(get_db),
):
    """复制用：每行一条（关联取显示名称，其余取资产编号）。"""
    c = _check_category(category)
    lines = _fetch_lines(db, c)
    return {"category": c, "count": len(lines), "text": "\n".join(lines)}


def _build_csv(lines: List[str]) -> bytes:
    """单列 CSV：每条记录一行，含逗号/引号的名称按 CSV 规则加引号。"""
    output = StringIO()
    writer = csv.writer(output)
    for line in lines:
        writer.writerow([line])
    return output.getvalue().encode("utf-8")


def _build_excel(lines: List[str], title: str) -> bytes:
    from openpyxl import Workbook
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row_idx, line in enumerate(lines, 1):
        ws.cell(row=row_idx, column=1, value=line)
    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.read()


@router.get("/export")
def export_scans(
    category: str = Query(..., description="single / bulk / link"),
    format: str = Query("csv", description="导出格式: csv / xlsx"),
    db: Session = Depends(get_db),
):
    """单列导出（按类别），无表头。"""
    c = _check_category(category)
    total = _scans_query(db, c).count()
    if total > settings.EXPORT_MAX_RECORDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"符合条件记录共 {total} 条，超过单次导出上限 {settings.EXPORT_MAX_RECORDS} 条",
        )
    fmt = (format or "csv").lower().strip()
    lines = _fetch_lines(db, c)
    stem = f"fleetscan_export_{_EXPORT_MODE_NAMES[c]}_{epoch_seconds()}"
    if fmt == "csv":
        content = _build_csv(lines)
        filename = f"{stem}.csv"
        media_type = "text/csv; charset=utf-8"
    elif fmt == "xlsx":
        content = _build_excel(lines, _EXPORT_MODE_NAMES[c])
        filename = f"{stem}.xlsx"
        media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="format 须为 csv / xlsx")
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("")
def delete_scans_by_category(
    request: Request,
    category: str = Query(..., description="single / bulk / link"),
    db: Session = Depends(get_db),
):
    """删除某类别全部记录；单次扫码删除后无剩余记录的资产状态一并删除。"""
    c = _check_category(category)
    ids = [row[0] for row in db.query(models.ScanEvent.id).filter(models.ScanEvent.category == c).all()]
    deleted = _save_or_503(scan_writer.delete_scan_events_by_category, db, c)
    enricher = request.app.state.address_enricher
    for record_id in ids:
        enricher.cancel(record_id)
    return {"deleted": deleted}


@router.get("/{record_id}", response_model=schemas.ScanEventRead)
def get_scan(record_id: str, db: Session = Depends(get_db)):
    return _event_to_read(db, _get_event_or_404(db, record_id))


@router.patch("/{record_id}", response_model=schemas.ScanEventRead)
def update_scan(
    record_id: str,
    payload: schemas.ScanEventUpdate,
    db: Session = Depends(get_db),
):
    """修改显示名称（同步到资产状态），可同时设定资产类型。"""
    event = _get_event_or_404(db, record_id)
    event = _save_or_503(scan_writer.rename_scan_event, db, event, payload.display_name, payload.kind)
    return _event_to_read(db, event)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_scan(record_id: str, request: Request, db: Session = Depends(get_db)):
    """删除一条记录；若为该资产最后一条单次扫码，资产状态一并删除。"""
    event = _get_event_or_404(db, record_id)
    _save_or_503(scan_writer.delete_scan_event, db, event)
    request.app.state.address_enricher.cancel(record_id)
    return None


@router.post("/{record_id}/photo", response_model=schemas.ScanEventRead)
def upload_scan_photo(
    record_id: str,
    file: UploadFile = File(..., description="照片（JPEG/PNG）"),
    db: Session = Depends(get_db),
):
    """为单次扫码记录附加照片（创建后补拍）。"""
    event = _get_event_or_404(db, record_id)
    if event.category != models.CATEGORY_SINGLE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="仅单次扫码记录可附加照片")
    content = file.file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="照片内容为空")
    if len(content) > settings.PHOTO_MAX_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="照片超过大小上限")
    event = _save_or_503(scan_writer.attach_photo, db, event, content, file.content_type)
    return _event_to_read(db, event)


@router.get("/{record_id}/photo")
def get_scan_photo(record_id: str, db: Session = Depends(get_db)):
    event = _get_event_or_404(db, record_id)
    if event.photo_data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="该记录没有照片")
    return Response(
        content=event.photo_data,
        media_type=event.photo_content_type or "image/jpeg",
        headers={"Content-Disposition": f'inline; filename="scan_{event.id}.jpg"'},
    )

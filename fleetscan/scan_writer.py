"""
扫码记录与资产状态写入。

单写者约定：每个进程只有一个打开的扫码会话，关联去重的「先查后写」不是原子的；
若要支持多会话并发，需在存储层为 (asset_id, linked_secondary_id) 加唯一约束并改为条件插入。
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, NoReturn, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .scan_code_utils import infer_asset_kind
from .time_utils import now_utc

_logger = logging.getLogger(__name__)


class ScanPersistenceError(Exception):
    """存储保存失败；ORM 会话已回滚。"""


@dataclass
class LinkCommit:
    record: models.ScanEvent
    duplicate: bool


def _fail(db: Session, what: str, e: SQLAlchemyError) -> NoReturn:
    db.rollback()
    _logger.warning("保存失败 (%s): %s", what, e)
    raise ScanPersistenceError(what) from e


def _save(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        _fail(db, what, e)


def find_link(db: Session, primary_id: str, secondary_id: str) -> Optional[models.ScanEvent]:
    return (
        db.query(models.ScanEvent)
        .filter(
            models.ScanEvent.category == models.CATEGORY_LINK,
            models.ScanEvent.asset_id == primary_id,
            models.ScanEvent.linked_secondary_id == secondary_id,
        )
        .first()
    )


def commit_link(db: Session, primary_id: str, secondary_id: str) -> LinkCommit:
    """写入一条关联记录；相同 (主资产, IoT 模块) 已存在时不写入，duplicate=True。"""
    primary = (primary_id or "").strip()
    secondary = (secondary_id or "").strip()
    if not primary or not secondary:
        raise ValueError("关联双方编号不能为空")
    existing = find_link(db, primary, secondary)
    if existing is not None:
        return LinkCommit(record=existing, duplicate=True)
    event = models.ScanEvent(
        asset_id=primary,
        display_name=f"{primary} -> {secondary}",
        category=models.CATEGORY_LINK,
        linked_secondary_id=secondary,
        timestamp=now_utc(),
        latitude=0.0,
        longitude=0.0,
    )
    db.add(event)
    _save(db, "link")
    db.refresh(event)
    return LinkCommit(record=event, duplicate=False)


def record_single_scan(
    db: Session,
    asset_id: str,
    latitude: float = 0.0,
    longitude: float = 0.0,
    timestamp: Optional[datetime] = None,
) -> models.ScanEvent:
    """写入单次扫码，并 upsert 该资产的最新状态（名称仅在为空时填充）。"""
    ts = timestamp or now_utc()
    event = models.ScanEvent(
        asset_id=asset_id,
        display_name=asset_id,
        category=models.CATEGORY_SINGLE,
        timestamp=ts,
        latitude=latitude,
        longitude=longitude,
    )
    db.add(event)
    state = get_asset_state(db, asset_id)
    if state is None:
        state = models.AssetState(asset_id=asset_id)
        db.add(state)
    state.last_timestamp = ts
    state.last_latitude = latitude
    state.last_longitude = longitude
    if not state.display_name:
        state.display_name = asset_id
    _save(db, "single")
    db.refresh(event)
    return event


def record_bulk_scan(db: Session, asset_id: str) -> models.ScanEvent:
    event = models.ScanEvent(
        asset_id=asset_id,
        display_name=asset_id,
        category=models.CATEGORY_BULK,
        timestamp=now_utc(),
        latitude=0.0,
        longitude=0.0,
    )
    db.add(event)
    _save(db, "bulk")
    db.refresh(event)
    return event


def get_asset_state(db: Session, asset_id: str) -> Optional[models.AssetState]:
    return (
        db.query(models.AssetState)
        .filter(models.AssetState.asset_id == asset_id)
        .first()
    )


def _drop_orphan_asset_state(db: Session, asset_id: str) -> None:
    """该资产已无任何单次扫码时删除其状态行（重新查询，不做引用计数）。"""
    still_has_single = (
        db.query(models.ScanEvent.id)
        .filter(
            models.ScanEvent.asset_id == asset_id,
            models.ScanEvent.category == models.CATEGORY_SINGLE,
        )
        .first()
    )
    if still_has_single is None:
        db.query(models.AssetState).filter(
            models.AssetState.asset_id == asset_id
        ).delete(synchronize_session=False)


def delete_scan_event(db: Session, event: models.ScanEvent) -> None:
    asset_id = event.asset_id
    was_single = event.category == models.CATEGORY_SINGLE
    try:
        db.delete(event)
        db.flush()
        if was_single:
            _drop_orphan_asset_state(db, asset_id)
    except SQLAlchemyError as e:
        _fail(db, "delete", e)
    _save(db, "delete")


def delete_scan_events_by_category(db: Session, category: str) -> int:
    """删除某一类别的全部记录，返回条数。"""
    what = f"delete_all:{category}"
    try:
        events = (
            db.query(models.ScanEvent)
            .filter(models.ScanEvent.category == category)
            .all()
        )
        asset_ids = {e.asset_id for e in events if e.category == models.CATEGORY_SINGLE}
        for e in events:
            db.delete(e)
        db.flush()
        for asset_id in asset_ids:
            _drop_orphan_asset_state(db, asset_id)
    except SQLAlchemyError as e:
        _fail(db, what, e)
    _save(db, what)
    return len(events)


def update_address_if_present(db: Session, record_id: str, address: str) -> bool:
    """地址补全：记录已被删除（或非单次扫码）时不做任何事。"""
    event = db.get(models.ScanEvent, record_id)
    if event is None or event.category != models.CATEGORY_SINGLE:
        return False
    event.address = address
    _save(db, "address")
    return True


def attach_photo(
    db: Session, event: models.ScanEvent, data: bytes, content_type: Optional[str]
) -> models.ScanEvent:
    if event.category != models.CATEGORY_SINGLE:
        raise ValueError("仅单次扫码记录可附加照片")
    event.photo_data = data
    event.photo_content_type = content_type or "image/jpeg"
    _save(db, "photo")
    db.refresh(event)
    return event


def rename_scan_event(
    db: Session,
    event: models.ScanEvent,
    display_name: Optional[str],
    kind: Optional[str] = None,
) -> models.ScanEvent:
    """修改显示名称（为空则恢复为资产编号），同步到该资产的状态行；可同时设定资产类型。"""
    cleaned = (display_name or "").strip()
    event.display_name = cleaned or event.asset_id
    state = get_asset_state(db, event.asset_id)
    if state is not None:
        state.display_name = event.display_name
    if kind:
        set_asset_kind(db, event.asset_id, kind, do_commit=False)
    _save(db, "rename")
    db.refresh(event)
    return event


def _kind_key(asset_id: str) -> str:
    # 资产类型按编号大写存取：e012345 与 E012345 是同一辆车
    return (asset_id or "").strip().upper()


def set_asset_kind(db: Session, asset_id: str, kind: str, *, do_commit: bool = True) -> models.AssetKind:
    if kind not in models.ASSET_KINDS:
        raise ValueError(f"未知资产类型：{kind}")
    key = _kind_key(asset_id)
    row = db.get(models.AssetKind, key)
    if row is None:
        row = models.AssetKind(asset_id=key)
        db.add(row)
    row.kind = kind
    row.updated_at = now_utc()
    if do_commit:
        _save(db, "kind")
    return row


def resolve_asset_kind(db: Session, asset_id: str) -> str:
    """已设定的类型优先，否则按编码前缀推断。"""
    row = db.get(models.AssetKind, _kind_key(asset_id))
    if row is not None:
        return row.kind
    return infer_asset_kind(asset_id)


def category_lines(events: List[models.ScanEvent]) -> List[str]:
    """导出/复制用单行文本：关联记录取显示名称，其余取资产编号；空行丢弃。"""
    lines = []
    for e in events:
        if e.category == models.CATEGORY_LINK:
            text = (e.display_name or e.asset_id or "").strip()
        else:
            text = (e.asset_id or "").strip()
        if text:
            lines.append(text)
    return lines

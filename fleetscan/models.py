import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Float,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base
from .time_utils import now_utc

# 扫码记录类别：三者互斥，创建后不可修改
CATEGORY_SINGLE = "single"
CATEGORY_BULK = "bulk"
CATEGORY_LINK = "link"
SCAN_CATEGORIES = (CATEGORY_SINGLE, CATEGORY_BULK, CATEGORY_LINK)

# 资产类型（可人工覆盖推断结果）
ASSET_KINDS = ("bike", "scooter", "iot", "other")


def _new_id() -> str:
    return str(uuid.uuid4())


class ScanEvent(Base):
    """一次被接受的扫码。关联记录不带位置/照片，批量记录不带位置/照片/地址。"""
    __tablename__ = "scan_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    asset_id: Mapped[str] = mapped_column(String(256), index=True)
    display_name: Mapped[str] = mapped_column(String(256))
    category: Mapped[str] = mapped_column(String(16))  # single / bulk / link
    # 仅 category=link 时有值：关联的 IoT 模块编号
    linked_secondary_id: Mapped[Optional[str]] = mapped_column(
        String(256), nullable=True
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=now_utc)
    # 0,0 表示位置未知
    latitude: Mapped[float] = mapped_column(Float, default=0.0)
    longitude: Mapped[float] = mapped_column(Float, default=0.0)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # 逆地理编码异步补全
    photo_data: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    photo_content_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_scan_events_category_ts", "category", "timestamp"),
        Index("ix_scan_events_asset_category", "asset_id", "category"),
        Index("ix_scan_events_link_pair", "asset_id", "linked_secondary_id"),
    )


class AssetState(Base):
    """每个资产最近一次单次扫码的状态投影；仅由单次扫码创建/更新。"""
    __tablename__ = "asset_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    asset_id: Mapped[str] = mapped_column(String(256), unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    last_timestamp: Mapped[datetime] = mapped_column(DateTime, default=now_utc, index=True)
    last_latitude: Mapped[float] = mapped_column(Float, default=0.0)
    last_longitude: Mapped[float] = mapped_column(Float, default=0.0)


class AssetKind(Base):
    """资产类型人工设定，与 AssetState 生命周期无关。"""
    __tablename__ = "asset_kinds"

    asset_id: Mapped[str] = mapped_column(String(256), primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), default="other")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)

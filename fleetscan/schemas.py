from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .time_utils import ensure_utc_aware

ScanModeName = Literal["single", "bulk", "link"]
AssetKindName = Literal["bike", "scooter", "iot", "other"]


class CaptureSessionOpen(BaseModel):
    mode: ScanModeName = "single"


class CaptureModeUpdate(BaseModel):
    mode: ScanModeName


class CaptureSessionRead(BaseModel):
    """当前扫码会话：模式、关联步骤与提示文字。"""
    id: str
    mode: str
    link_step: str
    pending_primary_id: Optional[str] = None
    hint: str
    enabled_modes: list[str]


class ScanRequest(BaseModel):
    payload: str = Field(..., description="解码器给出的原始内容")
    latitude: Optional[float] = Field(None, ge=-90, le=90, description="当前纬度，未知可不传")
    longitude: Optional[float] = Field(None, ge=-180, le=180, description="当前经度，未知可不传")


class FeedbackRead(BaseModel):
    toast: Optional[str] = None
    beeps: int = 0
    flash: bool = False
    popup: bool = False
    popup_text: Optional[str] = None

    class Config:
        from_attributes = True


class ScanResultRead(BaseModel):
    outcome: str
    mode: str
    link_step: str
    hint: str
    feedback: FeedbackRead
    normalized: Optional[str] = None
    secondary_id: Optional[str] = None
    record_id: Optional[str] = None
    photo_requested: bool = False
    link_summary: Optional[str] = None


class ScanEventRead(BaseModel):
    id: str
    asset_id: str
    display_name: str
    category: str
    linked_secondary_id: Optional[str] = None
    timestamp: datetime
    latitude: float
    longitude: float
    address: Optional[str] = None
    has_photo: bool = False
    kind: Optional[str] = None

    @field_validator("timestamp", mode="after")
    @classmethod
    def timestamp_utc(cls, v: datetime) -> datetime:
        return ensure_utc_aware(v)

    class Config:
        from_attributes = True


class ScanEventUpdate(BaseModel):
    """修改显示名称（空则恢复为资产编号），可同时设定资产类型。"""
    display_name: Optional[str] = Field(None, max_length=256)
    kind: Optional[AssetKindName] = None


class AssetStateRead(BaseModel):
    asset_id: str
    display_name: Optional[str] = None
    last_timestamp: datetime
    last_latitude: float
    last_longitude: float
    kind: Optional[str] = None

    @field_validator("last_timestamp", mode="after")
    @classmethod
    def last_timestamp_utc(cls, v: datetime) -> datetime:
        return ensure_utc_aware(v)

    class Config:
        from_attributes = True


class AssetKindUpdate(BaseModel):
    kind: AssetKindName


class AssetKindRead(BaseModel):
    asset_id: str
    kind: str
    display_name: Optional[str] = None


class NearestAssetRead(BaseModel):
    asset_id: Optional[str] = None
    display_name: Optional[str] = None
    distance_meters: Optional[int] = None
    kind: Optional[str] = None


class LatestScanRead(BaseModel):
    """资产最近一次带照片的单次扫码。"""
    asset_id: str
    record_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    has_photo: bool = False

    @field_validator("timestamp", mode="after")
    @classmethod
    def timestamp_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc_aware(v)

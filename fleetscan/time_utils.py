"""
时间处理约定：
- 写入 DB 的时间统一为 naive UTC。
- API 返回的 datetime 序列化为带 Z 的 ISO，便于前端按本地时区显示。
- 防抖/冷却窗口一律使用单调时钟，不受系统校时影响。
"""
import time
from datetime import datetime, timezone

UTC = timezone.utc


def now_utc() -> datetime:
    """当前 UTC 时刻，naive，便于存 DB。"""
    return datetime.now(UTC).replace(tzinfo=None)


def monotonic_seconds() -> float:
    """单调时钟读数（秒），用于扫码防抖。"""
    return time.monotonic()


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """将 DB 读出的 naive datetime（约定为 UTC）转为 timezone-aware UTC，便于 Pydantic 序列化带 Z。"""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        return dt.astimezone(UTC)
    return dt.replace(tzinfo=UTC)


def epoch_seconds() -> int:
    """当前 Unix 秒，用于导出文件名。"""
    return int(time.time())

"""扫码结果 -> 提示音、浮层提示与弹窗，供前端直接渲染。"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

TOAST_SCAN_OK = "✅ 扫码成功"
TOAST_LINK_DONE = "✅ 关联完成"
TOAST_ALREADY_REGISTERED = "⚠️ 已登记过"
TOAST_SAVE_FAILED = "❌ 保存失败"

HINT_LINK_PRIMARY = "关联：请扫描车辆二维码"
HINT_LINK_SECONDARY = "关联：请扫描 IoT 模块二维码"


class ScanOutcome(str, Enum):
    ACCEPTED_SINGLE = "accepted_single"
    ACCEPTED_BULK_NEW = "accepted_bulk_new"
    ACCEPTED_BULK_DUPLICATE_IGNORED = "accepted_bulk_duplicate_ignored"
    LINK_PRIMARY_CAPTURED = "link_primary_captured"
    LINK_PRIMARY_AWAITED_REJECT = "link_primary_awaited_reject"
    LINK_SECONDARY_AWAITED_REJECT = "link_secondary_awaited_reject"
    LINK_COMPLETED = "link_completed"
    LINK_DUPLICATE_IGNORED = "link_duplicate_ignored"
    REJECTED_MALFORMED = "rejected_malformed"
    SUPPRESSED = "suppressed"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass
class Feedback:
    toast: Optional[str] = None
    beeps: int = 0
    flash: bool = False
    popup: bool = False
    popup_text: Optional[str] = None


def build_feedback(outcome: ScanOutcome, link_summary: Optional[str] = None) -> Feedback:
    """按结果给出反馈。重复关联仍提示一声，让操作员知道码已被读到。"""
    if outcome in (
        ScanOutcome.ACCEPTED_SINGLE,
        ScanOutcome.ACCEPTED_BULK_NEW,
        ScanOutcome.LINK_PRIMARY_CAPTURED,
    ):
        return Feedback(toast=TOAST_SCAN_OK, beeps=1, flash=True)
    if outcome == ScanOutcome.LINK_COMPLETED:
        return Feedback(
            toast=TOAST_LINK_DONE,
            beeps=1,
            flash=True,
            popup=True,
            popup_text=link_summary,
        )
    if outcome == ScanOutcome.LINK_DUPLICATE_IGNORED:
        return Feedback(toast=TOAST_ALREADY_REGISTERED, beeps=1, flash=True)
    if outcome == ScanOutcome.PERSISTENCE_FAILED:
        return Feedback(toast=TOAST_SAVE_FAILED)
    # 拒绝、忽略类结果只更新提示文字
    return Feedback()

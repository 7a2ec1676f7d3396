"""
扫码防抖 / 冷却：按模式抑制同一码的重复读取。所有时间均为单调时钟秒数。

- 解码端冷却（DecoderLockout）：一次投递后固定时长内不再投递，模拟解码器自身的暂停。
- 批量模式：本轮已记录过的编码一律忽略；距上次接受的批量扫码不足窗口期也忽略。
- 关联模式：距上次处理的扫码不足窗口期，或与上一次处理的编码相同，则忽略。
被拦截的读取不产生任何副作用，也不推进任何状态。
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set


class GateVerdict(str, Enum):
    PASS = "pass"
    DUPLICATE = "duplicate"  # 批量本轮已记录
    TOO_SOON = "too_soon"    # 窗口期内或关联模式下的同码重读


class DecoderLockout:
    """解码端冷却，按模式取冷却时长。"""

    def __init__(self, cooldowns: Dict[str, float]):
        self.cooldowns = dict(cooldowns)
        self._last_delivery_at: Optional[float] = None

    def admit(self, mode: str, now: float) -> bool:
        cooldown = self.cooldowns.get(mode, 0.0)
        if self._last_delivery_at is not None and now - self._last_delivery_at < cooldown:
            return False
        self._last_delivery_at = now
        return True

    def reset(self) -> None:
        self._last_delivery_at = None


@dataclass
class BulkSnapshot:
    """接受批量扫码前的状态，持久化失败时用于回滚。"""
    last_accepted_at: Optional[float]


class DebounceGate:
    def __init__(self, bulk_min_interval: float, link_min_interval: float):
        self.bulk_min_interval = bulk_min_interval
        self.link_min_interval = link_min_interval
        self.seen_in_bulk_session: Set[str] = set()
        self.last_bulk_accepted_at: Optional[float] = None
        self.last_link_read_at: Optional[float] = None
        self.last_link_read_value: str = ""

    # 批量模式

    def check_bulk(self, code: str, now: float) -> GateVerdict:
        if code in self.seen_in_bulk_session:
            return GateVerdict.DUPLICATE
        if (
            self.last_bulk_accepted_at is not None
            and now - self.last_bulk_accepted_at < self.bulk_min_interval
        ):
            return GateVerdict.TOO_SOON
        return GateVerdict.PASS

    def accept_bulk(self, code: str, now: float) -> BulkSnapshot:
        snapshot = BulkSnapshot(last_accepted_at=self.last_bulk_accepted_at)
        self.seen_in_bulk_session.add(code)
        self.last_bulk_accepted_at = now
        return snapshot

    def rollback_bulk(self, code: str, snapshot: BulkSnapshot) -> None:
        self.seen_in_bulk_session.discard(code)
        self.last_bulk_accepted_at = snapshot.last_accepted_at

    def reset_bulk(self) -> None:
        """（重新）进入批量模式时清空本轮去重记忆。"""
        self.seen_in_bulk_session.clear()
        self.last_bulk_accepted_at = None

    # 关联模式

    def check_link(self, code: str, now: float) -> GateVerdict:
        """通过时记录本次读取，供下一次比较。"""
        if (
            self.last_link_read_at is not None
            and now - self.last_link_read_at < self.link_min_interval
        ):
            return GateVerdict.TOO_SOON
        if code == self.last_link_read_value:
            return GateVerdict.TOO_SOON
        self.last_link_read_at = now
        self.last_link_read_value = code
        return GateVerdict.PASS

    def reset_link(self, *, clear_time: bool) -> None:
        self.last_link_read_value = ""
        if clear_time:
            self.last_link_read_at = None

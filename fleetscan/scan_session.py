"""
扫码会话状态机：根据当前模式决定每次解码结果的处理方式。

流程：解码端冷却 -> 规范化 -> 防抖 -> 分类 -> 写入 -> 反馈。
会话只存在于内存，随扫码界面打开而创建、关闭而销毁；切换模式即丢弃相关记忆。
任何结果之后会话都回到一致状态：关联流程在每次提交尝试后回到「等待车辆」。
"""
import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from . import scan_writer
from .config import get_primary_code_prefixes, resolve_enabled_mode, settings
from .feedback import (
    HINT_LINK_PRIMARY,
    HINT_LINK_SECONDARY,
    Feedback,
    ScanOutcome,
    build_feedback,
)
from .geo import has_known_location
from .scan_code_utils import extract_secondary_id, is_primary_code, normalize_scan_payload
from .scan_gate import DebounceGate, DecoderLockout, GateVerdict
from .time_utils import monotonic_seconds

_logger = logging.getLogger(__name__)


class ScanMode(str, Enum):
    SINGLE = "single"
    BULK = "bulk"
    LINK = "link"


class LinkStep(str, Enum):
    AWAITING_PRIMARY = "awaiting_primary"
    AWAITING_SECONDARY = "awaiting_secondary"


@dataclass
class ScanResult:
    outcome: ScanOutcome
    mode: ScanMode
    link_step: LinkStep
    hint: str
    feedback: Feedback = field(default_factory=Feedback)
    normalized: Optional[str] = None
    secondary_id: Optional[str] = None
    record_id: Optional[str] = None
    photo_requested: bool = False
    link_summary: Optional[str] = None


class CaptureSession:
    def __init__(
        self,
        mode: ScanMode = ScanMode.SINGLE,
        *,
        clock: Callable[[], float] = monotonic_seconds,
        primary_prefixes: Optional[List[str]] = None,
        lockouts: Optional[Dict[str, float]] = None,
        bulk_min_interval: float = 0.6,
        link_min_interval: float = 0.25,
        enricher=None,
    ):
        self.id = str(uuid.uuid4())
        self.mode = mode
        self.link_step = LinkStep.AWAITING_PRIMARY
        self.pending_primary_id: Optional[str] = None
        self.last_scanned_text: Optional[str] = None
        self.primary_prefixes = (
            list(primary_prefixes) if primary_prefixes is not None else ["S0", "E0"]
        )
        self.gate = DebounceGate(bulk_min_interval, link_min_interval)
        self.lockout = DecoderLockout(lockouts or {})
        self.enricher = enricher
        self._clock = clock
        # 同一时刻只处理一次投递：冷却、防抖的「先查后记」不能交错
        self._lock = threading.Lock()

    def hint_text(self) -> str:
        if self.mode != ScanMode.LINK:
            return f"上次扫码：{self.last_scanned_text or '无'}"
        if self.link_step == LinkStep.AWAITING_PRIMARY:
            return HINT_LINK_PRIMARY
        return HINT_LINK_SECONDARY

    def switch_mode(self, mode: ScanMode) -> None:
        """
        进入批量模式清空去重记忆；进入或离开关联模式都回到「等待车辆」。
        解码端冷却随之重置，新模式下的第一次读取不会被上一模式的冷却吞掉。
        """
        with self._lock:
            self.mode = mode
            if mode == ScanMode.BULK:
                self.gate.reset_bulk()
            self._reset_link()
            self.gate.reset_link(clear_time=(mode == ScanMode.LINK))
            self.lockout.reset()

    def _reset_link(self) -> None:
        self.link_step = LinkStep.AWAITING_PRIMARY
        self.pending_primary_id = None

    def _result(self, outcome: ScanOutcome, link_summary: Optional[str] = None, **extra) -> ScanResult:
        return ScanResult(
            outcome=outcome,
            mode=self.mode,
            link_step=self.link_step,
            hint=self.hint_text(),
            feedback=build_feedback(outcome, link_summary),
            link_summary=link_summary,
            **extra,
        )

    def process(
        self,
        db: Session,
        raw: Optional[str],
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> ScanResult:
        """处理解码器投递的一次原始内容。位置仅单次扫码使用，未知时记为 0,0。"""
        with self._lock:
            return self._process_one(db, raw, latitude, longitude)

    def _process_one(
        self,
        db: Session,
        raw: Optional[str],
        latitude: Optional[float],
        longitude: Optional[float],
    ) -> ScanResult:
        now = self._clock()
        if not self.lockout.admit(self.mode.value, now):
            return self._result(ScanOutcome.SUPPRESSED)
        code = normalize_scan_payload(raw)
        if not code:
            return self._result(ScanOutcome.REJECTED_MALFORMED)
        if self.mode == ScanMode.SINGLE:
            return self._process_single(db, code, latitude, longitude)
        if self.mode == ScanMode.BULK:
            return self._process_bulk(db, code, now)
        return self._process_link(db, raw, code, now)

    def _process_single(
        self,
        db: Session,
        code: str,
        latitude: Optional[float],
        longitude: Optional[float],
    ) -> ScanResult:
        self.last_scanned_text = code
        lat = latitude if latitude is not None else 0.0
        lon = longitude if longitude is not None else 0.0
        try:
            event = scan_writer.record_single_scan(db, code, lat, lon)
        except scan_writer.ScanPersistenceError:
            return self._result(ScanOutcome.PERSISTENCE_FAILED, normalized=code)
        if self.enricher is not None and has_known_location(lat, lon):
            self.enricher.schedule(event.id, lat, lon)
        return self._result(
            ScanOutcome.ACCEPTED_SINGLE,
            normalized=code,
            record_id=event.id,
            photo_requested=True,
        )

    def _process_bulk(self, db: Session, code: str, now: float) -> ScanResult:
        verdict = self.gate.check_bulk(code, now)
        if verdict == GateVerdict.DUPLICATE:
            self.last_scanned_text = code
            return self._result(ScanOutcome.ACCEPTED_BULK_DUPLICATE_IGNORED, normalized=code)
        if verdict == GateVerdict.TOO_SOON:
            return self._result(ScanOutcome.SUPPRESSED, normalized=code)
        snapshot = self.gate.accept_bulk(code, now)
        self.last_scanned_text = code
        try:
            event = scan_writer.record_bulk_scan(db, code)
        except scan_writer.ScanPersistenceError:
            self.gate.rollback_bulk(code, snapshot)
            return self._result(ScanOutcome.PERSISTENCE_FAILED, normalized=code)
        return self._result(ScanOutcome.ACCEPTED_BULK_NEW, normalized=code, record_id=event.id)

    def _process_link(self, db: Session, raw: str, code: str, now: float) -> ScanResult:
        if self.gate.check_link(code, now) != GateVerdict.PASS:
            return self._result(ScanOutcome.SUPPRESSED, normalized=code)

        if self.link_step == LinkStep.AWAITING_PRIMARY:
            if not is_primary_code(code, self.primary_prefixes):
                return self._result(ScanOutcome.LINK_PRIMARY_AWAITED_REJECT, normalized=code)
            self.pending_primary_id = code
            self.link_step = LinkStep.AWAITING_SECONDARY
            self.last_scanned_text = code
            return self._result(ScanOutcome.LINK_PRIMARY_CAPTURED, normalized=code)

        primary_id = self.pending_primary_id
        # 扫码枪又读到车辆码：忽略，继续等待 IoT 模块
        if code == primary_id or is_primary_code(code, self.primary_prefixes):
            return self._result(ScanOutcome.LINK_SECONDARY_AWAITED_REJECT, normalized=code)

        # 复合码结构在规范化前才完整，故对原始内容提取
        secondary_id = extract_secondary_id(raw)
        summary = f"{primary_id} -> {secondary_id}"
        self._reset_link()
        self.last_scanned_text = summary
        try:
            commit = scan_writer.commit_link(db, primary_id, secondary_id)
        except scan_writer.ScanPersistenceError:
            return self._result(
                ScanOutcome.PERSISTENCE_FAILED,
                link_summary=summary,
                normalized=code,
                secondary_id=secondary_id,
            )
        if commit.duplicate:
            return self._result(
                ScanOutcome.LINK_DUPLICATE_IGNORED,
                link_summary=f"{summary}（已登记）",
                normalized=code,
                secondary_id=secondary_id,
                record_id=commit.record.id,
            )
        _logger.info("关联完成: %s", summary)
        return self._result(
            ScanOutcome.LINK_COMPLETED,
            link_summary=summary,
            normalized=code,
            secondary_id=secondary_id,
            record_id=commit.record.id,
        )


class CaptureSessionRegistry:
    """进程内至多一个打开的扫码会话（单写者）；打开新会话会先关闭旧会话。"""

    def __init__(self, clock: Callable[[], float] = monotonic_seconds, enricher=None):
        self.clock = clock
        self.enricher = enricher
        self._current: Optional[CaptureSession] = None
        self._lock = threading.RLock()

    def open(self, mode: str = ScanMode.SINGLE.value) -> CaptureSession:
        with self._lock:
            if self._current is not None:
                self.close()
            session = CaptureSession(
                ScanMode(resolve_enabled_mode(mode)),
                clock=self.clock,
                primary_prefixes=get_primary_code_prefixes(),
                lockouts={
                    ScanMode.SINGLE.value: settings.DECODER_LOCKOUT_SINGLE_S,
                    ScanMode.BULK.value: settings.DECODER_LOCKOUT_BULK_S,
                    ScanMode.LINK.value: settings.DECODER_LOCKOUT_LINK_S,
                },
                bulk_min_interval=settings.BULK_MIN_INTERVAL_S,
                link_min_interval=settings.LINK_MIN_INTERVAL_S,
                enricher=self.enricher,
            )
            self._current = session
        _logger.info("扫码会话已打开: id=%s mode=%s", session.id, session.mode.value)
        return session

    def current(self) -> Optional[CaptureSession]:
        return self._current

    def switch_mode(self, mode: str) -> Optional[CaptureSession]:
        with self._lock:
            session = self._current
            if session is None:
                return None
            session.switch_mode(ScanMode(resolve_enabled_mode(mode)))
            return session

    def close(self) -> bool:
        with self._lock:
            if self._current is None:
                return False
            _logger.info("扫码会话已关闭: id=%s", self._current.id)
            self._current = None
            return True

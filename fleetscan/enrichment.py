"""
单次扫码地址补全：记录先落库并立即可见，逆地理编码在后台线程完成后再回写。
任务按记录 id 登记，删除记录时可取消；回写使用 update_address_if_present，记录已删除则不做任何事。
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Optional

import httpx

from . import scan_writer
from .config import settings
from .database import SessionLocal

_logger = logging.getLogger(__name__)

AddressResolver = Callable[[float, float], Optional[str]]


class HttpReverseGeocoder:
    """Nominatim 兼容的逆地理编码：GET {url}?lat=..&lon=..&format=jsonv2。"""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        user_agent: str = "fleetscan/0.1",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.user_agent = user_agent
        self._transport = transport

    def __call__(self, latitude: float, longitude: float) -> Optional[str]:
        with httpx.Client(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        ) as client:
            r = client.get(
                self.url,
                params={"lat": latitude, "lon": longitude, "format": "jsonv2"},
            )
        r.raise_for_status()
        data = r.json()
        address = (data.get("display_name") or data.get("name") or "").strip()
        return address or None


def build_default_resolver() -> Optional[AddressResolver]:
    """未配置 GEOCODER_URL 时不补全地址。"""
    if not settings.GEOCODER_URL:
        return None
    return HttpReverseGeocoder(
        settings.GEOCODER_URL,
        timeout=settings.GEOCODER_TIMEOUT,
        user_agent=settings.GEOCODER_USER_AGENT,
    )


class AddressEnricher:
    def __init__(
        self,
        resolver: Optional[AddressResolver],
        session_factory=SessionLocal,
        max_workers: int = 2,
    ):
        self.resolver = resolver
        self._session_factory = session_factory
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="address")
        self._tasks: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def schedule(self, record_id: str, latitude: float, longitude: float) -> Optional[Future]:
        if self.resolver is None:
            return None
        future = self._executor.submit(self._run, record_id, latitude, longitude)
        with self._lock:
            self._tasks[record_id] = future
        future.add_done_callback(lambda f: self._forget(record_id, f))
        return future

    def cancel(self, record_id: str) -> bool:
        """取消尚未开始的补全任务；已在执行的任务回写时会发现记录不存在。"""
        with self._lock:
            future = self._tasks.pop(record_id, None)
        if future is None:
            return False
        return future.cancel()

    def pending(self) -> int:
        with self._lock:
            return len(self._tasks)

    def shutdown(self, wait: bool = True) -> int:
        """停止线程池，返回停止时尚未完成的任务数；不等待时未开始的任务被取消。"""
        left = self.pending()
        if left and not wait:
            _logger.info("停止地址补全，放弃 %d 个未完成任务", left)
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        return left

    def _forget(self, record_id: str, future: Future) -> None:
        with self._lock:
            if self._tasks.get(record_id) is future:
                del self._tasks[record_id]

    def _run(self, record_id: str, latitude: float, longitude: float) -> bool:
        try:
            address = self.resolver(latitude, longitude)
        except httpx.HTTPError as e:
            _logger.warning("逆地理编码失败 record=%s: %s", record_id, e)
            return False
        except Exception:
            _logger.exception("逆地理编码异常 record=%s", record_id)
            return False
        if not address:
            return False
        db = self._session_factory()
        try:
            return scan_writer.update_address_if_present(db, record_id, address)
        except scan_writer.ScanPersistenceError:
            return False
        finally:
            db.close()

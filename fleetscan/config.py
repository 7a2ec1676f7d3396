"""应用配置：数据库、扫码模式、防抖窗口、逆地理编码等（从环境变量读取）。"""
import os
from functools import lru_cache
from typing import List, Tuple

from dotenv import load_dotenv

load_dotenv()

# 扫码模式固定顺序：禁用某模式时按此顺序回退
ALL_MODES: Tuple[str, ...] = ("single", "bulk", "link")


def _float_env(name: str, default: str) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return float(default)


@lru_cache
def get_settings():
    class Settings:
        # 数据库（手持终端本地部署默认 SQLite）
        DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./fleetscan.db")
        # 打印资产标签用：二维码内容为 {BASE_URL}/app?id=<资产编号>
        BASE_URL: str = os.getenv("BASE_URL", "http://127.0.0.1:8010")
        # 主资产编码前缀（2 位，逗号分隔），如 S0 滑板车、E0 自行车
        PRIMARY_CODE_PREFIXES: str = os.getenv("PRIMARY_CODE_PREFIXES", "S0,E0")
        # 启用的扫码模式，逗号分隔：single / bulk / link
        ENABLED_MODES: str = os.getenv("ENABLED_MODES", ",".join(ALL_MODES))
        # 解码端冷却（秒）：同一次出码后解码器暂停投递的时长
        DECODER_LOCKOUT_SINGLE_S: float = _float_env("DECODER_LOCKOUT_SINGLE_S", "1.0")
        DECODER_LOCKOUT_BULK_S: float = _float_env("DECODER_LOCKOUT_BULK_S", "0.25")
        DECODER_LOCKOUT_LINK_S: float = _float_env("DECODER_LOCKOUT_LINK_S", "0.6")
        # 批量模式：距上次接受的批量扫码不足该秒数则忽略（即使编码不同）
        BULK_MIN_INTERVAL_S: float = _float_env("BULK_MIN_INTERVAL_S", "0.6")
        # 关联模式：距上次处理的扫码不足该秒数则忽略
        LINK_MIN_INTERVAL_S: float = _float_env("LINK_MIN_INTERVAL_S", "0.25")
        # 逆地理编码（为空则不补全地址），Nominatim 兼容的 JSON 接口
        GEOCODER_URL: str = os.getenv("GEOCODER_URL", "")
        GEOCODER_TIMEOUT: float = _float_env("GEOCODER_TIMEOUT", "10.0")
        GEOCODER_USER_AGENT: str = os.getenv("GEOCODER_USER_AGENT", "fleetscan/0.1")
        # 照片上传大小上限（字节）
        PHOTO_MAX_BYTES: int = int(os.getenv("PHOTO_MAX_BYTES", str(8 * 1024 * 1024)))
        # 单次导出最大条数
        EXPORT_MAX_RECORDS: int = int(os.getenv("EXPORT_MAX_RECORDS", "50000"))
        # 服务监听；扫码终端在局域网内访问时 HOST 设为 0.0.0.0
        HOST: str = os.getenv("HOST", "127.0.0.1")
        PORT: int = int(os.getenv("PORT", "8010"))
        RELOAD: bool = os.getenv("RELOAD", "").strip().lower() in ("1", "true", "yes")
        LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    return Settings()


settings = get_settings()


def get_primary_code_prefixes() -> List[str]:
    """解析主资产编码前缀列表（统一大写）。"""
    raw = (settings.PRIMARY_CODE_PREFIXES or "").strip()
    if not raw:
        return []
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


def get_enabled_modes() -> List[str]:
    """解析启用的扫码模式；全部未启用或配置非法时至少保留 single。"""
    raw = (settings.ENABLED_MODES or "").strip().lower()
    wanted = {s.strip() for s in raw.split(",") if s.strip()}
    modes = [m for m in ALL_MODES if m in wanted]
    return modes or ["single"]


def resolve_enabled_mode(mode: str) -> str:
    """请求的模式未启用时，按 single、bulk、link 顺序回退到第一个启用的模式。"""
    enabled = get_enabled_modes()
    if mode in enabled:
        return mode
    return enabled[0]

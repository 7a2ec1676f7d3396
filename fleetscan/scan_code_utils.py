"""
扫码内容规范化：从解码器给出的原始字符串中取出用于查询/入库的编码。
支持：带 id 参数的 URL（资产标签）、纯编号、IoT 模块复合码（下划线或短横线分隔）。
"""
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlsplit

# IMEI 类字段最少位数
_IMEI_MIN_DIGITS = 10


def normalize_scan_payload(raw: Optional[str]) -> str:
    """
    去掉首尾空白/换行；若为绝对 URL 且带名为 id（不区分大小写）的非空参数，返回该参数值。
    其余情况原样返回去空白后的字符串（可能为空串，调用方需判断）。
    http://x/app?id=S020337 -> S020337
    """
    if not raw or not isinstance(raw, str):
        return ""
    s = raw.strip()
    # id 值本身仍可能是带 id 的 URL，取到不动点为止（每轮严格变短）
    while s:
        value = _id_query_param(s)
        if not value or value == s:
            break
        s = value
    return s


def _id_query_param(text: str) -> Optional[str]:
    try:
        parts = urlsplit(text)
    except ValueError:
        return None
    # 仅绝对 URL（有 scheme）才解析参数
    if not parts.scheme or not parts.query:
        return None
    for name, value in parse_qsl(parts.query, keep_blank_values=True):
        if name.lower() == "id" and value.strip():
            return value.strip()
    return None


def extract_secondary_id(raw: Optional[str]) -> str:
    """
    从 IoT 模块复合码中取出模块编号，优先级：
    1. 最后一个下划线之后的部分：OEM-RS-001_RBEF7B -> RBEF7B
    2. 短横线第 3 段为 >=10 位纯数字（IMEI）：2010700099-ZK105MGC-864431040521538-... -> 864431040521538
    3. 原样返回去空白后的字符串
    下划线规则必须先于短横线规则，否则会得到 001_RBEF7B。
    """
    if not raw or not isinstance(raw, str):
        return ""
    s = raw.strip()
    if not s:
        return s
    if "_" in s:
        after = s.rsplit("_", 1)[1].strip()
        if after:
            return after
    fields = s.split("-")
    if len(fields) >= 3:
        third = fields[2].strip()
        if third and _is_ascii_digits(third) and len(third) >= _IMEI_MIN_DIGITS:
            return third
    return s


def _is_ascii_digits(text: str) -> bool:
    return all("0" <= ch <= "9" for ch in text)


def is_primary_code(code: Optional[str], prefixes: Iterable[str]) -> bool:
    """主资产编码：已知 2 位类别前缀（不区分大小写）+ 至少一位数字，如 E012345。"""
    if not code:
        return False
    upper = code.strip().upper()
    for prefix in prefixes:
        if not prefix or not upper.startswith(prefix):
            continue
        rest = upper[len(prefix):]
        if rest and _is_ascii_digits(rest):
            return True
    return False


def infer_asset_kind(asset_id: Optional[str]) -> str:
    """按编码前缀推断资产类型：S0 滑板车、E0 自行车，其余 other。"""
    c = (asset_id or "").strip().upper()
    if c.startswith("S0"):
        return "scooter"
    if c.startswith("E0"):
        return "bike"
    return "other"

"""扫码内容规范化、IoT 模块编号提取、主资产编码识别。"""
import pytest

from fleetscan.scan_code_utils import (
    extract_secondary_id,
    infer_asset_kind,
    is_primary_code,
    normalize_scan_payload,
)


def test_normalize_url_with_id():
    """带 id 参数的 URL 取参数值。"""
    assert normalize_scan_payload("http://x/app?id=S020337") == "S020337"
    assert normalize_scan_payload("http://getapony.com/app?id=S020337") == "S020337"


def test_normalize_trims_whitespace():
    assert normalize_scan_payload("  S020337  ") == "S020337"
    assert normalize_scan_payload("\nE012345\r\n") == "E012345"


def test_normalize_url_without_id_returns_trimmed():
    """无 id 参数的 URL 原样返回（去空白）。"""
    assert normalize_scan_payload("  http://x/app?foo=1 ") == "http://x/app?foo=1"


def test_normalize_id_param_name_case_insensitive():
    assert normalize_scan_payload("https://x/app?ID=E012345") == "E012345"
    assert normalize_scan_payload("https://x/app?foo=1&Id=E012345") == "E012345"


def test_normalize_empty_id_value_falls_back():
    assert normalize_scan_payload("http://x/app?id=") == "http://x/app?id="


def test_normalize_relative_url_not_parsed():
    """非绝对 URL 不解析参数。"""
    assert normalize_scan_payload("/app?id=E012345") == "/app?id=E012345"


def test_normalize_empty_and_none():
    assert normalize_scan_payload("") == ""
    assert normalize_scan_payload("   \n") == ""
    assert normalize_scan_payload(None) == ""


@pytest.mark.parametrize(
    "raw",
    [
        "http://x/app?id=S020337",
        "  S020337  ",
        "http://x/app?foo=1",
        "http://a/?id=http%3A%2F%2Fb%2F%3Fid%3DZ9",
        "http://a/?id=%20%20X%20",
        "OEM-RS-001_RBEF7B",
        "",
        "   ",
        "http://[::1",
    ],
)
def test_normalize_is_idempotent(raw):
    once = normalize_scan_payload(raw)
    assert normalize_scan_payload(once) == once


def test_extract_underscore_suffix():
    """下划线规则优先：不能被短横线规则误取为 001_RBEF7B。"""
    assert extract_secondary_id("OEM-RS-001_RBEF7B") == "RBEF7B"


def test_extract_dash_imei_field():
    assert extract_secondary_id("2010700099-ZK105MGC-864431040521538-8988303") == "864431040521538"


def test_extract_plain_value():
    assert extract_secondary_id("plainvalue") == "plainvalue"
    assert extract_secondary_id("  plainvalue \n") == "plainvalue"


def test_extract_trailing_underscore_falls_through():
    """最后一个下划线后为空时继续尝试短横线规则。"""
    assert extract_secondary_id("A-B-1234567890_") == "A-B-1234567890_"
    assert extract_secondary_id("X_") == "X_"


def test_extract_dash_field_too_short_or_not_digits():
    assert extract_secondary_id("A-B-123456789-C") == "A-B-123456789-C"
    assert extract_secondary_id("A-B-12345678AB-C") == "A-B-12345678AB-C"
    assert extract_secondary_id("A-1234567890") == "A-1234567890"


def test_extract_dash_field_exactly_ten_digits():
    assert extract_secondary_id("A-B-1234567890") == "1234567890"


def test_extract_empty():
    assert extract_secondary_id("") == ""
    assert extract_secondary_id(None) == ""


def test_is_primary_code():
    prefixes = ["S0", "E0"]
    assert is_primary_code("E012345", prefixes)
    assert is_primary_code("S020337", prefixes)
    assert is_primary_code("e012345", prefixes)
    assert not is_primary_code("RANDOM123", prefixes)
    assert not is_primary_code("E0", prefixes)
    assert not is_primary_code("E0ABC", prefixes)
    assert not is_primary_code("RBEF7B", prefixes)
    assert not is_primary_code("", prefixes)
    assert not is_primary_code("E012345", [])


def test_infer_asset_kind():
    assert infer_asset_kind("S020337") == "scooter"
    assert infer_asset_kind("e012345") == "bike"
    assert infer_asset_kind("XYZ") == "other"
    assert infer_asset_kind(None) == "other"

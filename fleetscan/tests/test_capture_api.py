"""扫码会话接口：打开/切换/关闭会话，提交扫码并返回结果与反馈。"""
from fastapi.testclient import TestClient


def test_scan_without_session_returns_409(client: TestClient):
    r = client.post("/api/capture/scans", json={"payload": "E012345"})
    assert r.status_code == 409
    assert "扫码会话" in r.json()["detail"]


def test_open_and_get_session(client: TestClient, open_capture):
    data = open_capture("link")
    assert data["mode"] == "link"
    assert data["link_step"] == "awaiting_primary"
    assert data["hint"] == "关联：请扫描车辆二维码"
    assert data["enabled_modes"] == ["single", "bulk", "link"]
    r = client.get("/api/capture/session")
    assert r.status_code == 200
    assert r.json()["id"] == data["id"]


def test_open_invalid_mode_422(client: TestClient):
    r = client.post("/api/capture/session", json={"mode": "batch"})
    assert r.status_code == 422


def test_close_session(client: TestClient, open_capture):
    open_capture("single")
    assert client.delete("/api/capture/session").status_code == 204
    assert client.get("/api/capture/session").status_code == 409
    assert client.delete("/api/capture/session").status_code == 404


def test_single_scan_over_http(client: TestClient, open_capture, scan):
    open_capture("single")
    data = scan("http://getapony.com/app?id=S020337", latitude=48.85, longitude=2.35)
    assert data["outcome"] == "accepted_single"
    assert data["normalized"] == "S020337"
    assert data["photo_requested"] is True
    assert data["feedback"] == {
        "toast": "✅ 扫码成功",
        "beeps": 1,
        "flash": True,
        "popup": False,
        "popup_text": None,
    }
    r = client.get(f"/api/scans/{data['record_id']}")
    assert r.status_code == 200
    assert r.json()["latitude"] == 48.85
    assert r.json()["timestamp"].endswith("Z")


def test_single_decoder_lockout_over_http(client: TestClient, open_capture, scan):
    open_capture("single")
    scan("E012345")
    assert scan("E012346", advance=0.2)["outcome"] == "suppressed"


def test_bulk_dedup_and_reentry_over_http(client: TestClient, open_capture, scan):
    open_capture("bulk")
    assert scan("A1")["outcome"] == "accepted_bulk_new"
    assert scan("A1")["outcome"] == "accepted_bulk_duplicate_ignored"
    r = client.put("/api/capture/session/mode", json={"mode": "bulk"})
    assert r.status_code == 200
    assert scan("A1")["outcome"] == "accepted_bulk_new"
    assert client.get("/api/scans/count", params={"category": "bulk"}).json() == {"total": 2}


def test_link_flow_over_http(client: TestClient, open_capture, scan):
    open_capture("link")
    assert scan("RANDOM123")["outcome"] == "link_primary_awaited_reject"
    first = scan("E012345")
    assert first["outcome"] == "link_primary_captured"
    assert first["hint"] == "关联：请扫描 IoT 模块二维码"
    assert client.get("/api/capture/session").json()["pending_primary_id"] == "E012345"
    done = scan("OEM-RS-001_RBEF7B")
    assert done["outcome"] == "link_completed"
    assert done["secondary_id"] == "RBEF7B"
    assert done["feedback"]["popup"] is True
    assert done["feedback"]["popup_text"] == "E012345 -> RBEF7B"
    scan("E012345")
    again = scan("OEM-RS-001_RBEF7B")
    assert again["outcome"] == "link_duplicate_ignored"
    assert again["feedback"]["toast"] == "⚠️ 已登记过"
    records = client.get("/api/scans", params={"category": "link"}).json()
    assert len(records) == 1
    assert records[0]["display_name"] == "E012345 -> RBEF7B"
    assert records[0]["linked_secondary_id"] == "RBEF7B"


def test_switch_mode_leaves_link_state(client: TestClient, open_capture, scan):
    open_capture("link")
    scan("E012345")
    r = client.put("/api/capture/session/mode", json={"mode": "single"})
    assert r.json()["link_step"] == "awaiting_primary"
    assert r.json()["pending_primary_id"] is None
    assert r.json()["hint"] == "上次扫码：E012345"


def test_switch_mode_without_session_409(client: TestClient):
    r = client.put("/api/capture/session/mode", json={"mode": "bulk"})
    assert r.status_code == 409


def test_malformed_payload_over_http(client: TestClient, open_capture, scan):
    open_capture("single")
    data = scan("   ")
    assert data["outcome"] == "rejected_malformed"
    assert data["feedback"]["beeps"] == 0


def test_latitude_out_of_range_422(client: TestClient, open_capture):
    open_capture("single")
    r = client.post("/api/capture/scans", json={"payload": "E012345", "latitude": 95.0, "longitude": 0.0})
    assert r.status_code == 422

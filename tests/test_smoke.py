import base64
import json

import pytest
from fastapi.testclient import TestClient

from growthsync.deps import get_store
from growthsync.main import app
from growthsync.store import GrowthStore

client = TestClient(app)

CSV = "儿童姓名：小明\n日期,身高(cm),体重(kg)\n2024-03-15 10:05,100.5,20.25\n2024-03-16,101,\n"


@pytest.fixture(autouse=True)
def store():
    store = GrowthStore()
    app.dependency_overrides[get_store] = lambda: store
    yield store
    app.dependency_overrides.clear()


def _child():
    r = client.post("/children", json={"name": "小明", "birthDate": "2020-01-01"})
    assert r.status_code == 201
    return r.json()


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_children_crud():
    child = _child()
    assert child["birthDate"] == "2020-01-01"
    assert client.get("/children").json()[0]["id"] == child["id"]

    r = client.put(f"/children/{child['id']}", json={"name": "小红"})
    assert r.json()["name"] == "小红"

    assert client.delete(f"/children/{child['id']}").status_code == 204
    assert client.get(f"/children/{child['id']}").status_code == 404


def test_records_replace_within_hour():
    child = _child()
    url = f"/children/{child['id']}/records"
    first = client.post(url, json={"timestamp": "2024-03-15T10:05:00", "height": 100.0}).json()
    second = client.post(url, json={"timestamp": "2024-03-15T10:55:00", "height": 100.4, "weight": 20}).json()
    assert second["id"] == first["id"]
    records = client.get(url).json()
    assert len(records) == 1
    assert records[0]["height"] == 100.4


def test_records_list_age_at_each_record():
    child = _child()
    url = f"/children/{child['id']}/records"
    client.post(url, json={"timestamp": "2024-03-15T10:05:00", "height": 100.0})
    client.post(url, json={"timestamp": "2019-11-20T08:00:00", "height": 50.0})
    newest, before_birth = client.get(url).json()
    assert newest["age"] == {"years": 4.2, "wholeYears": 4, "months": 2, "beforeBirth": False, "text": "4岁2个月"}
    assert before_birth["age"]["beforeBirth"] is True
    assert before_birth["age"]["years"] == -0.1


def test_record_domain_is_enforced():
    child = _child()
    r = client.post(f"/children/{child['id']}/records", json={"timestamp": "2024-03-15T10:05:00", "height": 0})
    assert r.status_code == 422


def test_import_csv():
    child = _child()
    files = {"file": ("records.csv", CSV.encode("gb18030"), "text/csv")}
    r = client.post(f"/children/{child['id']}/import", files=files)
    assert r.status_code == 200
    data = r.json()
    assert data["childName"] == "小明"
    assert data["added"] == 2
    assert data["encoding"]["decode_used"] == "gb18030"


def test_import_rejects_non_csv():
    child = _child()
    files = {"file": ("records.txt", b"x", "text/plain")}
    assert client.post(f"/children/{child['id']}/import", files=files).status_code == 422


def test_import_reports_every_error():
    child = _child()
    bad = "日期,身高(cm),体重(kg)\n2024-13-45,100,20\n2024-03-16,300,1\n"
    files = {"file": ("records.csv", bad.encode("utf-8"), "text/csv")}
    r = client.post(f"/children/{child['id']}/import", files=files)
    assert r.status_code == 422
    detail = r.json()["detail"]
    assert detail["total_errors"] == 3
    assert detail["errors"]["date"][0]["line"] == 2
    assert detail["errors"]["height"][0]["line"] == 3
    assert detail["errors"]["weight"][0]["value"] == "1"
    assert client.get(f"/children/{child['id']}/records").json() == []


def test_export_csv():
    child = _child()
    client.post(f"/children/{child['id']}/records", json={"timestamp": "2024-03-15T10:05:00", "height": 100.5})
    r = client.get(f"/children/{child['id']}/export")
    assert r.status_code == 200
    assert r.content.startswith(b"\xef\xbb\xbf")
    text = r.content.decode("utf-8-sig")
    assert text.splitlines() == ["儿童姓名：小明", "日期,身高(cm),体重(kg)", "2024-03-15 10:05,100.5,"]
    assert "filename*=UTF-8''" in r.headers["content-disposition"]


def test_export_without_records():
    child = _child()
    assert client.get(f"/children/{child['id']}/export").status_code == 404


def test_sync_round_trip(store):
    child = _child()
    client.post(f"/children/{child['id']}/records", json={"timestamp": "2024-03-15T10:05:00", "height": 100.5})
    code = client.get(f"/children/{child['id']}/sync-code").json()["code"]

    other = GrowthStore()
    app.dependency_overrides[get_store] = lambda: other
    r = client.post("/sync/import", json={"code": code})
    assert r.status_code == 200
    assert r.json()["childCreated"] is True
    assert r.json()["added"] == 1

    r = client.post("/sync/import", json={"code": code})
    assert r.json()["childCreated"] is False
    assert r.json()["skipped"] == 1


def test_sync_rejects_unknown_version(store):
    child = _child()
    code = client.get(f"/children/{child['id']}/sync-code").json()["code"]
    envelope = json.loads(base64.b64decode(code))
    envelope["version"] = "2.0"
    bad = base64.b64encode(json.dumps(envelope).encode("utf-8")).decode("ascii")
    r = client.post("/sync/import", json={"code": bad})
    assert r.status_code == 422
    assert len(store.list_children()) == 1


def test_unknown_child():
    assert client.get("/children/nope/records").status_code == 404
    assert client.get("/children/nope/sync-code").status_code == 404

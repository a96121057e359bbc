import importlib

import pytest
from fastapi.testclient import TestClient

import salarymask.settings as settings
from salarymask.health import HealthCheckResult


def _make_client(monkeypatch: pytest.MonkeyPatch, token=None, **env):
    if token is None:
        monkeypatch.delenv("SALARYMASK_API_TOKEN", raising=False)
    else:
        monkeypatch.setenv("SALARYMASK_API_TOKEN", token)
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    settings.reset_settings_cache()
    import salarymask.api as api  # noqa: F401

    api = importlib.reload(api)
    return TestClient(api.app), api


@pytest.fixture(autouse=True)
def _fresh_settings():
    yield
    settings.reset_settings_cache()


def test_mask_requires_bearer_token(monkeypatch: pytest.MonkeyPatch):
    client, _ = _make_client(monkeypatch, token="super-secret")

    resp = client.post(
        "/mask",
        files={"file": ("dummy.pdf", b"%PDF-1.0\n", "application/pdf")},
    )
    assert resp.status_code == 401

    resp_ok = client.post(
        "/mask",
        headers={"Authorization": "Bearer super-secret"},
        files={"file": ("dummy.pdf", b"%PDF-1.0\n", "application/pdf")},
    )
    assert resp_ok.status_code in {400, 415}


def test_readyz_reflects_health(monkeypatch: pytest.MonkeyPatch):
    client, api = _make_client(monkeypatch)

    def fake_checks(_settings):
        return [HealthCheckResult(name="render", status="fail", detail="missing", required=True)]

    monkeypatch.setattr(api, "run_readiness_checks", fake_checks)
    resp = client.get("/readyz")
    assert resp.status_code == 503
    payload = resp.json()
    assert payload["ready"] is False
    assert payload["checks"][0]["name"] == "render"


def test_readyz_passes_with_real_checks(monkeypatch: pytest.MonkeyPatch):
    client, _ = _make_client(monkeypatch)
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert {c["name"] for c in resp.json()["checks"]} == {"render", "font", "policy"}


def test_health_and_metrics(monkeypatch: pytest.MonkeyPatch):
    client, _ = _make_client(monkeypatch)
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/livez").status_code == 200
    metrics = client.get("/metrics/")
    assert metrics.status_code == 200
    assert "salarymask_requests_total" in metrics.text


def test_detect_and_mask(monkeypatch: pytest.MonkeyPatch, salary_pdf):
    client, _ = _make_client(monkeypatch)
    files = {"file": ("resume.pdf", salary_pdf, "application/pdf")}

    detected = client.post("/detect", files=files).json()
    assert detected["has_salary_info"] is True
    assert detected["count"] == 1

    resp = client.post("/mask", files=files)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert "masked_resume.pdf" in resp.headers["content-disposition"]
    assert resp.headers["x-masked"] == "true"
    assert resp.headers["x-masked-count"] == "1"
    assert resp.headers["x-redaction-mode"] == "overlay"
    assert resp.content.startswith(b"%PDF")


def test_mask_without_salary_returns_original(monkeypatch: pytest.MonkeyPatch, plain_pdf):
    client, _ = _make_client(monkeypatch)
    resp = client.post("/mask", files={"file": ("cv.pdf", plain_pdf, "application/pdf")})
    assert resp.status_code == 200
    assert resp.headers["x-masked"] == "false"
    assert resp.content == plain_pdf


def test_upload_limits(monkeypatch: pytest.MonkeyPatch):
    client, _ = _make_client(monkeypatch, SALARYMASK_MAX_UPLOAD_MB="0.0001")
    big = client.post(
        "/mask", files={"file": ("big.pdf", b"%PDF-1.4\n" + b"0" * 500, "application/pdf")}
    )
    assert big.status_code == 413
    wrong = client.post("/detect", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert wrong.status_code == 415


def test_manual_session_flow(monkeypatch: pytest.MonkeyPatch, salary_pdf):
    client, api = _make_client(monkeypatch)
    created = client.post(
        "/sessions", files={"file": ("resume.pdf", salary_pdf, "application/pdf")}
    )
    assert created.status_code == 201
    body = created.json()
    sid = body["id"]
    assert body["state"] == "ready"
    assert body["page_count"] == 2

    preview = client.get(f"/sessions/{sid}/preview", params={"page": 2, "scale": 1.0})
    assert preview.status_code == 200
    assert preview.headers["content-type"] == "image/png"
    assert preview.headers["x-page"] == "2"

    tiny = client.post(
        f"/sessions/{sid}/regions",
        json={"page": 1, "scale": 1.5, "start": {"x": 10, "y": 10}, "end": {"x": 15, "y": 40}},
    )
    assert tiny.status_code == 422

    added = client.post(
        f"/sessions/{sid}/regions",
        json={"start": {"x": 90, "y": 180}, "end": {"x": 810, "y": 232.5}},
    )
    assert added.status_code == 201
    assert added.json()["index"] == 0
    assert added.json()["region"]["scale"] == 1.5

    committed = client.post(f"/sessions/{sid}/commit")
    assert committed.status_code == 200
    assert committed.headers["x-redaction-mode"] == "flatten"
    assert "masked_resume.pdf" in committed.headers["content-disposition"]

    import fitz  # PyMuPDF

    with fitz.open(stream=committed.content, filetype="pdf") as doc:
        assert doc.page_count == 2
        assert doc.load_page(0).get_text().strip() == ""
        assert doc.load_page(1).get_text().strip()

    assert client.get(f"/sessions/{sid}").status_code == 404
    assert len(api.session_repository) == 0


def test_session_commit_without_regions_conflicts(monkeypatch: pytest.MonkeyPatch, salary_pdf):
    client, _ = _make_client(monkeypatch)
    sid = client.post(
        "/sessions", files={"file": ("resume.pdf", salary_pdf, "application/pdf")}
    ).json()["id"]
    resp = client.post(f"/sessions/{sid}/commit")
    assert resp.status_code == 409
    assert resp.json()["detail"]["stage"] == "session"
    assert client.delete(f"/sessions/{sid}/regions/0").status_code == 404
    assert client.delete(f"/sessions/{sid}").status_code == 204
    assert client.get(f"/sessions/{sid}").status_code == 404


def test_attachments_require_admin(monkeypatch: pytest.MonkeyPatch, salary_pdf):
    client, _ = _make_client(monkeypatch, SALARYMASK_TRUST_ROLE_HEADER="true")
    files = {"file": ("resume.pdf", salary_pdf, "application/pdf")}
    admin = {"X-User-Role": "admin"}

    denied = client.post("/attachments/app-1", files=files)
    assert denied.status_code == 403

    stored = client.post(
        "/attachments/app-1", files=files, data={"visibility": "admin_only"}, headers=admin
    )
    assert stored.status_code == 201
    record = stored.json()
    assert record["file_name"] == "masked_resume.pdf"
    assert record["visibility"] == "admin_only"

    plain = client.post(
        "/attachments/app-1", files=files, data={"mask_salary": "false"}, headers=admin
    )
    assert plain.json()["file_name"] == "resume.pdf"

    assert client.get("/attachments/app-1", headers=admin).json()["total"] == 2
    public = client.get("/attachments/app-1").json()
    assert [i["file_name"] for i in public["items"]] == ["resume.pdf"]

    assert client.delete(f"/attachments/app-1/{record['id']}").status_code == 403
    assert client.delete(f"/attachments/app-1/{record['id']}", headers=admin).status_code == 204
    assert client.get("/attachments/app-1", headers=admin).json()["total"] == 1


def test_role_header_is_ignored_unless_trusted(monkeypatch: pytest.MonkeyPatch, salary_pdf):
    monkeypatch.delenv("SALARYMASK_TRUST_ROLE_HEADER", raising=False)
    client, _ = _make_client(monkeypatch)
    resp = client.post(
        "/attachments/app-1",
        files={"file": ("resume.pdf", salary_pdf, "application/pdf")},
        headers={"X-User-Role": "admin"},
    )
    assert resp.status_code == 403


def test_token_makes_caller_privileged(monkeypatch: pytest.MonkeyPatch, salary_pdf):
    client, _ = _make_client(monkeypatch, token="super-secret")
    resp = client.post(
        "/attachments/app-1",
        files={"file": ("resume.pdf", salary_pdf, "application/pdf")},
        headers={"Authorization": "Bearer super-secret"},
    )
    assert resp.status_code == 201

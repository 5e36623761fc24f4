# test_api.py
"""
HTTP surface tests against a real app instance with a temporary database.
"""

import pytest
from fastapi.testclient import TestClient

from phishing_detector.config import Settings
from phishing_detector.main import create_app

PHISHING_URL = "http://paypa1-secure-login.tk/verify"


@pytest.fixture
def settings(tmp_path):
    return Settings(db_path=str(tmp_path / "test.db"), data_dir=str(tmp_path))


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as client:
        yield client


def test_health_and_root(client):
    assert client.get("/health").json() == {"status": "ok"}

    root = client.get("/").json()
    assert root["status"] == "healthy"
    assert root["endpoints"]["navigation"] == "/api/navigation"


def test_check_whitelisted_url(client):
    response = client.post("/api/check", json={"url": "https://www.google.com/search?q=x"})

    assert response.status_code == 200
    data = response.json()
    assert data["score"] == 0
    assert data["action"] == "allow"
    assert data["risk_label"] == "Safe Site"
    assert data["domain"] == "www.google.com"
    assert data["reasons"] == ["whitelisted_domain"]


def test_check_rejects_malformed_url(client):
    response = client.post("/api/check", json={"url": "not a url"})

    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "invalid_url"


def test_check_does_not_record(client):
    client.post("/api/check", json={"url": PHISHING_URL})

    stats = client.get("/api/stats").json()["stats"]
    assert stats == {"sites_blocked": 0, "threats_detected": 0, "alerts_shown": 0}


def test_blocking_navigation_flow(client):
    response = client.post("/api/navigation", json={"tab_id": 5, "url": PHISHING_URL})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "analyzed"
    assert data["action"] == "block"
    assert data["score"] == 100
    assert data["record"]["risk_score"] == 100
    assert "PHISHING SITE BLOCKED" in data["presentation"]["block_page"]

    analysis = client.get("/api/analysis/5").json()
    assert analysis["status"] == "analyzed"
    assert analysis["domain"] == "paypa1-secure-login.tk"
    assert analysis["action"] == "block"
    assert analysis["risk_label"] == "High Risk - Potential Phishing"

    stats = client.get("/api/stats").json()
    assert stats["status"] == "success"
    assert stats["stats"] == {"sites_blocked": 1, "threats_detected": 1, "alerts_shown": 1}

    reputation = client.get("/api/reputation/stats").json()
    assert reputation["reputation"]["suspicious_domains"] == 1
    assert reputation["thresholds"] == {"warn": 30, "block": 60}


def test_malformed_navigation_is_unable_to_analyze(client):
    client.post("/api/navigation", json={"tab_id": "tab-9", "url": "https://example.tk/"})

    response = client.post("/api/navigation", json={"tab_id": "tab-9", "url": "http://"})
    assert response.status_code == 200
    assert response.json()["status"] == "unable_to_analyze"
    assert response.json()["action"] is None

    analysis = client.get("/api/analysis/tab-9").json()
    assert analysis["status"] == "unable_to_analyze"
    assert analysis["message"] == "Unable to analyze"


def test_forget_analysis(client):
    client.post("/api/navigation", json={"tab_id": 2, "url": "https://example.tk/"})
    assert client.get("/api/analysis/2").json()["status"] == "analyzed"

    assert client.delete("/api/analysis/2").json() == {"success": True, "tab_id": "2"}
    assert client.get("/api/analysis/2").json()["status"] == "unable_to_analyze"


def test_report_then_check(client):
    response = client.post("/api/report", json={"url": "https://www.evil-site.net/login"})
    assert response.json() == {"success": True, "domain": "evil-site.net"}

    data = client.post("/api/check", json={"url": "https://evil-site.net/"}).json()
    assert data["score"] == 80
    assert data["action"] == "block"
    assert "known_suspicious_domain" in data["reasons"]

    assert client.post("/api/report", json={"url": "::"}).status_code == 422


def test_trust_then_check(client):
    assert client.post("/api/check", json={"url": "https://example.tk/"}).json()["score"] == 30

    first = client.post("/api/trust", json={"domain": "WWW.Example.TK"}).json()
    second = client.post("/api/trust", json={"domain": "example.tk"}).json()

    assert first == {"success": True, "domain": "example.tk", "already_trusted": False}
    assert second["already_trusted"] is True
    assert client.post("/api/check", json={"url": "https://example.tk/"}).json()["score"] == 0

    assert client.post("/api/trust", json={"domain": ""}).status_code == 422
    assert client.post("/api/trust", json={"domain": "   "}).status_code == 422


def test_trust_with_page_url(client):
    response = client.post("/api/trust", json={"domain": "https://www.evil-example.tk/login"})

    assert response.json() == {"success": True, "domain": "evil-example.tk", "already_trusted": False}
    assert client.post("/api/check", json={"url": "https://evil-example.tk/"}).json()["score"] == 0

    assert client.post("/api/trust", json={"domain": "evil-example.tk/login"}).status_code == 422
    assert client.get("/api/reputation/stats").json()["reputation"]["trusted_domains"] == 1


def test_page_analysis(client):
    html = (
        '<body><p>Click here immediately!</p>'
        '<form action="/login"><input type="password" name="pw"></form></body>'
    )
    response = client.post("/api/page/analyze", json={"url": "http://shop.example.com/", "html": html})

    assert response.status_code == 200
    data = response.json()
    assert data["flags"] == [
        'Insecure form collecting sensitive data',
        'Phishing keyword detected: "click here immediately"',
        'Non-HTTPS site collecting sensitive information',
    ]
    assert 'data-phishing-flag="Insecure form collecting sensitive data"' in data["html"]


def test_state_survives_restart(settings):
    with TestClient(create_app(settings)) as client:
        client.post("/api/navigation", json={"tab_id": 1, "url": PHISHING_URL})
        client.post("/api/trust", json={"domain": "example.tk"})

    with TestClient(create_app(settings)) as client:
        stats = client.get("/api/stats").json()["stats"]
        assert stats["sites_blocked"] == 1
        assert client.get("/api/analysis/1").json()["risk_score"] == 100
        assert client.post("/api/check", json={"url": "https://example.tk/"}).json()["score"] == 0


def test_whitelist_file_in_data_dir(tmp_path):
    (tmp_path / "whitelisted_domains.json").write_text('{"domains": ["example.tk"]}', encoding="utf-8")
    settings = Settings(db_path=str(tmp_path / "test.db"), data_dir=str(tmp_path))

    with TestClient(create_app(settings)) as client:
        assert client.post("/api/check", json={"url": "https://example.tk/"}).json()["score"] == 0
        assert client.get("/api/reputation/stats").json()["reputation"]["whitelisted_domains"] == 9

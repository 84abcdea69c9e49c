from __future__ import annotations

import io
from urllib import robotparser

import pytest
import requests

import browser_session
from browser_session import Link, StaticSession

SHOP = "https://shop.test/"

HOMEPAGE = """
<html><head><title>Shop</title></head>
<body>
  <nav><a href="/privacy">Privacy
     Policy</a> <a href="https://other.test/terms">Terms</a> <a name="top">Top</a></nav>
  <p>Sold by Acme Traders</p>
</body></html>
"""


def make_response(url: str, html: str, status: int = 200) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    r.url = url
    r.raw = io.BytesIO(html.encode("utf-8"))
    r.encoding = "utf-8"
    return r


@pytest.fixture
def no_robots(monkeypatch):
    monkeypatch.setattr(browser_session, "load_robots", lambda base: None)


def test_navigate_and_extract(monkeypatch, no_robots) -> None:
    calls = []

    def fake_get(url, **kwargs):
        calls.append((url, kwargs))
        return make_response(url, HOMEPAGE)

    monkeypatch.setattr(browser_session.requests, "get", fake_get)
    session = StaticSession(request_delay=0)

    assert session.navigate(SHOP) is True
    assert session.extract_links() == [
        Link("Privacy\n     Policy", "https://shop.test/privacy"),
        Link("Terms", "https://other.test/terms"),
    ]
    assert "Sold by Acme Traders" in session.extract_body_text()
    assert calls[0][1]["headers"]["User-Agent"] == browser_session.USER_AGENT
    assert calls[0][1]["timeout"] == browser_session.NAV_TIMEOUT


def test_error_status_is_a_failed_navigation(monkeypatch, no_robots) -> None:
    monkeypatch.setattr(browser_session.requests, "get", lambda url, **kw: make_response(url, "gone", 404))
    session = StaticSession(request_delay=0)

    assert session.navigate(SHOP + "missing") is False
    assert session.extract_links() == []
    assert session.extract_body_text() == ""


def test_network_error_is_a_failed_navigation(monkeypatch, no_robots) -> None:
    def boom(url, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(browser_session.requests, "get", boom)

    assert StaticSession(request_delay=0).navigate(SHOP) is False


def test_robots_disallow_blocks_fetch(monkeypatch) -> None:
    rp = robotparser.RobotFileParser()
    rp.parse(["User-agent: *", "Disallow: /"])
    monkeypatch.setattr(browser_session, "load_robots", lambda base: rp)

    def unexpected(url, **kwargs):
        raise AssertionError("fetched a disallowed page")

    monkeypatch.setattr(browser_session.requests, "get", unexpected)

    assert StaticSession(request_delay=0).navigate(SHOP) is False


def test_robots_loaded_once_per_host(monkeypatch) -> None:
    loaded = []
    monkeypatch.setattr(browser_session, "load_robots", lambda base: loaded.append(base))
    monkeypatch.setattr(browser_session.requests, "get", lambda url, **kw: make_response(url, HOMEPAGE))
    session = StaticSession(request_delay=0)

    session.navigate(SHOP)
    session.navigate(SHOP + "privacy")

    assert loaded == ["https://shop.test"]

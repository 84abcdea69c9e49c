from __future__ import annotations

from types import SimpleNamespace

import pytest

import app as app_module


@pytest.fixture
def client():
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as client:
        yield client


def test_index(client) -> None:
    resp = client.get("/")

    assert resp.status_code == 200
    assert b'name="urls"' in resp.data


def test_check_requires_input(client) -> None:
    resp = client.post("/check", data={})

    assert resp.status_code == 302


def test_check_with_urls(client, monkeypatch) -> None:
    seen = {}

    def fake_run(urls=None, input_file=None, output_prefix=None, static=False):
        seen.update(urls=urls, static=static)
        return {"success": True, "output_prefix": "report_abc", "stdout": "Done!", "stderr": ""}

    monkeypatch.setattr(app_module, "run_compliance_crawler", fake_run)

    resp = client.post("/check", data={"urls": "https://a.test\n\nhttps://b.test\n", "static": "1"})

    assert resp.status_code == 200
    assert seen == {"urls": ["https://a.test", "https://b.test"], "static": True}
    assert b"/download/report_abc/xlsx" in resp.data


def test_check_reports_failure(client, monkeypatch) -> None:
    monkeypatch.setattr(
        app_module, "run_compliance_crawler",
        lambda **kw: {"success": False, "error": "boom", "stdout": "", "stderr": "boom"},
    )

    resp = client.post("/check", data={"urls": "https://a.test"})

    assert resp.status_code == 200
    assert b"boom" in resp.data


def test_run_builds_crawler_command(monkeypatch) -> None:
    captured = {}

    def fake_subprocess_run(cmd, **kwargs):
        captured["cmd"] = cmd
        return SimpleNamespace(returncode=0, stdout="ok", stderr="")

    monkeypatch.setattr(app_module.subprocess, "run", fake_subprocess_run)

    result = app_module.run_compliance_crawler(urls=["https://a.test"], output_prefix="r1", static=True)

    cmd = captured["cmd"]
    assert result["success"] is True
    assert cmd[1] == "compliance_crawler.py"
    assert cmd[cmd.index("--url") + 1] == "https://a.test"
    assert cmd[cmd.index("--output") + 1].endswith("r1.xlsx")
    assert cmd[-1] == "--static"


def test_download_rejects_unknown_type(client) -> None:
    assert client.get("/download/report_abc/exe").status_code == 302


def test_download_missing_file(client) -> None:
    assert client.get("/download/report_does_not_exist/xlsx").status_code == 302


def test_status(client) -> None:
    resp = client.get("/status/report_does_not_exist")

    assert resp.get_json() == {"xlsx_ready": False, "jsonl_ready": False, "logs_ready": False}

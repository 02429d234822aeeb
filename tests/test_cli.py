from __future__ import annotations

import json

import httpx

import main


def test_cli_calls_the_running_server(capsys) -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["tenant"] = request.headers.get("X-Tenant-Id")
        seen["limit"] = request.url.params.get("limit")
        return httpx.Response(200, json={"runs": [{"id": "run_1", "status": "completed"}]})

    code = main._call(
        "http://api.test",
        "GET",
        "/api/jobs/job_1/runs",
        tenant_id="tenant_1",
        params={"limit": 5},
        transport=httpx.MockTransport(handler),
    )

    assert code == 0
    assert seen == {"path": "/api/jobs/job_1/runs", "tenant": "tenant_1", "limit": "5"}
    assert json.loads(capsys.readouterr().out)["runs"][0]["id"] == "run_1"


def test_cli_reports_api_errors(capsys) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "Job job_1 not found", "details": {}})

    code = main._call("http://api.test", "POST", "/api/jobs/job_1/trigger", transport=httpx.MockTransport(handler))

    assert code == 1
    assert json.loads(capsys.readouterr().out)["error"] == "Job job_1 not found"


def test_cli_reports_unreachable_server() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert main._call("http://api.test", "POST", "/api/runs/reconcile", transport=httpx.MockTransport(handler)) == 2

import json
import time

import pytest
from fastapi.testclient import TestClient

from repofuse.main import app
from repofuse.services import build_container, set_container

API = "https://github.com/acme/api"
WEB = "https://github.com/acme/web"


@pytest.fixture
def client(copy_clone):
    set_container(build_container(clone_fn=copy_clone))
    with TestClient(app) as test_client:
        yield test_client


def _register(client: TestClient, *urls: str) -> list[dict[str, object]]:
    records = []
    for url in urls:
        response = client.post("/api/repos", json={"url": url})
        assert response.status_code == 200
        records.append(response.json())
    return records


def _events(body: str) -> list[dict[str, object]]:
    return [
        json.loads(line[len("data: "):])
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


def test_register_list_and_remove(client: TestClient) -> None:
    [record] = _register(client, API)
    assert record["url"] == API
    assert record["id"].startswith("repo_")
    assert "addedAt" in record

    again = client.post("/api/repos", json={"url": API + "/"})
    assert again.status_code == 200
    assert again.json()["id"] == record["id"]

    listing = client.get("/api/repos").json()["repos"]
    assert [(item["url"], item["analyzed"]) for item in listing] == [(API, False)]

    assert client.delete(f"/api/repos/{record['id']}").json() == {"ok": True, "id": record["id"]}
    assert client.delete(f"/api/repos/{record['id']}").status_code == 404
    assert client.get("/api/repos").json() == {"repos": []}


def test_invalid_url_rejected(client: TestClient) -> None:
    response = client.post("/api/repos", json={"url": "not a repo"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid repository URL"


def test_run_all_without_repositories(client: TestClient) -> None:
    response = client.post("/api/run-all")
    assert response.status_code == 400
    assert response.json()["detail"] == "No repositories added"
    assert client.post("/api/jobs", json={}).status_code == 400


def test_run_all_matches_frontend_call_to_backend_route(client: TestClient) -> None:
    _register(client, API, WEB)
    response = client.post("/api/run-all")
    assert response.status_code == 200
    payload = response.json()
    assert payload["jobId"].startswith("job_")
    matched = [(m["frontend"]["path"], m["backend"]) for m in payload["match"]["matched"]]
    assert ("/users", "/users") in matched
    assert [c["path"] for c in payload["match"]["missingInBackend"]] == ["/profile"]
    names = [a["name"] for a in payload["generated"]["artifacts"]]
    assert "api-client.ts" in names and "docker-compose.yml" in names
    assert payload["validation"]["status"] == "partial"
    assert payload["validation"]["metrics"]["costSavings"]["hourlyRate"] == 50

    listing = client.get("/api/repos").json()["repos"]
    assert all(item["analyzed"] for item in listing)

    job = client.get(f"/api/jobs/{payload['jobId']}").json()
    assert job["status"] == "completed"
    stamps = [entry["timestamp"] for entry in job["logs"]]
    assert stamps == sorted(stamps)


def test_run_all_failure_returns_message_verbatim(client: TestClient) -> None:
    _register(client, "https://github.com/acme/gone")
    response = client.post("/api/run-all")
    assert response.status_code == 500
    assert response.json()["detail"] == "No repositories could be analyzed"


def test_background_job_polling(client: TestClient) -> None:
    _register(client, API, WEB)
    response = client.post("/api/jobs", json={"publish": False})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "pending"

    deadline = time.monotonic() + 10
    job = {}
    while time.monotonic() < deadline:
        job = client.get(f"/api/jobs/{body['jobId']}").json()
        if job["status"] in ("completed", "failed"):
            break
        time.sleep(0.05)
    assert job["status"] == "completed"
    assert job["result"]["match"]["missingInBackend"][0]["path"] == "/profile"
    assert job["stagesCompleted"] == ["analyze", "generated", "match", "validation"]
    assert [item["id"] for item in client.get("/api/jobs").json()["jobs"]] == [body["jobId"]]


def test_unknown_job_is_404(client: TestClient) -> None:
    assert client.get("/api/jobs/job_missing").status_code == 404


def test_publish_job_without_token_fails(client: TestClient) -> None:
    _register(client, API)
    job_id = client.post("/api/jobs", json={"publish": True}).json()["jobId"]
    deadline = time.monotonic() + 10
    job = {}
    while time.monotonic() < deadline:
        job = client.get(f"/api/jobs/{job_id}").json()
        if job["status"] in ("completed", "failed"):
            break
        time.sleep(0.05)
    assert job["status"] == "failed"
    assert "GITHUB_TOKEN" in job["error"]


def test_stream_emits_logs_then_complete(client: TestClient) -> None:
    _register(client, API, WEB)
    response = client.get("/api/run-all/stream")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _events(response.text)
    assert events[-1]["type"] == "complete"
    assert events[-1]["result"]["match"]["matched"][0]["backend"] == "/users"
    logs = [event for event in events if event["type"] == "log"]
    assert logs[0]["message"] == "Starting pipeline for 2 repositories"
    assert all(event["kind"] in ("info", "success", "warning", "error") for event in logs)
    stamps = [event["timestamp"] for event in logs]
    assert stamps == sorted(stamps)


def test_stream_without_repositories_sends_one_error(client: TestClient) -> None:
    events = _events(client.get("/api/run-all/stream").text)
    assert len(events) == 1
    assert events[0]["type"] == "log"
    assert events[0]["kind"] == "error"
    assert events[0]["message"] == "No repositories added"


def test_stream_failure_ends_with_error_entry(client: TestClient) -> None:
    _register(client, "https://github.com/acme/gone")
    events = _events(client.get("/api/run-all/stream").text)
    assert events[-1]["type"] == "log"
    assert events[-1]["kind"] == "error"
    assert events[-1]["message"] == "No repositories could be analyzed"
    assert not any(event["type"] == "complete" for event in events)


def test_single_stage_endpoints(client: TestClient) -> None:
    assert client.post("/api/match").status_code == 400
    _register(client, API, WEB)
    assert client.post("/api/generate").status_code == 400

    analyzed = client.post("/api/analyze").json()
    assert [repo["role"] for repo in analyzed["repos"]] == ["backend", "frontend"]

    matched = client.post("/api/match").json()
    assert len(matched["matched"]) == 2

    generated = client.post("/api/generate").json()
    assert generated["strategy"] == "docker-compose"

    report = client.post("/api/validate").json()
    assert report["status"] == "partial"
    assert report["endpointsMissing"] == 1


def test_apply_requirements(client: TestClient) -> None:
    assert client.post("/api/apply").status_code == 400
    _register(client, API)
    client.post("/api/analyze")
    response = client.post("/api/apply")
    assert response.status_code == 500
    assert response.json()["detail"] == "GITHUB_TOKEN not configured"


def test_reset_clears_state(client: TestClient) -> None:
    _register(client, API)
    client.post("/api/run-all")
    assert client.post("/api/reset").json() == {"ok": True}
    assert client.get("/api/repos").json() == {"repos": []}
    assert client.get("/api/jobs").json() == {"jobs": []}

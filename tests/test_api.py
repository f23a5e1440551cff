import time

import pytest

from spinup.models import PIPELINE_ORDER, TaskStatus
from spinup.proc import AdapterCommandError, CommandResult

_ORDER = [s.value for s in PIPELINE_ORDER]


def _poll_until_terminal(client, task_id: str, *, timeout: float = 5.0) -> list[dict]:
    seen: list[dict] = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        resp = client.get(f"/status/{task_id}")
        assert resp.status_code == 200
        seen.append(resp.json())
        if seen[-1]["status"] in ("running", "error"):
            return seen
        time.sleep(0.005)
    raise AssertionError(f"task {task_id} did not finish: {seen[-1]}")


def test_deploy_desktop_flow(client, ports):
    deploy = client.post("/deploy", json={"type": "desktop"})
    assert deploy.status_code == 202
    task_id = deploy.json()["id"]

    seen = _poll_until_terminal(client, task_id)
    statuses = [s["status"] for s in seen]
    # Polls may repeat a status but never observe one moving backward.
    assert [_ORDER.index(s) for s in statuses] == sorted(_ORDER.index(s) for s in statuses)

    final = seen[-1]
    assert final["status"] == "running"
    assert final["type"] == "desktop"
    assert final["container_handle"] == "container-0001"
    assert ports.start <= final["host_port"] <= ports.end
    assert final["error_detail"] is None
    assert final["access_url"] == f"http://spinup.test:{final['host_port']}"


def test_deploy_server_pull_failure(client, runtime):
    runtime.fail_on["pull_image"] = AdapterCommandError(
        message="Failed to pull image ubuntu:22.04",
        result=CommandResult(command=["docker", "pull"], returncode=1, stdout="", stderr="pull access denied"),
    )

    deploy = client.post("/deploy", json={"type": "server"})
    assert deploy.status_code == 202

    seen = _poll_until_terminal(client, deploy.json()["id"])
    final = seen[-1]
    assert final["status"] == "error"
    assert "pull access denied" in final["error_detail"]
    assert all(s["host_port"] is None and s["container_handle"] is None for s in seen)
    assert final["access_url"] is None


def test_deploy_returns_fresh_ids(client):
    ids = {client.post("/deploy", json={"type": kind}).json()["id"] for kind in ("desktop", "server", "desktop")}
    assert len(ids) == 3


def test_concurrent_deploys_get_distinct_ports(client):
    ids = [client.post("/deploy", json={"type": "server"}).json()["id"] for _ in range(2)]
    finals = [_poll_until_terminal(client, task_id)[-1] for task_id in ids]

    assert all(f["status"] == "running" for f in finals)
    assert finals[0]["host_port"] != finals[1]["host_port"]
    assert finals[0]["container_handle"] != finals[1]["container_handle"]
    assert finals[1]["access_url"] == f"ssh://root@spinup.test:{finals[1]['host_port']}"


def test_deploy_rejects_unknown_type(client, store):
    resp = client.post("/deploy", json={"type": "mainframe"})
    assert resp.status_code == 400
    assert "mainframe" in resp.json()["detail"]
    assert len(store) == 0

    assert client.get("/tasks").json() == []


@pytest.mark.parametrize("raw", ["DESKTOP", "Desktop", " server "])
def test_deploy_type_is_case_and_whitespace_sensitive(client, store, raw):
    resp = client.post("/deploy", json={"type": raw})
    assert resp.status_code == 400
    assert len(store) == 0


def test_deploy_requires_type(client, store):
    resp = client.post("/deploy", json={})
    assert resp.status_code == 422
    assert len(store) == 0


def test_status_of_unknown_task_is_404(client):
    resp = client.get("/status/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Task does-not-exist not found"}


def test_list_tasks(client, store):
    first = client.post("/deploy", json={"type": "desktop"}).json()["id"]
    second = client.post("/deploy", json={"type": "server"}).json()["id"]
    for task_id in (first, second):
        _poll_until_terminal(client, task_id)

    listed = client.get("/tasks")
    assert listed.status_code == 200
    assert [t["id"] for t in listed.json()] == [first, second]
    assert {t["status"] for t in listed.json()} == {TaskStatus.RUNNING.value}


def test_root_redirects_to_docs(client):
    resp = client.get("/", follow_redirects=False)
    assert resp.status_code in (302, 307)
    assert resp.headers["location"] == "/docs"

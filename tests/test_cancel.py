"""
Tests for POST /llm-cancel.
"""

import pytest

from llmdispatch.cancel.service import parse_cancel_request
from llmdispatch.core.exceptions import BadRequestException
from llmdispatch.jobs.models import JobStatus

from tests.fakes import OTHER_CUSTOMER_ID


@pytest.mark.parametrize(
    "status",
    [JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.WAITING_LLM, JobStatus.RETRYING],
)
def test_cancel_non_terminal_job(client, store, notifier, status):
    job = store.add(status=status.value)
    response = client.post("/llm-cancel", json={"job_id": job["job_id"]})

    assert response.status_code == 200
    assert response.json() == {
        "cancelled": True,
        "job_id": job["job_id"],
        "status": "cancelled",
        "message": "Job cancelled successfully",
    }
    stored = store.jobs[job["job_id"]]
    assert stored["status"] == JobStatus.CANCELLED.value
    assert stored["error_message"] == "Cancelled by user"
    assert stored["cancelled_at"] is not None
    assert notifier.types == ["job_cancelled"]


@pytest.mark.parametrize(
    "status",
    [JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.EXHAUSTED, JobStatus.CANCELLED],
)
def test_cancel_terminal_job_conflicts(client, store, status):
    job = store.add(status=status.value)
    response = client.post("/llm-cancel", json={"job_id": job["job_id"]})

    assert response.status_code == 409
    assert response.json()["code"] == "ALREADY_TERMINAL"
    assert store.jobs[job["job_id"]]["status"] == status.value


def test_cancel_other_customers_job_is_forbidden(client, store):
    job = store.add(customer_id=OTHER_CUSTOMER_ID)
    response = client.post("/llm-cancel", json={"job_id": job["job_id"]})

    assert response.status_code == 403
    assert response.json() == {"error": "Access denied to this job", "code": "FORBIDDEN"}
    assert store.jobs[job["job_id"]]["status"] == JobStatus.QUEUED.value


def test_cancel_missing_job(client):
    response = client.post("/llm-cancel", json={"job_id": "nope"})
    assert response.status_code == 404
    assert response.json()["code"] == "JOB_NOT_FOUND"


def test_cancel_requires_job_id(client):
    response = client.post("/llm-cancel", json={})
    assert response.status_code == 400
    assert response.json()["error"] == "job_id is required"


def test_cancel_aborts_openai_background_response(client, store, llm_clients):
    job = store.add(status=JobStatus.WAITING_LLM.value, llm_response_id="resp_9")
    response = client.post("/llm-cancel", json={"job_id": job["job_id"]})

    assert response.status_code == 200
    assert llm_clients.responses.cancelled == ["resp_9"]


def test_provider_abort_failure_does_not_block_cancel(client, store, llm_clients, monkeypatch):
    async def refuse(response_id):
        raise RuntimeError("already finished")

    monkeypatch.setattr(llm_clients.responses, "cancel", refuse)
    job = store.add(status=JobStatus.WAITING_LLM.value, llm_response_id="resp_9")
    response = client.post("/llm-cancel", json={"job_id": job["job_id"]})

    assert response.status_code == 200
    assert store.jobs[job["job_id"]]["status"] == JobStatus.CANCELLED.value


def test_batch_cancel_reports_each_job(client, store):
    queued = store.add()
    done = store.add(status=JobStatus.COMPLETED.value)
    foreign = store.add(customer_id=OTHER_CUSTOMER_ID)

    response = client.post(
        "/llm-cancel",
        json={"job_ids": [queued["job_id"], done["job_id"], foreign["job_id"], "missing", queued["job_id"]]},
    )

    assert response.status_code == 200
    results = response.json()["results"]
    assert len(results) == 4
    assert results[0]["cancelled"] is True
    assert [(r["job_id"], r.get("code")) for r in results[1:]] == [
        (done["job_id"], "ALREADY_TERMINAL"),
        (foreign["job_id"], "FORBIDDEN"),
        ("missing", "JOB_NOT_FOUND"),
    ]
    assert all(r["cancelled"] is False for r in results[1:])


def test_batch_cancel_limits():
    with pytest.raises(BadRequestException):
        parse_cancel_request({"job_ids": []})
    with pytest.raises(BadRequestException):
        parse_cancel_request({"job_ids": [f"job-{i}" for i in range(51)]})
    with pytest.raises(BadRequestException):
        parse_cancel_request({"job_ids": ["ok", 7]})
    assert parse_cancel_request({"job_ids": [" a ", "b", "a"]}) == ["a", "b"]
    assert parse_cancel_request({"job_id": "abc"}) == ["abc"]

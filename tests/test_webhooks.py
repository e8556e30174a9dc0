"""
Tests for POST /llm-webhook.
"""

import json
import time

import pytest

from llmdispatch.core.security import hmac_sha256_hex
from llmdispatch.jobs.models import JobStatus

SECRET = "whsec_test"


@pytest.fixture(autouse=True)
def webhook_secret(settings, monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_WEBHOOK_SECRET", SECRET)


def _completed_payload(job_id, response_id="resp_1"):
    return {
        "id": response_id,
        "object": "response",
        "type": "response.completed",
        "status": "completed",
        "model": "gpt-4o-2024-08-06",
        "metadata": {"job_id": job_id},
        "output": [
            {"type": "reasoning", "content": []},
            {"type": "message", "content": [{"type": "output_text", "text": "Hello from the webhook"}]},
        ],
        "usage": {"input_tokens": 12, "output_tokens": 4},
    }


def _failed_payload(job_id, response_id="resp_1"):
    return {
        "id": response_id,
        "type": "response.failed",
        "status": "failed",
        "metadata": {"job_id": job_id},
        "error": {"message": "The server had an error while processing your request"},
    }


def _post(client, payload, secret=SECRET, timestamp=None, headers=None):
    payload = {"timestamp": int(timestamp if timestamp is not None else time.time()), **payload}
    body = json.dumps(payload).encode()
    all_headers = {
        "Content-Type": "application/json",
        "openai-signature": hmac_sha256_hex(secret, body),
    }
    all_headers.update(headers or {})
    return client.post("/llm-webhook", content=body, headers=all_headers)


def _waiting_job(store, **fields):
    return store.add(status=JobStatus.WAITING_LLM.value, llm_response_id="resp_1", background=True, **fields)


def test_completed_webhook_finishes_job(client, store, notifier):
    job = _waiting_job(store)
    response = _post(client, _completed_payload(job["job_id"]))

    assert response.status_code == 200
    assert response.json() == {"received": True, "result": "completed"}
    stored = store.jobs[job["job_id"]]
    assert stored["status"] == JobStatus.COMPLETED.value
    assert stored["result"]["output"] == "Hello from the webhook"
    assert stored["result"]["usage"] == {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16}
    assert stored["result"]["model"] == "gpt-4o-2024-08-06"
    assert notifier.types == ["job_completed"]


def test_redelivery_leaves_terminal_state_unchanged(client, store, notifier, webhook_log):
    job = _waiting_job(store)
    payload = _completed_payload(job["job_id"])

    _post(client, payload)
    first = dict(store.jobs[job["job_id"]])
    response = _post(client, payload)

    assert response.status_code == 200
    assert response.json()["result"] == "ignored"
    assert store.jobs[job["job_id"]]["status"] == JobStatus.COMPLETED.value
    assert store.jobs[job["job_id"]]["completed_at"] == first["completed_at"]
    assert store.jobs[job["job_id"]]["result"] == first["result"]
    assert notifier.types == ["job_completed"]
    assert webhook_log.events == ["late_success_ignored"]


def test_duplicate_delivery_is_ignored_whatever_the_headers(client, store, webhook_log):
    job = _waiting_job(store)
    unhandled = {"id": "resp_1", "type": "response.in_progress", "metadata": {"job_id": job["job_id"]}}

    first = _post(client, unhandled, headers={"webhook-id": "wh_a"})
    assert first.json()["reason"] == "unhandled_event"
    response = _post(client, unhandled, headers={"webhook-id": "wh_b"})

    assert response.json() == {"received": True, "result": "ignored", "reason": "duplicate"}
    assert webhook_log.events == ["duplicate_webhook"]
    assert store.jobs[job["job_id"]]["status"] == JobStatus.WAITING_LLM.value


def test_failed_webhook_schedules_retry(client, store, notifier):
    job = _waiting_job(store)
    response = _post(client, _failed_payload(job["job_id"]))

    assert response.json() == {"received": True, "result": "retrying"}
    stored = store.jobs[job["job_id"]]
    assert stored["status"] == JobStatus.RETRYING.value
    assert stored["retry_count"] == 1
    assert stored["llm_response_id"] is None
    assert "server had an error" in stored["last_error"]
    assert notifier.types == []


def test_failed_webhook_at_ceiling_exhausts_job(client, store, notifier):
    job = _waiting_job(store, retry_count=3)
    response = _post(client, _failed_payload(job["job_id"]))

    assert response.json()["result"] == "exhausted"
    assert store.jobs[job["job_id"]]["status"] == JobStatus.EXHAUSTED.value
    assert notifier.types == ["job_exhausted"]


def test_webhook_for_cancelled_job_is_ignored(client, store, webhook_log):
    job = store.add(status=JobStatus.CANCELLED.value, llm_response_id="resp_1")
    response = _post(client, _completed_payload(job["job_id"]))

    assert response.json() == {"received": True, "result": "ignored", "reason": "cancelled"}
    assert store.jobs[job["job_id"]]["status"] == JobStatus.CANCELLED.value
    assert store.jobs[job["job_id"]]["result"] is None
    assert webhook_log.events == ["cancelled_job_response"]


def test_stale_response_id_is_ignored(client, store, webhook_log):
    job = _waiting_job(store)
    store.jobs[job["job_id"]]["llm_response_id"] = "resp_2"
    response = _post(client, _completed_payload(job["job_id"], response_id="resp_1"))

    assert response.json()["reason"] == "stale_response"
    assert store.jobs[job["job_id"]]["status"] == JobStatus.WAITING_LLM.value
    assert webhook_log.diagnostics[0]["expected_response_id"] == "resp_2"


def test_unknown_job_is_acknowledged(client, webhook_log):
    response = _post(client, _completed_payload("does-not-exist"))
    assert response.status_code == 200
    assert response.json()["reason"] == "unknown_job"
    assert webhook_log.events == ["unknown_job"]


def test_processing_error_goes_to_dead_letter(client, store, webhook_log, monkeypatch):
    job = _waiting_job(store)

    async def broken(*args, **kwargs):
        raise RuntimeError("write conflict")

    monkeypatch.setattr(store, "mark_completed", broken)
    response = _post(client, _completed_payload(job["job_id"]))

    assert response.status_code == 200
    assert response.json() == {"received": True, "result": "dead_lettered"}
    assert webhook_log.dead_letters[0]["job_id"] == job["job_id"]
    assert "write conflict" in webhook_log.dead_letters[0]["error_message"]
    assert webhook_log.events == ["processing_error"]


def test_redelivery_after_dead_letter_is_processed(client, store, webhook_log, monkeypatch):
    job = _waiting_job(store)
    payload = _completed_payload(job["job_id"])

    async def broken(*args, **kwargs):
        raise RuntimeError("write conflict")

    with monkeypatch.context() as patch:
        patch.setattr(store, "mark_completed", broken)
        assert _post(client, payload).json()["result"] == "dead_lettered"

    response = _post(client, payload)

    assert response.json() == {"received": True, "result": "completed"}
    assert store.jobs[job["job_id"]]["status"] == JobStatus.COMPLETED.value


def test_invalid_signature_is_rejected(client, store):
    job = _waiting_job(store)
    response = _post(client, _completed_payload(job["job_id"]), secret="wrong-secret")

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid webhook signature", "code": "INVALID_SIGNATURE"}
    assert store.jobs[job["job_id"]]["status"] == JobStatus.WAITING_LLM.value


def test_missing_secret_fails_closed(client, store, settings, monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_WEBHOOK_SECRET", "")
    job = _waiting_job(store)
    response = _post(client, _completed_payload(job["job_id"]), secret="")
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_SIGNATURE"


def test_stale_timestamp_is_rejected(client, store):
    job = _waiting_job(store)
    response = _post(client, _completed_payload(job["job_id"]), timestamp=time.time() - 3600)
    assert response.status_code == 400
    assert response.json()["code"] == "STALE_WEBHOOK"


def test_fresh_header_does_not_rescue_stale_signed_body(client, store):
    job = _waiting_job(store)
    response = _post(
        client,
        _completed_payload(job["job_id"]),
        timestamp=time.time() - 3600,
        headers={"webhook-timestamp": str(int(time.time())), "webhook-id": "wh_new"},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "STALE_WEBHOOK"
    assert store.jobs[job["job_id"]]["status"] == JobStatus.WAITING_LLM.value


def test_body_without_timestamp_is_rejected(client, store):
    job = _waiting_job(store)
    body = json.dumps(_completed_payload(job["job_id"])).encode()
    headers = {
        "Content-Type": "application/json",
        "openai-signature": hmac_sha256_hex(SECRET, body),
        "webhook-timestamp": str(int(time.time())),
    }
    response = client.post("/llm-webhook", content=body, headers=headers)

    assert response.status_code == 400
    assert response.json()["code"] == "STALE_WEBHOOK"


def test_missing_job_id_is_rejected(client):
    payload = {"id": "resp_1", "type": "response.completed", "metadata": {}}
    response = _post(client, payload)
    assert response.status_code == 400
    assert response.json()["error"] == "No job_id in webhook payload metadata"


def test_unknown_provider_is_rejected(client):
    body = b'{"id": "x"}'
    response = client.post("/llm-webhook", content=body, headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["error"] == "Unable to determine webhook provider"


def test_non_json_content_type_is_rejected(client, store):
    job = _waiting_job(store)
    response = _post(client, _completed_payload(job["job_id"]), headers={"Content-Type": "text/plain"})
    assert response.status_code == 415
    assert response.json()["error"] == "Content-Type must be application/json"

from __future__ import annotations
import asyncio
from typing import Any, Dict, List
import httpx
import pytest
from chatfleet.deps.auth import StaticTokenProvider
from chatfleet.models.schemas import JobPhase, JobProgress, JobState, JobStatusPayload, JobType
from chatfleet.services.job_poller import JobPoller
from tests.helpers import json_response, make_api

INTERVAL = 0.01


def job_status(status: str, progress=None, phase=None, **extra) -> Dict[str, Any]:
    body = {"job_id": "job-1", "type": "RAG_INDEX", "status": status, "corr_id": "c-1"}
    if progress is not None:
        body["progress"] = progress
    if phase is not None:
        body["phase"] = phase
    body.update(extra)
    return body


def scripted(responses: List[Any], request_log: List[httpx.Request]):
    """Handler answering with ``responses`` in order, repeating the last one."""
    remaining = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        request_log.append(request)
        answer = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    return handler


@pytest.mark.asyncio
async def test_job_lifecycle(token_provider, request_log):
    """Observed states are published in order and polling stops at done."""
    totals = {"docs_total": 3, "docs_done": 3, "chunks_total": 40, "chunks_done": 40}
    handler = scripted([
        json_response(job_status("queued", phase="queued")),
        json_response(job_status("running", 0.4, "embedding")),
        json_response(job_status("running", 0.9, "indexing")),
        json_response(job_status("done", 1.0, "finalizing", totals=totals)),
    ], request_log)
    updates: List[JobProgress] = []
    poller = JobPoller(make_api(handler), token_provider, interval=INTERVAL, on_update=updates.append)

    handle = poller.start("job-1")
    final = await asyncio.wait_for(poller.wait(), timeout=2)

    assert [(u.state, u.progress) for u in updates] == [
        (JobState.QUEUED, None),
        (JobState.QUEUED, None),
        (JobState.RUNNING, 0.4),
        (JobState.RUNNING, 0.9),
        (JobState.DONE, 1.0),
    ]
    assert [u.state for u in updates].count(JobState.DONE) == 1
    assert final.state == JobState.DONE
    assert final.type == JobType.RAG_INDEX
    assert final.phase == JobPhase.FINALIZING
    assert final.totals.chunks_done == 40
    assert final.error is None
    assert not handle.active

    requests_at_done = len(request_log)
    await asyncio.sleep(INTERVAL * 5)
    assert len(request_log) == requests_at_done == 4

    request = request_log[0]
    assert request.method == "GET"
    assert request.url.path == "/api/jobs/job-1"
    assert request.headers["Authorization"] == "Bearer test-token-456"


@pytest.mark.asyncio
async def test_transient_failures_keep_last_status(token_provider, request_log):
    handler = scripted([
        json_response(job_status("running", 0.3, "chunking")),
        httpx.Response(500, json={"error": {"code": "internal", "message": "db down"}, "corr_id": "c-2"}),
        httpx.ConnectError("connection reset"),
        httpx.Response(200, text="<html>gateway</html>", headers={"Content-Type": "text/html"}),
        json_response(job_status("running", 0.6, "embedding")),
        json_response(job_status("done", 1.0)),
    ], request_log)
    updates: List[JobProgress] = []
    poller = JobPoller(make_api(handler), token_provider, interval=INTERVAL, on_update=updates.append)

    poller.start("job-1")
    final = await asyncio.wait_for(poller.wait(), timeout=2)

    assert [(u.state, u.progress) for u in updates] == [
        (JobState.QUEUED, None),
        (JobState.RUNNING, 0.3),
        (JobState.RUNNING, 0.6),
        (JobState.DONE, 1.0),
    ]
    assert final.state == JobState.DONE
    assert len(request_log) == 6


@pytest.mark.asyncio
async def test_error_terminal_keeps_message(token_provider, request_log):
    handler = scripted([
        json_response(job_status("running", 0.2)),
        json_response(job_status("error", 0.2, "embedding", error="Embedding provider rejected the batch")),
    ], request_log)
    poller = JobPoller(make_api(handler), token_provider, interval=INTERVAL)

    poller.start("job-1")
    final = await asyncio.wait_for(poller.wait(), timeout=2)

    assert final.state == JobState.ERROR
    assert final.error == "Embedding provider rejected the batch"
    assert final.phase == JobPhase.EMBEDDING

    await asyncio.sleep(INTERVAL * 5)
    assert len(request_log) == 2


@pytest.mark.asyncio
async def test_restart_cancels_previous_job(token_provider, request_log):
    handler = scripted([json_response(job_status("done", 1.0))], request_log)
    poller = JobPoller(make_api(handler), token_provider, interval=INTERVAL)

    first = poller.start("job-1")
    second = poller.start("job-2")

    with pytest.raises(asyncio.CancelledError):
        await first.task
    assert not first.active
    assert poller.handle is second

    final = await asyncio.wait_for(poller.wait(), timeout=2)
    assert final.job_id == "job-2"
    assert [r.url.path for r in request_log] == ["/api/jobs/job-2"]


@pytest.mark.asyncio
async def test_stop_publishes_nothing_further(token_provider, request_log):
    handler = scripted([json_response(job_status("running", 0.5))], request_log)
    updates: List[JobProgress] = []
    poller = JobPoller(make_api(handler), token_provider, interval=INTERVAL, on_update=updates.append)

    poller.start("job-1")
    await asyncio.sleep(INTERVAL * 4)
    poller.stop()
    await poller.wait()

    published = len(updates)
    requests = len(request_log)
    await asyncio.sleep(INTERVAL * 5)

    assert len(updates) == published
    assert len(request_log) == requests
    assert not poller.handle.active


@pytest.mark.asyncio
async def test_no_token_makes_no_requests(request_log):
    handler = scripted([json_response(job_status("done", 1.0))], request_log)
    poller = JobPoller(make_api(handler), StaticTokenProvider(None), interval=INTERVAL)

    poller.start("job-1")
    await asyncio.sleep(INTERVAL * 5)

    assert request_log == []
    assert poller.status.state == JobState.QUEUED
    assert poller.handle.active

    poller.stop()
    await poller.wait()


def test_initial_status_is_idle(token_provider):
    poller = JobPoller(make_api(lambda request: json_response({})), token_provider)

    assert poller.status.state == JobState.IDLE
    assert poller.status.progress is None
    assert poller.handle is None


def test_status_payload_defaults():
    """Absent or unknown fields fall back to neutral values."""
    payload = JobStatusPayload.model_validate({})

    assert payload.status == JobState.QUEUED
    assert payload.progress is None
    assert payload.phase is None
    assert payload.type is None
    assert payload.totals.model_dump() == {
        "docs_total": 0,
        "docs_done": 0,
        "chunks_total": 0,
        "chunks_done": 0,
    }


def test_status_payload_lenient_values():
    payload = JobStatusPayload.model_validate({
        "type": "SOMETHING_NEW",
        "status": "paused",
        "progress": 1.7,
        "phase": "reranking",
        "totals": {"docs_total": 2, "chunks_total": None},
        "error": "",
        "unexpected": True,
    })

    assert payload.type is None
    assert payload.status == JobState.QUEUED
    assert payload.progress == 1.0
    assert payload.phase is None
    assert payload.totals.docs_total == 2
    assert payload.totals.chunks_total == 0
    assert payload.error is None


def test_progress_clamped_and_non_numeric_dropped():
    assert JobStatusPayload.model_validate({"progress": -0.5}).progress == 0.0
    assert JobStatusPayload.model_validate({"progress": "50%"}).progress is None
    assert JobStatusPayload.model_validate({"progress": True}).progress is None
    assert JobStatusPayload.model_validate({"totals": []}).totals.docs_done == 0


def test_error_only_kept_for_terminal_state():
    running = JobProgress.from_payload("job-1", JobStatusPayload.model_validate({"status": "running", "error": "stale"}))
    failed = JobProgress.from_payload("job-1", JobStatusPayload.model_validate({"status": "error", "error": "boom"}))

    assert running.error is None
    assert failed.error == "boom"
    assert failed.state.is_terminal


@pytest.mark.parametrize("odd_fields,expected_error", [
    ({"job_id": 42}, "boom"),
    ({"corr_id": {"id": "c-1"}}, "boom"),
    ({"error": {"code": "E", "message": "Embedding failed"}}, "Embedding failed"),
    ({"error": ["not", "a", "message"]}, None),
    ({"totals": {"docs_total": 2.5, "docs_done": -3, "chunks_total": "12", "chunks_done": "many"}}, "boom"),
])
@pytest.mark.asyncio
async def test_terminal_status_with_odd_fields_stops_polling(token_provider, request_log, odd_fields, expected_error):
    """A terminal status is honoured whatever the other fields contain."""
    body = {"job_id": "job-1", "status": "error", "error": "boom", **odd_fields}
    handler = scripted([json_response(body)], request_log)
    poller = JobPoller(make_api(handler), token_provider, interval=INTERVAL)

    poller.start("job-1")
    final = await asyncio.wait_for(poller.wait(), timeout=2)

    assert final.state == JobState.ERROR
    assert final.error == expected_error
    assert final.job_id == "job-1"

    await asyncio.sleep(INTERVAL * 5)
    assert len(request_log) == 1


@pytest.mark.asyncio
async def test_done_with_malformed_totals_is_published(token_provider, request_log):
    body = {"status": "done", "progress": 1, "totals": {"docs_total": 3.9, "docs_done": None, "chunks_total": -1}}
    handler = scripted([json_response(body)], request_log)
    updates: List[JobProgress] = []
    poller = JobPoller(make_api(handler), token_provider, interval=INTERVAL, on_update=updates.append)

    poller.start("job-7")
    final = await asyncio.wait_for(poller.wait(), timeout=2)

    assert [u.state for u in updates] == [JobState.QUEUED, JobState.DONE]
    assert final.progress == 1.0
    assert final.totals.model_dump() == {"docs_total": 3, "docs_done": 0, "chunks_total": 0, "chunks_done": 0}
    assert len(request_log) == 1


def test_status_payload_coerces_identifiers_and_error():
    payload = JobStatusPayload.model_validate({
        "job_id": 42,
        "corr_id": ["c"],
        "error": {"code": "E", "message": "boom"},
        "totals": {"docs_total": "4", "chunks_done": float("inf")},
    })

    assert payload.job_id is None
    assert payload.corr_id is None
    assert payload.error == "boom"
    assert payload.totals.docs_total == 4
    assert payload.totals.chunks_done == 0

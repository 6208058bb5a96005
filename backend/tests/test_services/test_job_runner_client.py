import pytest

from backend.app.errors import JobTimeoutError, NotFoundError, RemoteError, SubmissionError
from backend.app.services.job_runner_client import JobRunnerClient

ENDPOINT = "https://api.dataplatform.example.test"


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=""):
        self.status_code = status_code
        self._json = json_data
        self.text = text

    def json(self):
        if self._json is None:
            raise ValueError("no JSON")
        return self._json


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "headers": headers, **kwargs})
        return self.responses.pop(0)


class StubTokenCache:
    def __init__(self):
        self.invalidated = []

    def get_token(self, service, tenant="default"):
        return "wml-token"

    def invalidate(self, service, tenant="default"):
        self.invalidated.append(service)


def job_run(state, **extra):
    return {
        "metadata": {"created_at": "2025-06-14T10:00:00Z"},
        "entity": {"job_run": {"state": state, **extra}},
    }


def make_client(session, sleeps=None):
    return JobRunnerClient(
        StubTokenCache(),
        endpoint=ENDPOINT + "/",
        space_id="space-1",
        job_id="job-9",
        session=session,
        sleep=(sleeps.append if sleeps is not None else lambda seconds: None),
    )


def test_submit_starts_a_run():
    body = job_run("Queued", runtime_job_id="run-42")
    body["href"] = "/v2/jobs/job-9/runs/run-42"
    session = FakeSession(FakeResponse(201, body))
    client = make_client(session)

    job = client.submit({"optimization_id": 7})

    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == f"{ENDPOINT}/v2/jobs/job-9/runs"
    assert call["params"] == {"space_id": "space-1"}
    assert call["json"] == {"optimization_id": 7}
    assert call["headers"]["Authorization"] == "Bearer wml-token"
    assert job == {
        "runtime_job_id": "run-42",
        "state": "queued",
        "created_at": "2025-06-14T10:00:00Z",
        "status_url": "/v2/jobs/job-9/runs/run-42",
    }


def test_submit_without_runtime_job_id_raises():
    client = make_client(FakeSession(FakeResponse(201, job_run("queued"))))

    with pytest.raises(SubmissionError):
        client.submit()


def test_submit_error_status_raises_remote_error():
    client = make_client(FakeSession(FakeResponse(400, text="bad space")))

    with pytest.raises(RemoteError) as excinfo:
        client.submit()
    assert excinfo.value.status_code == 400


def test_poll_status_by_runtime_job_id():
    session = FakeSession(FakeResponse(200, job_run("Running")))
    client = make_client(session)

    status = client.poll_status("run-42")

    assert session.calls[0]["url"] == f"{ENDPOINT}/v2/jobs/runs/run-42"
    assert session.calls[0]["params"] == {"space_id": "space-1"}
    assert status == {
        "state": "running",
        "created_at": "2025-06-14T10:00:00Z",
        "completed_at": None,
        "error_message": None,
    }


def test_poll_status_accepts_status_urls():
    session = FakeSession(
        FakeResponse(200, job_run("completed", completed_at="2025-06-14T10:05:00Z")),
        FakeResponse(200, job_run("failed", error_message="infeasible model")),
    )
    client = make_client(session)

    completed = client.poll_status("/v2/jobs/job-9/runs/run-42")
    failed = client.poll_status(f"{ENDPOINT}/v2/jobs/job-9/runs/run-42?space_id=space-1")

    assert session.calls[0]["url"] == f"{ENDPOINT}/v2/jobs/job-9/runs/run-42"
    assert session.calls[1]["params"] is None
    assert completed["completed_at"] == "2025-06-14T10:05:00Z"
    assert failed["state"] == "failed"
    assert failed["error_message"] == "infeasible model"


def test_poll_status_unknown_run_raises_not_found():
    client = make_client(FakeSession(FakeResponse(404)))

    with pytest.raises(NotFoundError):
        client.poll_status("run-missing")


def test_poll_status_without_state_raises():
    client = make_client(FakeSession(FakeResponse(200, {"entity": {}})))

    with pytest.raises(RemoteError):
        client.poll_status("run-42")


def test_fetch_logs():
    session = FakeSession(FakeResponse(200, {"logs": ["solver started"]}))
    client = make_client(session)

    assert client.fetch_logs("run-42") == {"logs": ["solver started"]}
    assert session.calls[0]["url"] == f"{ENDPOINT}/v2/jobs/runs/run-42/logs"


def test_await_completion_polls_until_terminal_state():
    sleeps = []
    session = FakeSession(
        FakeResponse(200, job_run("queued")),
        FakeResponse(200, job_run("running")),
        FakeResponse(200, job_run("completed")),
    )
    client = make_client(session, sleeps)

    status = client.await_completion("run-42", max_polls=5, interval_seconds=10)

    assert status["state"] == "completed"
    assert len(session.calls) == 3
    assert sleeps == [10, 10]


def test_await_completion_times_out():
    sleeps = []
    session = FakeSession(*[FakeResponse(200, job_run("running")) for _ in range(3)])
    client = make_client(session, sleeps)

    with pytest.raises(JobTimeoutError) as excinfo:
        client.await_completion("run-42", max_polls=3, interval_seconds=2)

    assert isinstance(excinfo.value, TimeoutError)
    assert len(session.calls) == 3
    assert sleeps == [2, 2]

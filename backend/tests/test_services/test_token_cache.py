import threading
import time

import pytest
import requests

from backend.app.errors import AuthError
from backend.app.services.token_cache import SERVICE_COS, SERVICE_WATSON_ML, TokenCache


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=""):
        self.status_code = status_code
        self._json = json_data
        self.text = text

    def json(self):
        if self._json is None:
            raise ValueError("no JSON")
        return self._json


class FakeIdentitySession:
    """Answers every POST with a new access token."""

    def __init__(self, response=None, delay=0.0):
        self.calls = []
        self.response = response
        self.delay = delay
        self._lock = threading.Lock()

    def post(self, url, data=None, headers=None, timeout=None):
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.calls.append({"url": url, "data": data, "timeout": timeout})
            count = len(self.calls)
        if isinstance(self.response, Exception):
            raise self.response
        if self.response is not None:
            return self.response
        return FakeResponse(json_data={"access_token": f"token-{count}", "expires_in": 3600})


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def make_cache(session, clock, **kwargs):
    return TokenCache(
        "https://iam.example.test/identity/token",
        {SERVICE_COS: "cos-key", SERVICE_WATSON_ML: "wml-key"},
        session=session,
        clock=clock,
        **kwargs,
    )


def test_token_is_reused_within_ttl(clock):
    session = FakeIdentitySession()
    cache = make_cache(session, clock, ttl_seconds=3300)

    first = cache.get_token(SERVICE_COS)
    clock.now += 3299
    second = cache.get_token(SERVICE_COS)

    assert first == second == "token-1"
    assert len(session.calls) == 1
    assert session.calls[0]["data"] == {
        "grant_type": "urn:ibm:params:oauth:grant-type:apikey",
        "apikey": "cos-key",
    }


def test_token_is_refreshed_after_ttl(clock):
    session = FakeIdentitySession()
    cache = make_cache(session, clock, ttl_seconds=3300)

    cache.get_token(SERVICE_COS)
    clock.now += 3300

    assert cache.get_token(SERVICE_COS) == "token-2"
    assert len(session.calls) == 2


def test_services_and_tenants_are_cached_separately(clock):
    session = FakeIdentitySession()
    cache = make_cache(session, clock)

    cos = cache.get_token(SERVICE_COS)
    wml = cache.get_token(SERVICE_WATSON_ML)
    other_tenant = cache.get_token(SERVICE_COS, tenant="acme")

    assert len({cos, wml, other_tenant}) == 3
    assert session.calls[1]["data"]["apikey"] == "wml-key"


def test_invalidate_forces_a_new_request(clock):
    session = FakeIdentitySession()
    cache = make_cache(session, clock)

    cache.get_token(SERVICE_COS)
    cache.invalidate(SERVICE_COS)

    assert cache.get_token(SERVICE_COS) == "token-2"


def test_concurrent_callers_share_one_request(clock):
    session = FakeIdentitySession(delay=0.05)
    cache = make_cache(session, clock)
    barrier = threading.Barrier(8)
    tokens = []

    def worker():
        barrier.wait()
        tokens.append(cache.get_token(SERVICE_WATSON_ML))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(session.calls) == 1
    assert tokens == ["token-1"] * 8


@pytest.mark.parametrize("response", [
    FakeResponse(status_code=400, text="bad api key"),
    FakeResponse(json_data={"token_type": "Bearer"}),
    FakeResponse(json_data=None, text="<html>"),
    requests.ConnectionError("connection refused"),
])
def test_failed_token_requests_raise_auth_error(clock, response):
    cache = make_cache(FakeIdentitySession(response=response), clock)

    with pytest.raises(AuthError):
        cache.get_token(SERVICE_COS)


def test_failed_request_is_not_cached(clock):
    session = FakeIdentitySession(response=FakeResponse(status_code=500))
    cache = make_cache(session, clock)

    with pytest.raises(AuthError):
        cache.get_token(SERVICE_COS)
    session.response = None

    assert cache.get_token(SERVICE_COS) == "token-2"


def test_missing_api_key_raises_without_request(clock):
    session = FakeIdentitySession()
    cache = TokenCache("https://iam.example.test", {SERVICE_COS: ""}, session=session, clock=clock)

    with pytest.raises(AuthError):
        cache.get_token(SERVICE_COS)
    assert session.calls == []

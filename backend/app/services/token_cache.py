import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import requests

from ..errors import AuthError

logger = logging.getLogger(__name__)

SERVICE_COS = "cos"
SERVICE_WATSON_ML = "watson_ml"

DEFAULT_TENANT = "default"


class TokenCache:
    """
    Bearer tokens for the IBM services, cached per (tenant, service).

    A cache miss or an expired entry triggers exactly one request to the
    identity endpoint; concurrent callers for the same key wait on a per-key
    lock and then share the fresh token.

    Attributes
    ----------
    token_url : str
        IAM identity endpoint.
    grant_type : str
        OAuth grant type sent with every request.
    api_keys : Dict[str, str]
        API key per service name.
    ttl_seconds : int
        Lifetime of a cached token, kept shorter than the provider's.
    """

    def __init__(
        self,
        token_url: str,
        api_keys: Dict[str, str],
        grant_type: str = "urn:ibm:params:oauth:grant-type:apikey",
        ttl_seconds: int = 3300,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.token_url = token_url
        self.api_keys = dict(api_keys)
        self.grant_type = grant_type
        self.ttl_seconds = ttl_seconds
        self.session = session or requests.Session()
        self.timeout = timeout
        self._clock = clock

        self._entries: Dict[Tuple[str, str], Tuple[str, float]] = {}
        self._key_locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: Tuple[str, str]) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def _cached(self, key: Tuple[str, str]) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        token, expires_at = entry
        if self._clock() >= expires_at:
            return None
        return token

    def get_token(self, service: str, tenant: str = DEFAULT_TENANT) -> str:
        """Return a valid bearer token for *service*, fetching one if needed."""
        key = (tenant, service)
        token = self._cached(key)
        if token is not None:
            return token

        with self._lock_for(key):
            # Another caller may have refreshed while we waited on the lock.
            token = self._cached(key)
            if token is not None:
                return token

            token = self._request_token(service)
            self._entries[key] = (token, self._clock() + self.ttl_seconds)
            logger.info(f"Fetched new IBM token for service '{service}' (tenant '{tenant}')")
            return token

    def invalidate(self, service: str, tenant: str = DEFAULT_TENANT) -> None:
        """Forget the cached token so the next call fetches a new one."""
        self._entries.pop((tenant, service), None)

    def _request_token(self, service: str) -> str:
        api_key = self.api_keys.get(service)
        if not api_key:
            raise AuthError(f"No API key configured for service '{service}'")

        try:
            response = self.session.post(
                self.token_url,
                data={"grant_type": self.grant_type, "apikey": api_key},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error(f"Error requesting IBM token for '{service}': {exc}")
            raise AuthError(f"Identity endpoint unreachable: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logger.error(f"IBM token request for '{service}' failed with HTTP {response.status_code}")
            raise AuthError(f"Identity endpoint returned HTTP {response.status_code}: {response.text}")

        try:
            data = response.json()
        except ValueError as exc:
            raise AuthError("Identity endpoint returned a non-JSON body") from exc

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthError("Identity response lacks an access_token")
        return token

import logging
from typing import Dict, Optional

import requests

from ..errors import RemoteError
from .token_cache import TokenCache

logger = logging.getLogger(__name__)

UNAUTHORIZED_STATUSES = {401, 403}


class AuthorizedClient:
    """Base for clients that call an IBM service with a cached bearer token.

    A 401/403 answer invalidates the cached token and the request is sent
    once more with a fresh one; a second rejection is returned to the
    caller unchanged.
    """

    service: str = ""

    def __init__(self, token_cache: TokenCache, session: Optional[requests.Session] = None, timeout: int = 30):
        self.token_cache = token_cache
        self.session = session or requests.Session()
        self.timeout = timeout

    def _default_headers(self) -> Dict[str, str]:
        return {}

    def _send(self, method: str, url: str, *, headers: Optional[Dict[str, str]] = None, **kwargs) -> requests.Response:
        extra = dict(headers or {})
        response = None
        for attempt in (1, 2):
            token = self.token_cache.get_token(self.service)
            request_headers = {"Authorization": f"Bearer {token}", **self._default_headers(), **extra}
            try:
                response = self.session.request(
                    method, url, headers=request_headers, timeout=self.timeout, **kwargs
                )
            except requests.RequestException as exc:
                logger.error(f"{method} {url} failed: {exc}")
                raise RemoteError(f"{method} {url} failed: {exc}") from exc

            if response.status_code in UNAUTHORIZED_STATUSES and attempt == 1:
                logger.warning(f"{method} {url} rejected with HTTP {response.status_code}; refreshing token")
                self.token_cache.invalidate(self.service)
                continue
            break
        return response

    @staticmethod
    def _is_success(response: requests.Response) -> bool:
        return 200 <= response.status_code < 300

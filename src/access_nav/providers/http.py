from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from requests.exceptions import ConnectionError, ReadTimeout

from access_nav.errors import ProviderUnavailable

log = logging.getLogger(__name__)


@dataclass
class HTTPClient:
    """
    Blocking JSON client with retry on timeouts/connection drops.

    HTTP status errors are not retried; they surface as ``requests.HTTPError``
    so providers can decide whether a 4xx means "no result".
    """

    user_agent: str
    timeout_s: int = 20
    tries: int = 3
    backoff_s: float = 0.8

    def __post_init__(self) -> None:
        self.s = requests.Session()
        self.s.headers.update(
            {
                "User-Agent": self.user_agent,
                "Accept": "application/json, application/geo+json;q=0.9, */*;q=0.8",
            }
        )

    def _request(self, method: str, url: str, timeout_s: Optional[int] = None, **kwargs: Any) -> requests.Response:
        timeout = timeout_s if timeout_s is not None else self.timeout_s
        last_err: Optional[Exception] = None
        for attempt in range(self.tries):
            try:
                r = self.s.request(method, url, timeout=timeout, **kwargs)
                r.raise_for_status()
                return r
            except (ReadTimeout, ConnectionError) as e:
                last_err = e
                log.debug("%s %s failed (attempt %d/%d): %s", method, url, attempt + 1, self.tries, e)
                if attempt + 1 < self.tries:
                    time.sleep(self.backoff_s * (2**attempt))
        raise ProviderUnavailable(f"{method} {url} failed after {self.tries} tries: {last_err}") from last_err

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_s: Optional[int] = None,
    ) -> Any:
        r = self._request("GET", url, timeout_s=timeout_s, params=params, headers=headers)
        return _decode(r)

    def post_json(
        self,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_s: Optional[int] = None,
    ) -> Any:
        r = self._request("POST", url, timeout_s=timeout_s, json=json, data=data, headers=headers)
        return _decode(r)


def _decode(r: requests.Response) -> Any:
    try:
        return r.json()
    except ValueError as e:
        raise ProviderUnavailable(f"non-JSON response from {r.url}") from e

# providers/http.py
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import requests

from engine.errors import CollaboratorUnavailable

log = logging.getLogger(__name__)


class HttpClient:
    """
    Thin JSON-over-HTTP client shared by the market data collaborators.

    Every request carries `timeout`, so no collaborator call can hold a
    decision open indefinitely. 4xx responses fail immediately; 5xx and
    transport errors are retried up to `max_retries` attempts.
    """

    def __init__(
        self,
        source: str,
        base_url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 5.0,
        max_retries: int = 2,
        session: Optional[requests.Session] = None,
    ):
        self.source = source
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.session = session or requests.Session()

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("GET", path, params=params or {})

    def post_form(self, path: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        form = {k: str(v) for k, v in data.items() if v is not None}
        return self._request("POST", path, data=form, retry=False)

    def _request(self, method: str, path: str, *, retry: bool = True, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        attempts = self.max_retries if retry else 1
        last_exc: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                resp = self.session.request(
                    method, url, headers=self.headers, timeout=self.timeout, **kwargs
                )
            except requests.RequestException as exc:
                last_exc = exc
                log.warning("%s %s %s failed attempt %s: %s", self.source, method, path, attempt, exc)
                continue

            if resp.status_code >= 500:
                last_exc = RuntimeError(f"Server error {resp.status_code}: {resp.text[:200]}")
                log.warning("%s %s %s attempt %s: %s", self.source, method, path, attempt, last_exc)
                continue
            if resp.status_code >= 400:
                raise CollaboratorUnavailable(
                    self.source, f"{method} {path} failed: {resp.status_code} {resp.text[:200]}"
                )
            try:
                data = resp.json()
            except ValueError as exc:
                raise CollaboratorUnavailable(self.source, f"{method} {path} returned invalid JSON") from exc
            return data if isinstance(data, dict) else {"data": data}

        raise CollaboratorUnavailable(
            self.source, f"{method} {path} failed after {attempts} tries: {last_exc}"
        )
